"""
Модели данных поискового движка
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Status(str, Enum):
    """Статус индексации сайта"""
    INDEXING = 'INDEXING'
    INDEXED = 'INDEXED'
    FAILED = 'FAILED'


@dataclass
class Site:
    id: int
    url: str
    name: str
    status: Status
    status_time: datetime
    last_error: Optional[str] = None


@dataclass
class Page:
    id: int
    site_id: int
    path: str
    code: int
    content: str


@dataclass
class Lemma:
    id: int
    site_id: int
    lemma: str
    frequency: int


@dataclass
class Occurrence:
    """Связь страницы и леммы с весом (rank)"""
    id: int
    page_id: int
    lemma_id: int
    rank: float


@dataclass
class IndexingResponse:
    result: bool
    error: Optional[str] = None


@dataclass
class SearchData:
    """Одна запись в результатах поиска"""
    site: str
    site_name: str
    uri: str
    title: str
    snippet: str
    relevance: float


@dataclass
class SearchResponse:
    result: bool
    error: Optional[str] = None
    count: int = 0
    data: List[SearchData] = field(default_factory=list)
