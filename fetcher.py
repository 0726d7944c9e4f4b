"""
Модуль загрузки веб-страниц
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from config import CRAWLER_CONFIG
from utils import logger


class FetchError(Exception):
    """Ошибка загрузки страницы"""


@dataclass
class FetchResult:
    url: str
    status_code: int
    document: BeautifulSoup
    links: List[str] = field(default_factory=list)

    @property
    def html(self) -> str:
        return str(self.document)


def parse_document(url: str, status_code: int, html: str) -> FetchResult:
    """
    Разбор HTML и сбор абсолютных исходящих ссылок
    """
    document = BeautifulSoup(html, 'html.parser')

    links = []
    for anchor in document.find_all('a', href=True):
        href = anchor['href'].strip()
        if not href or href.startswith(('javascript:', 'mailto:', 'tel:')):
            continue
        links.append(urljoin(url, href))

    return FetchResult(url=url, status_code=status_code, document=document, links=links)


class Fetcher:
    """Загрузчик страниц с фиксированным User-Agent и таймаутом"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or CRAWLER_CONFIG
        self.user_agent = config['user_agent']
        self.timeout = config['timeout']
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        # requests.Session не рассчитан на общий доступ из потоков
        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            session.headers.update({'User-Agent': self.user_agent})
            self._local.session = session
        return session

    def fetch(self, url: str) -> FetchResult:
        """
        Загрузка страницы.
        Ответы с кодом ошибки возвращаются как есть, сетевые ошибки - FetchError
        """
        try:
            logger.debug(f"Fetching: {url}")
            response = self.session.get(url, timeout=self.timeout)
            return parse_document(response.url or url, response.status_code, response.text)
        except requests.RequestException as e:
            raise FetchError(f"Error downloading {url}: {e}") from e
