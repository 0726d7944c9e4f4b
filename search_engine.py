"""
Модуль полнотекстового поиска
"""

import re
from collections import defaultdict
from typing import Dict, Any, List, Optional, Set, Tuple

from config import SEARCH_CONFIG, SITES
from database import Database
from lemmatizer import LemmaExtractor
from models import Lemma, Page, SearchData, SearchResponse, Site
from utils import logger, extract_title, strip_markup, trim_trailing_slash

_SENTENCE_SPLIT_RE = re.compile(r'[.!?]+')


class SearchEngine:
    """
    Класс полнотекстового поиска.

    Страница попадает в выдачу, только если на ней есть все леммы запроса;
    релевантность - сумма рангов лемм, нормированная на максимум выдачи
    """

    def __init__(self, db: Database, extractor: LemmaExtractor,
                 sites: Optional[List[Dict[str, str]]] = None,
                 config: Optional[Dict[str, Any]] = None):
        self.db = db
        self.extractor = extractor
        self.sites = sites if sites is not None else SITES
        self.config = config or SEARCH_CONFIG
        self.frequency_threshold = self.config['frequency_threshold']
        self.snippet_length = self.config['snippet_length']

    def search(self, query: str, site_url: Optional[str] = None,
               offset: int = 0, limit: Optional[int] = None) -> SearchResponse:
        """
        Основной метод поиска
        """
        if not query or not query.strip():
            return SearchResponse(False, 'Empty search query')

        query_lemmas = self.extractor.extract_set(query)
        if not query_lemmas:
            return SearchResponse(False, f"Nothing found for query '{query}'")

        sites = self._sites_to_search(site_url)
        if sites is None:
            return SearchResponse(False, 'Site not found')

        logger.info(f"Searching for: '{query}' (lemmas: {sorted(query_lemmas)}, sites: {len(sites)})")

        relevance: Dict[int, float] = {}
        pages: Dict[int, Page] = {}
        for site in sites:
            for page, absolute in self._search_site(site, query_lemmas):
                relevance[page.id] = absolute
                pages[page.id] = page

        ranked = self._normalize(relevance)
        total = len(ranked)

        offset = max(offset or 0, 0)
        limit = self.config['default_limit'] if limit is None else max(limit, 0)
        if offset >= total:
            return SearchResponse(True, count=total, data=[])

        sites_by_id = {site.id: site for site in sites}
        data = [
            self._search_data(pages[page_id], sites_by_id[pages[page_id].site_id], value, query_lemmas)
            for page_id, value in ranked[offset:min(offset + limit, total)]
        ]

        logger.info(f"Found {total} results for query: '{query}'")
        return SearchResponse(True, count=total, data=data)

    def _sites_to_search(self, site_url: Optional[str]) -> Optional[List[Site]]:
        """Все сайты из базы или один по фильтру; None, если фильтр не найден"""
        if not site_url or not site_url.strip():
            return self.db.get_all_sites()

        site = self.db.get_site_by_url(trim_trailing_slash(site_url))
        return [site] if site else None

    def _search_site(self, site: Site, query_lemmas: Set[str]) -> List[Tuple[Page, float]]:
        lemmas = self.db.get_lemmas_in(site.id, query_lemmas)
        if len(lemmas) < len(query_lemmas):
            # На сайте нет хотя бы одной леммы запроса
            return []

        lemmas = self._filter_frequent(lemmas, site)
        if not lemmas:
            return []

        return self._pages_with_all_lemmas(lemmas)

    def _filter_frequent(self, lemmas: List[Lemma], site: Site) -> List[Lemma]:
        """Отбрасывание слишком частых лемм"""
        total = self.db.count_lemmas(site.id)
        if total == 0:
            return []
        return [lemma for lemma in lemmas if lemma.frequency / total < self.frequency_threshold]

    def _pages_with_all_lemmas(self, lemmas: List[Lemma]) -> List[Tuple[Page, float]]:
        # Начинаем с самой редкой леммы
        lemmas = sorted(lemmas, key=lambda lemma: lemma.frequency)
        lemma_ids = [lemma.id for lemma in lemmas]

        candidates = defaultdict(list)
        for occurrence in self.db.get_occurrences_by_lemmas([lemmas[0].id]):
            candidates[occurrence.page_id].append(occurrence)

        results = []
        for page_id in candidates:
            occurrences = self.db.get_occurrences_by_page_and_lemmas(page_id, lemma_ids)
            if len(occurrences) != len(lemma_ids):
                continue
            page = self.db.get_page(page_id)
            if page is not None:
                results.append((page, sum(occurrence.rank for occurrence in occurrences)))

        return results

    @staticmethod
    def _normalize(relevance: Dict[int, float]) -> List[Tuple[int, float]]:
        """Нормализация на максимум и сортировка по убыванию"""
        if not relevance:
            return []

        max_relevance = max(relevance.values())
        normalized = {page_id: value / max_relevance for page_id, value in relevance.items()}
        return sorted(normalized.items(), key=lambda item: (-item[1], item[0]))

    def _site_name(self, site: Site) -> str:
        for configured in self.sites:
            if trim_trailing_slash(configured['url']) == site.url:
                return configured['name']
        return site.name

    def _search_data(self, page: Page, site: Site, relevance: float,
                     query_lemmas: Set[str]) -> SearchData:
        return SearchData(
            site=site.url,
            site_name=self._site_name(site),
            uri=page.path,
            title=extract_title(page.content, self.config['no_title_placeholder']),
            snippet=self.create_snippet(strip_markup(page.content), query_lemmas),
            relevance=relevance,
        )

    def create_snippet(self, text: str, query_lemmas: Set[str]) -> str:
        """
        Генерация сниппета с подсветкой найденных слов
        """
        min_length = self.config['min_sentence_length']
        sentences = [sentence.strip() for sentence in _SENTENCE_SPLIT_RE.split(text)]
        sentences = [sentence for sentence in sentences if len(sentence) >= min_length]

        relevant = []
        for sentence in sentences:
            if self.extractor.extract_set(sentence) & query_lemmas:
                relevant.append(sentence)
                if len(relevant) >= self.config['max_snippet_sentences']:
                    break

        if not relevant:
            relevant = sentences[:self.config['fallback_snippet_sentences']]

        snippet = self.highlight('. '.join(relevant), query_lemmas)

        if len(snippet) > self.snippet_length:
            snippet = snippet[:self.snippet_length - 3] + '...'
        return snippet

    def highlight(self, text: str, query_lemmas: Set[str]) -> str:
        """Выделение слов, леммы которых есть в запросе"""
        tag = self.config['highlight_tag']
        words = []
        for word in text.split():
            if self.extractor.extract_set(word) & query_lemmas:
                word = f'<{tag}>{word}</{tag}>'
            words.append(word)
        return ' '.join(words)

    def print_results(self, query: str, site_url: Optional[str] = None,
                      offset: int = 0, limit: Optional[int] = None):
        """
        Поиск и вывод результатов
        """
        response = self.search(query, site_url, offset, limit)

        print(f"\n=== Search Results for: '{query}' ===")
        if not response.result:
            print(f"Error: {response.error}")
            return

        print(f"Found {response.count} results")
        print("-" * 80)

        for i, item in enumerate(response.data, offset + 1):
            print(f"\n{i}. {item.title}")
            print(f"   Site: {item.site_name} ({item.site})")
            print(f"   URI: {item.uri}")
            print(f"   Relevance: {item.relevance:.6f}")
            print(f"   Snippet: {item.snippet}")

        if not response.data:
            print("\nNo results found. Try different search terms.")

        print("\n" + "=" * 80)
