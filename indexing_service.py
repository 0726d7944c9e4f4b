"""
Управление индексацией: запуск, остановка, индексация отдельной страницы
"""

import threading
import time
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse

from config import CRAWLER_CONFIG, SITES
from crawler import CrawlContext, CrawlPool, CrawlTask, SiteCrawler
from database import Database, StorageError
from fetcher import Fetcher, FetchError
from indexer import IndexBuilder, IndexingError
from lemmatizer import LemmaExtractor
from models import IndexingResponse, Site, Status
from utils import logger, normalize_host, relative_path, trim_trailing_slash

ALREADY_RUNNING = 'Indexing is already running'
NOT_RUNNING = 'Indexing is not running'
STOPPED_BY_USER = 'Indexing stopped by user'
OUTSIDE_CONFIGURED_SITES = 'This URL is outside the sites listed in the configuration'


class IndexingService:
    """
    Запуск и остановка индексации всех сайтов из конфигурации.

    Для каждого сайта создается корневая задача в общем пуле; отдельный
    поток-монитор ждет, пока пул опустеет, и переводит оставшиеся в
    INDEXING сайты в INDEXED
    """

    def __init__(self, db: Database,
                 fetcher: Optional[Fetcher] = None,
                 extractor: Optional[LemmaExtractor] = None,
                 sites: Optional[List[Dict[str, str]]] = None,
                 config: Optional[Dict[str, Any]] = None):
        self.db = db
        self.config = config or CRAWLER_CONFIG
        self.fetcher = fetcher or Fetcher(self.config)
        self.extractor = extractor or LemmaExtractor()
        self.index_builder = IndexBuilder(db, self.extractor)
        self.sites = sites if sites is not None else SITES

        self._lock = threading.Lock()
        self.context: Optional[CrawlContext] = None
        self.pool: Optional[CrawlPool] = None
        self._monitor: Optional[threading.Thread] = None
        self._roots: List[CrawlTask] = []

        logger.info(f"IndexingService initialized for {len(self.sites)} sites")

    def is_running(self) -> bool:
        return self.db.has_sites_with_status(Status.INDEXING)

    def _configured_sites(self) -> List[Dict[str, str]]:
        """Сайты из конфигурации без повторов URL"""
        unique = {}
        for site in self.sites:
            url = trim_trailing_slash(site['url'])
            unique.setdefault(url, {'url': url, 'name': site['name']})
        return list(unique.values())

    def start_indexing(self) -> IndexingResponse:
        """Запуск полной индексации"""
        with self._lock:
            if self.is_running():
                logger.warning("Start rejected: indexing is already running")
                return IndexingResponse(False, ALREADY_RUNNING)

            try:
                self.db.clear_database()
            except StorageError as e:
                return IndexingResponse(False, f"Failed to clear storage before indexing: {e}")

            self.context = CrawlContext()
            self.pool = CrawlPool(self.config['max_workers'])
            crawler = SiteCrawler(self.db, self.fetcher, self.index_builder,
                                  self.context, self.pool, self.config)

            sites = [self.db.add_site(site['url'], site['name'], Status.INDEXING)
                     for site in self._configured_sites()]
            self._roots = [crawler.start(site, on_complete=self._site_finished) for site in sites]

            self._monitor = threading.Thread(target=self._monitor_indexing,
                                             args=(self.context, self.pool),
                                             name='indexing-monitor', daemon=True)
            self._monitor.start()

        logger.info(f"Indexing started for {len(sites)} sites")
        return IndexingResponse(True)

    @staticmethod
    def _site_finished(task: CrawlTask):
        logger.info(f"Finished crawling {task.site.url}")

    def _monitor_indexing(self, context: CrawlContext, pool: CrawlPool):
        """Ожидание опустошения пула и финальная смена статусов"""
        interval = self.config.get('monitor_interval', 0.5)
        while not pool.is_quiescent() and not context.stopped:
            time.sleep(interval)

        if context.stopped:
            return

        pool.shutdown()
        updated = self.db.replace_status(Status.INDEXING, Status.INDEXED)
        logger.info(f"Indexing finished: {updated} sites indexed, "
                    f"{context.visited_count} urls visited")

    def stop_indexing(self) -> IndexingResponse:
        """Остановка индексации"""
        with self._lock:
            if not self.is_running():
                logger.warning("Stop rejected: indexing is not running")
                return IndexingResponse(False, NOT_RUNNING)

            if self.context is not None:
                self.context.stop()
            if self.pool is not None:
                self.pool.shutdown(cancel=True)

            updated = self.db.replace_status(Status.INDEXING, Status.FAILED, STOPPED_BY_USER)

        logger.info(f"Indexing stopped by user, {updated} sites marked as failed")
        return IndexingResponse(True)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Ожидание завершения текущего запуска; True, если он завершен"""
        monitor = self._monitor
        if monitor is None:
            return True
        monitor.join(timeout)
        return not monitor.is_alive()

    def _find_configured_site(self, url: str) -> Optional[Dict[str, str]]:
        host = normalize_host(urlparse(url).hostname)
        for site in self._configured_sites():
            if normalize_host(urlparse(site['url']).hostname) == host:
                return site
        return None

    def index_page(self, url: str) -> IndexingResponse:
        """Индексация (или переиндексация) одной страницы без обхода ссылок"""
        url = (url or '').strip()
        try:
            host = urlparse(url).hostname
        except ValueError:
            host = None
        if not host:
            return IndexingResponse(False, f"Invalid URL: {url}")

        config_site = self._find_configured_site(url)
        if config_site is None:
            logger.warning(f"Index page rejected, host is not configured: {url}")
            return IndexingResponse(False, OUTSIDE_CONFIGURED_SITES)

        try:
            site = self.db.get_site_by_url(config_site['url'])
            if site is None:
                site = self.db.add_site(config_site['url'], config_site['name'], Status.INDEXED)

            path = relative_path(url)
            existing = self.db.get_page_by_path(site.id, path)
            if existing is not None:
                self.index_builder.remove_page(existing)

            result = self.fetcher.fetch(url)
            page = self.db.save_page(site.id, path, result.status_code, result.html)
            if result.status_code == 200:
                self.index_builder.index_page(page, result.html, site)
        except (FetchError, IndexingError, StorageError) as e:
            logger.error(f"Error indexing page {url}: {e}")
            return IndexingResponse(False, f"Page indexing failed: {e}")

        return IndexingResponse(True)

    def get_statistics(self) -> Dict[str, Any]:
        """Статистика по сайтам из конфигурации"""
        detailed = []
        for config_site in self._configured_sites():
            site: Optional[Site] = self.db.get_site_by_url(config_site['url'])
            item = {
                'url': config_site['url'],
                'name': config_site['name'],
                'status': 'NOT_INDEXED',
                'status_time': None,
                'error': '',
                'pages': 0,
                'lemmas': 0,
            }
            if site is not None:
                item.update({
                    'status': site.status.value,
                    'status_time': site.status_time,
                    'error': site.last_error or '',
                    'pages': self.db.count_pages(site.id),
                    'lemmas': self.db.count_lemmas(site.id),
                })
            detailed.append(item)

        return {
            'total': {
                'sites': len(detailed),
                'pages': self.db.count_pages(),
                'lemmas': self.db.count_lemmas(),
                'indexing': self.is_running(),
            },
            'detailed': detailed,
        }
