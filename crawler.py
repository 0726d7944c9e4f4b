"""
Модуль рекурсивного обхода сайтов
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Any, Optional, Set

from config import CRAWLER_CONFIG
from database import Database
from fetcher import Fetcher, FetchResult
from indexer import IndexBuilder
from models import Site
from utils import logger, relative_path, trim_trailing_slash, is_crawlable_link


class CrawlContext:
    """
    Общее состояние одного запуска индексации: множество посещенных
    ключей и флаг остановки. Создается заново для каждого запуска
    """

    def __init__(self):
        self._visited: Set[str] = set()
        self._lock = threading.Lock()
        self._stop_event = threading.Event()

    def claim(self, key: str) -> bool:
        """Атомарная проверка и вставка ключа; True только для первого вызова"""
        with self._lock:
            if key in self._visited:
                return False
            self._visited.add(key)
            return True

    def is_visited(self, key: str) -> bool:
        with self._lock:
            return key in self._visited

    @property
    def visited_count(self) -> int:
        with self._lock:
            return len(self._visited)

    def stop(self):
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()


class CrawlPool:
    """
    Ограниченный пул потоков для задач обхода.
    Считает поставленные, но еще не завершенные задачи, чтобы монитор
    мог определить момент, когда пул опустел
    """

    def __init__(self, max_workers: int):
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix='crawler')
        self._lock = threading.Lock()
        self._pending = 0
        self._closed = False

    def submit(self, fn: Callable[[], None]) -> bool:
        """Постановка задачи; False, если пул уже закрыт"""
        with self._lock:
            if self._closed:
                return False
            self._pending += 1

        try:
            future = self._executor.submit(self._run, fn)
        except RuntimeError:
            # Пул закрыли между проверкой и постановкой
            self._task_done(None)
            return False

        # Вызывается и для задач, отмененных при остановке
        future.add_done_callback(self._task_done)
        return True

    @staticmethod
    def _run(fn: Callable[[], None]):
        try:
            fn()
        except Exception as e:
            logger.exception(f"Unexpected error in crawl task: {e}")

    def _task_done(self, future: Optional[Future]):
        with self._lock:
            self._pending -= 1

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def is_quiescent(self) -> bool:
        return self.pending == 0

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def shutdown(self, cancel: bool = False):
        """Закрытие пула; cancel=True отбрасывает задачи из очереди"""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=False, cancel_futures=cancel)


class CrawlTask:
    """
    Задача обхода одного URL.

    Задача считается завершенной, когда завершена ее собственная работа и
    все дочерние задачи. Поток пула при этом не блокируется ожиданием
    детей: последний завершившийся ребенок сообщает о завершении родителю
    """

    def __init__(self, url: str, site: Site, crawler: 'SiteCrawler',
                 parent: Optional['CrawlTask'] = None,
                 on_complete: Optional[Callable[['CrawlTask'], None]] = None):
        self.url = url
        self.site = site
        self.crawler = crawler
        self.parent = parent
        self.on_complete = on_complete
        self._outstanding = 1
        self._lock = threading.Lock()
        self.done = threading.Event()

    def run(self):
        try:
            self.crawler.crawl(self)
        finally:
            self._release()

    def fork(self, url: str) -> bool:
        """Создание и постановка дочерней задачи"""
        child = CrawlTask(url, self.site, self.crawler, parent=self)
        with self._lock:
            self._outstanding += 1
        if not self.crawler.pool.submit(child.run):
            child._release()
            return False
        return True

    def _release(self):
        with self._lock:
            self._outstanding -= 1
            finished = self._outstanding == 0
        if not finished:
            return

        self.done.set()
        if self.on_complete is not None:
            self.on_complete(self)
        if self.parent is not None:
            self.parent._release()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self.done.wait(timeout)


class SiteCrawler:
    """Обход страниц сайтов: загрузка, сохранение, индексация, ссылки"""

    def __init__(self, db: Database, fetcher: Fetcher, index_builder: IndexBuilder,
                 context: CrawlContext, pool: CrawlPool,
                 config: Optional[Dict[str, Any]] = None):
        config = config or CRAWLER_CONFIG
        self.db = db
        self.fetcher = fetcher
        self.index_builder = index_builder
        self.context = context
        self.pool = pool
        self.request_delay = config.get('request_delay', 0)
        self.max_url_length = config['max_url_length']
        self.excluded_extensions = tuple(config['excluded_extensions'])

    def start(self, site: Site,
              on_complete: Optional[Callable[[CrawlTask], None]] = None) -> CrawlTask:
        """Постановка корневой задачи сайта"""
        root = CrawlTask(site.url, site, self, on_complete=on_complete)
        if not self.pool.submit(root.run):
            root._release()
        return root

    @staticmethod
    def canonical_key(site: Site, path: str) -> str:
        return trim_trailing_slash(site.url) + path

    def crawl(self, task: CrawlTask):
        """Обработка одного URL"""
        if self.context.stopped:
            return

        site = task.site
        path = relative_path(task.url)
        if not self.context.claim(self.canonical_key(site, path)):
            logger.debug(f"Already visited: {task.url}")
            return

        try:
            if self.request_delay:
                time.sleep(self.request_delay)

            result = self.fetcher.fetch(task.url)
            if self.context.stopped:
                logger.debug(f"Indexing stopped, discarding {task.url}")
                return

            page = self.db.save_page(site.id, path, result.status_code, result.html)
            self.db.touch_site(site.id)

            if result.status_code == 200:
                self.index_builder.index_page(page, result.html, site)
                self._fork_children(task, result)
        except Exception as e:
            if self.context.stopped:
                logger.debug(f"Indexing stopped, ignoring error for {task.url}: {e}")
                return
            logger.error(f"Error crawling {task.url}: {e}")
            self.db.fail_site(site.id, str(e) or type(e).__name__)

    def _fork_children(self, task: CrawlTask, result: FetchResult):
        scheduled = 0
        for link in dict.fromkeys(result.links):
            if self.context.stopped:
                break
            if not is_crawlable_link(link, task.site.url, self.excluded_extensions,
                                     self.max_url_length):
                continue
            key = self.canonical_key(task.site, relative_path(link))
            if self.context.is_visited(key):
                continue
            if task.fork(link):
                scheduled += 1

        logger.debug(f"Scheduled {scheduled} links from {task.url}")
