"""
Модуль для работы с базой данных
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Any

from config import DATABASE_CONFIG
from models import Site, Page, Lemma, Occurrence, Status
from utils import logger


class StorageError(Exception):
    """Ошибка хранилища"""


class DuplicateEntryError(StorageError):
    """Нарушение ограничения уникальности при вставке"""


def _placeholders(values: List[Any]) -> str:
    return ', '.join('?' for _ in values)


class Database:
    """
    Класс для работы с базой данных поискового движка.

    Каждый поток получает собственное соединение с файлом базы, поэтому
    один экземпляр можно разделять между задачами краулера.
    Конкурентные вставки одной и той же леммы или связи завершаются
    DuplicateEntryError, остальные ошибки sqlite3 - StorageError.
    """

    def __init__(self, db_name: Optional[str] = None, config: Optional[Dict[str, Any]] = None):
        config = config or DATABASE_CONFIG
        self.db_name = db_name or config['db_name']
        self.timeout = config.get('timeout', 30)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._initialize_database()

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            conn = sqlite3.connect(self.db_name, timeout=self.timeout, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute('PRAGMA foreign_keys = ON')
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Cursor]:
        """Выполнение операции с фиксацией и классификацией ошибок"""
        conn = self._connection()
        try:
            cursor = conn.cursor()
            yield cursor
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            if 'UNIQUE' in str(e).upper():
                logger.debug(f"Duplicate entry while {action}: {e}")
                raise DuplicateEntryError(str(e)) from e
            logger.error(f"Integrity error while {action}: {e}")
            raise StorageError(str(e)) from e
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Error {action}: {e}")
            raise StorageError(str(e)) from e

    def _initialize_database(self):
        """Инициализация базы данных и создание таблиц"""
        with self._transaction('initializing database') as cursor:
            cursor.execute('PRAGMA journal_mode = WAL')

            # Таблица сайтов
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS sites (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    url TEXT UNIQUE NOT NULL,
                    name TEXT NOT NULL,
                    status TEXT NOT NULL,
                    status_time TIMESTAMP NOT NULL,
                    last_error TEXT
                )
            ''')

            # Таблица страниц
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS pages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    site_id INTEGER NOT NULL,
                    path TEXT NOT NULL,
                    code INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    FOREIGN KEY (site_id) REFERENCES sites (id),
                    UNIQUE(site_id, path)
                )
            ''')

            # Таблица лемм
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS lemmas (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    site_id INTEGER NOT NULL,
                    lemma TEXT NOT NULL,
                    frequency INTEGER NOT NULL DEFAULT 0 CHECK (frequency >= 0),
                    FOREIGN KEY (site_id) REFERENCES sites (id),
                    UNIQUE(site_id, lemma)
                )
            ''')

            # Таблица обратного индекса
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS occurrences (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    page_id INTEGER NOT NULL,
                    lemma_id INTEGER NOT NULL,
                    rank REAL NOT NULL,
                    FOREIGN KEY (page_id) REFERENCES pages (id),
                    FOREIGN KEY (lemma_id) REFERENCES lemmas (id),
                    UNIQUE(page_id, lemma_id)
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_pages_path ON pages (path)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_occurrences_lemma ON occurrences (lemma_id)')

        logger.info("Database initialized successfully")

    # ------------------------------------------------------------------
    # Сайты
    # ------------------------------------------------------------------

    @staticmethod
    def _site(row: sqlite3.Row) -> Site:
        return Site(
            id=row['id'],
            url=row['url'],
            name=row['name'],
            status=Status(row['status']),
            status_time=datetime.fromisoformat(row['status_time']),
            last_error=row['last_error'],
        )

    def add_site(self, url: str, name: str, status: Status) -> Site:
        """Добавление сайта"""
        now = datetime.now().isoformat()
        with self._transaction(f"adding site {url}") as cursor:
            cursor.execute('''
                INSERT INTO sites (url, name, status, status_time)
                VALUES (?, ?, ?, ?)
            ''', (url, name, status.value, now))
            site_id = cursor.lastrowid

        logger.debug(f"Site added: {url} (ID: {site_id})")
        return Site(site_id, url, name, status, datetime.fromisoformat(now))

    def get_site(self, site_id: int) -> Optional[Site]:
        with self._transaction(f"getting site {site_id}") as cursor:
            cursor.execute('SELECT * FROM sites WHERE id = ?', (site_id,))
            row = cursor.fetchone()
        return self._site(row) if row else None

    def get_site_by_url(self, url: str) -> Optional[Site]:
        with self._transaction(f"getting site {url}") as cursor:
            cursor.execute('SELECT * FROM sites WHERE url = ?', (url,))
            row = cursor.fetchone()
        return self._site(row) if row else None

    def get_all_sites(self) -> List[Site]:
        with self._transaction('getting all sites') as cursor:
            cursor.execute('SELECT * FROM sites ORDER BY id')
            rows = cursor.fetchall()
        return [self._site(row) for row in rows]

    def has_sites_with_status(self, status: Status) -> bool:
        with self._transaction(f"checking sites with status {status.value}") as cursor:
            cursor.execute('SELECT 1 FROM sites WHERE status = ? LIMIT 1', (status.value,))
            return cursor.fetchone() is not None

    def update_site_status(self, site_id: int, status: Status, error: Optional[str] = None):
        """Смена статуса сайта с фиксацией времени и текста ошибки"""
        with self._transaction(f"updating status of site {site_id}") as cursor:
            cursor.execute('''
                UPDATE sites
                SET status = ?, last_error = ?, status_time = ?
                WHERE id = ?
            ''', (status.value, error, datetime.now().isoformat(), site_id))

    def fail_site(self, site_id: int, error: str) -> bool:
        """
        Перевод сайта из INDEXING в FAILED. Сайт в другом статусе не
        меняется, первая записанная ошибка сохраняется
        """
        with self._transaction(f"failing site {site_id}") as cursor:
            cursor.execute('''
                UPDATE sites
                SET status = ?, last_error = ?, status_time = ?
                WHERE id = ? AND status = ?
            ''', (Status.FAILED.value, error, datetime.now().isoformat(),
                  site_id, Status.INDEXING.value))
            return cursor.rowcount > 0

    def touch_site(self, site_id: int):
        """Обновление только времени статуса"""
        with self._transaction(f"touching site {site_id}") as cursor:
            cursor.execute('UPDATE sites SET status_time = ? WHERE id = ?',
                           (datetime.now().isoformat(), site_id))

    def replace_status(self, current: Status, new: Status, error: Optional[str] = None) -> int:
        """
        Перевод всех сайтов из статуса current в new.
        Возвращает количество измененных строк
        """
        with self._transaction(f"moving sites from {current.value} to {new.value}") as cursor:
            cursor.execute('''
                UPDATE sites
                SET status = ?, last_error = ?, status_time = ?
                WHERE status = ?
            ''', (new.value, error, datetime.now().isoformat(), current.value))
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Страницы
    # ------------------------------------------------------------------

    @staticmethod
    def _page(row: sqlite3.Row) -> Page:
        return Page(row['id'], row['site_id'], row['path'], row['code'], row['content'])

    def save_page(self, site_id: int, path: str, code: int, content: str) -> Page:
        """
        Сохранение страницы: существующая по (site_id, path) перезаписывается
        """
        existing = self.get_page_by_path(site_id, path)
        if existing is None:
            try:
                with self._transaction(f"adding page {path}") as cursor:
                    cursor.execute('''
                        INSERT INTO pages (site_id, path, code, content)
                        VALUES (?, ?, ?, ?)
                    ''', (site_id, path, code, content))
                    return Page(cursor.lastrowid, site_id, path, code, content)
            except DuplicateEntryError:
                # Страница создана параллельно, перезаписываем ее
                existing = self.get_page_by_path(site_id, path)
                if existing is None:
                    raise

        with self._transaction(f"updating page {path}") as cursor:
            cursor.execute('UPDATE pages SET code = ?, content = ? WHERE id = ?',
                           (code, content, existing.id))
        return Page(existing.id, site_id, path, code, content)

    def get_page(self, page_id: int) -> Optional[Page]:
        with self._transaction(f"getting page {page_id}") as cursor:
            cursor.execute('SELECT * FROM pages WHERE id = ?', (page_id,))
            row = cursor.fetchone()
        return self._page(row) if row else None

    def get_page_by_path(self, site_id: int, path: str) -> Optional[Page]:
        with self._transaction(f"getting page {path}") as cursor:
            cursor.execute('SELECT * FROM pages WHERE site_id = ? AND path = ?', (site_id, path))
            row = cursor.fetchone()
        return self._page(row) if row else None

    def delete_page(self, page_id: int):
        with self._transaction(f"deleting page {page_id}") as cursor:
            cursor.execute('DELETE FROM pages WHERE id = ?', (page_id,))

    def count_pages(self, site_id: Optional[int] = None) -> int:
        """Количество страниц сайта или всех страниц"""
        with self._transaction('counting pages') as cursor:
            if site_id is None:
                cursor.execute('SELECT COUNT(*) FROM pages')
            else:
                cursor.execute('SELECT COUNT(*) FROM pages WHERE site_id = ?', (site_id,))
            return cursor.fetchone()[0]

    # ------------------------------------------------------------------
    # Леммы
    # ------------------------------------------------------------------

    @staticmethod
    def _lemma(row: sqlite3.Row) -> Lemma:
        return Lemma(row['id'], row['site_id'], row['lemma'], row['frequency'])

    def add_lemma(self, site_id: int, lemma: str, frequency: int = 1) -> Lemma:
        """Вставка леммы; при конфликте - DuplicateEntryError"""
        with self._transaction(f"adding lemma {lemma}") as cursor:
            cursor.execute('INSERT INTO lemmas (site_id, lemma, frequency) VALUES (?, ?, ?)',
                           (site_id, lemma, frequency))
            return Lemma(cursor.lastrowid, site_id, lemma, frequency)

    def get_lemma(self, site_id: int, lemma: str) -> Optional[Lemma]:
        with self._transaction(f"getting lemma {lemma}") as cursor:
            cursor.execute('SELECT * FROM lemmas WHERE site_id = ? AND lemma = ?', (site_id, lemma))
            row = cursor.fetchone()
        return self._lemma(row) if row else None

    def get_lemmas_in(self, site_id: int, lemmas: Iterable[str]) -> List[Lemma]:
        """Леммы сайта из заданного набора по возрастанию частоты"""
        lemmas = list(lemmas)
        if not lemmas:
            return []
        with self._transaction('getting lemmas') as cursor:
            cursor.execute(f'''
                SELECT * FROM lemmas
                WHERE site_id = ? AND lemma IN ({_placeholders(lemmas)})
                ORDER BY frequency ASC, id ASC
            ''', (site_id, *lemmas))
            rows = cursor.fetchall()
        return [self._lemma(row) for row in rows]

    def change_lemma_frequency(self, lemma_id: int, delta: int):
        """Атомарное изменение частоты леммы, частота не уходит ниже нуля"""
        with self._transaction(f"changing frequency of lemma {lemma_id}") as cursor:
            cursor.execute('UPDATE lemmas SET frequency = MAX(frequency + ?, 0) WHERE id = ?',
                           (delta, lemma_id))

    def delete_lemma_if_unused(self, lemma_id: int) -> bool:
        """Удаление леммы с нулевой частотой"""
        with self._transaction(f"deleting lemma {lemma_id}") as cursor:
            cursor.execute('DELETE FROM lemmas WHERE id = ? AND frequency <= 0', (lemma_id,))
            return cursor.rowcount > 0

    def count_lemmas(self, site_id: Optional[int] = None) -> int:
        """Количество лемм сайта или всех лемм"""
        with self._transaction('counting lemmas') as cursor:
            if site_id is None:
                cursor.execute('SELECT COUNT(*) FROM lemmas')
            else:
                cursor.execute('SELECT COUNT(*) FROM lemmas WHERE site_id = ?', (site_id,))
            return cursor.fetchone()[0]

    # ------------------------------------------------------------------
    # Обратный индекс
    # ------------------------------------------------------------------

    @staticmethod
    def _occurrence(row: sqlite3.Row) -> Occurrence:
        return Occurrence(row['id'], row['page_id'], row['lemma_id'], row['rank'])

    def add_occurrence(self, page_id: int, lemma_id: int, rank: float) -> Occurrence:
        """Добавление записи в обратный индекс; при конфликте - DuplicateEntryError"""
        with self._transaction(f"adding occurrence ({page_id}, {lemma_id})") as cursor:
            cursor.execute('INSERT INTO occurrences (page_id, lemma_id, rank) VALUES (?, ?, ?)',
                           (page_id, lemma_id, rank))
            return Occurrence(cursor.lastrowid, page_id, lemma_id, rank)

    def occurrence_exists(self, page_id: int, lemma_id: int) -> bool:
        with self._transaction(f"checking occurrence ({page_id}, {lemma_id})") as cursor:
            cursor.execute('SELECT 1 FROM occurrences WHERE page_id = ? AND lemma_id = ?',
                           (page_id, lemma_id))
            return cursor.fetchone() is not None

    def get_occurrences_by_lemmas(self, lemma_ids: Iterable[int]) -> List[Occurrence]:
        lemma_ids = list(lemma_ids)
        if not lemma_ids:
            return []
        with self._transaction('getting occurrences by lemmas') as cursor:
            cursor.execute(f'''
                SELECT * FROM occurrences
                WHERE lemma_id IN ({_placeholders(lemma_ids)})
                ORDER BY page_id
            ''', lemma_ids)
            rows = cursor.fetchall()
        return [self._occurrence(row) for row in rows]

    def get_occurrences_by_page_and_lemmas(self, page_id: int,
                                           lemma_ids: Iterable[int]) -> List[Occurrence]:
        lemma_ids = list(lemma_ids)
        if not lemma_ids:
            return []
        with self._transaction(f"getting occurrences of page {page_id}") as cursor:
            cursor.execute(f'''
                SELECT * FROM occurrences
                WHERE page_id = ? AND lemma_id IN ({_placeholders(lemma_ids)})
            ''', (page_id, *lemma_ids))
            rows = cursor.fetchall()
        return [self._occurrence(row) for row in rows]

    def get_occurrences_by_page(self, page_id: int) -> List[Occurrence]:
        with self._transaction(f"getting occurrences of page {page_id}") as cursor:
            cursor.execute('SELECT * FROM occurrences WHERE page_id = ?', (page_id,))
            rows = cursor.fetchall()
        return [self._occurrence(row) for row in rows]

    def delete_occurrences_by_page(self, page_id: int):
        with self._transaction(f"deleting occurrences of page {page_id}") as cursor:
            cursor.execute('DELETE FROM occurrences WHERE page_id = ?', (page_id,))

    # ------------------------------------------------------------------
    # Обслуживание
    # ------------------------------------------------------------------

    def clear_database(self):
        """Полная очистка перед новым запуском индексации"""
        with self._transaction('clearing database') as cursor:
            for table in ('occurrences', 'pages', 'lemmas', 'sites'):
                cursor.execute(f'DELETE FROM {table}')

        logger.info("Database cleared successfully")

    def close(self):
        """Закрытие всех соединений с базой данных"""
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()
        logger.info("Database connection closed")
