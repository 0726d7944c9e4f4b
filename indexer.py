"""
Модуль построения обратного индекса
"""

from typing import Dict

from database import Database, DuplicateEntryError, StorageError
from lemmatizer import LemmaExtractor
from models import Lemma, Page, Site
from utils import logger


class IndexingError(Exception):
    """Страницу не удалось проиндексировать"""


class IndexBuilder:
    """
    Запись лемм страницы в индекс.

    Несколько задач краулера индексируют страницы одного сайта
    одновременно и могут вставлять одну и ту же лемму. Блокировок в
    процессе нет: единственный источник истины - ограничения уникальности
    в базе. Проигравший вставку перечитывает строку и применяет свое
    изменение к ней; повторная связь (page, lemma) просто пропускается.
    """

    def __init__(self, db: Database, extractor: LemmaExtractor):
        self.db = db
        self.extractor = extractor

    def index_page(self, page: Page, content: str, site: Site) -> Dict[str, int]:
        """
        Индексация страницы. Возвращает извлеченные леммы с количеством
        """
        lemmas = self.extractor.extract(self.extractor.strip_markup(content))

        try:
            for lemma_text, count in lemmas.items():
                self._index_lemma(page, site, lemma_text, float(count))
        except StorageError as e:
            raise IndexingError(f"Failed to index page {page.path}: {e}") from e

        logger.info(f"Indexed: {site.url}{page.path} (ID: {page.id}, Lemmas: {len(lemmas)})")
        return lemmas

    def _index_lemma(self, page: Page, site: Site, lemma_text: str, rank: float):
        lemma = self.db.get_lemma(site.id, lemma_text)

        if lemma is None:
            try:
                lemma = self.db.add_lemma(site.id, lemma_text, frequency=1)
            except DuplicateEntryError:
                logger.debug(f"Lemma '{lemma_text}' was created concurrently, rereading")
                lemma = self._reread(site, lemma_text)
            else:
                # Новая лемма уже учла эту страницу
                self._add_occurrence(page, lemma, rank)
                return

        if self._add_occurrence(page, lemma, rank):
            self.db.change_lemma_frequency(lemma.id, 1)

    def _reread(self, site: Site, lemma_text: str) -> Lemma:
        lemma = self.db.get_lemma(site.id, lemma_text)
        if lemma is None:
            raise StorageError(f"Lemma '{lemma_text}' vanished after a unique conflict")
        return lemma

    def _add_occurrence(self, page: Page, lemma: Lemma, rank: float) -> bool:
        """Добавление связи страницы и леммы; False, если связь уже есть"""
        if self.db.occurrence_exists(page.id, lemma.id):
            return False
        try:
            self.db.add_occurrence(page.id, lemma.id, rank)
        except DuplicateEntryError:
            logger.debug(f"Occurrence ({page.id}, {lemma.lemma}) already exists, skipping")
            return False
        return True

    def remove_page(self, page: Page):
        """
        Удаление страницы из индекса: частоты лемм уменьшаются,
        леммы с нулевой частотой удаляются
        """
        occurrences = self.db.get_occurrences_by_page(page.id)
        self.db.delete_occurrences_by_page(page.id)

        for occurrence in occurrences:
            self.db.change_lemma_frequency(occurrence.lemma_id, -1)
            self.db.delete_lemma_if_unused(occurrence.lemma_id)

        self.db.delete_page(page.id)
        logger.info(f"Removed page {page.path} (ID: {page.id}, Lemmas: {len(occurrences)})")
