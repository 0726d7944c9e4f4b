"""
Главный файл для запуска поискового движка
"""

import argparse
from typing import Optional

from database import Database
from indexing_service import IndexingService
from lemmatizer import LemmaExtractor
from search_engine import SearchEngine
from utils import logger


class SearchEngineApp:
    """Главный класс приложения поискового движка"""

    def __init__(self, db_name: Optional[str] = None):
        self.db = Database(db_name)
        self.extractor = LemmaExtractor()
        self.indexing = IndexingService(self.db, extractor=self.extractor)
        self.search_engine = SearchEngine(self.db, self.extractor)

        logger.info("Search Engine Application initialized")

    def crawl_websites(self):
        """Полная индексация сайтов из конфигурации с ожиданием завершения"""
        response = self.indexing.start_indexing()
        if not response.result:
            print(f"Indexing was not started: {response.error}")
            return

        try:
            self.indexing.wait()
        except KeyboardInterrupt:
            self.indexing.stop_indexing()
            self.indexing.wait()

        self.show_statistics()

    def index_page(self, url: str):
        response = self.indexing.index_page(url)
        print("Page indexed" if response.result else f"Error: {response.error}")

    def show_statistics(self):
        """Показать статистику индексации"""
        stats = self.indexing.get_statistics()
        total = stats['total']

        print("\n=== Indexing Statistics ===")
        print(f"Sites: {total['sites']}, pages: {total['pages']}, lemmas: {total['lemmas']}, "
              f"indexing: {total['indexing']}")
        for item in stats['detailed']:
            print(f"  {item['name']} ({item['url']}): {item['status']}, "
                  f"pages: {item['pages']}, lemmas: {item['lemmas']}"
                  + (f", error: {item['error']}" if item['error'] else ''))

    def cleanup(self):
        """Очистка ресурсов"""
        self.db.close()
        logger.info("Application cleanup completed")


def main():
    """Основная функция"""
    parser = argparse.ArgumentParser(description='Site search engine')
    parser.add_argument('--db', type=str, help='SQLite database file')
    parser.add_argument('--crawl', action='store_true', help='Index all configured sites (requires internet)')
    parser.add_argument('--index-page', type=str, metavar='URL', help='Index or reindex a single page')
    parser.add_argument('--search', type=str, help='Search query')
    parser.add_argument('--site', type=str, help='Restrict search to a configured site url')
    parser.add_argument('--offset', type=int, default=0, help='Search results offset')
    parser.add_argument('--limit', type=int, default=None, help='Search results limit')
    parser.add_argument('--stats', action='store_true', help='Show indexing statistics')

    args = parser.parse_args()

    app = SearchEngineApp(args.db)
    try:
        if args.crawl:
            app.crawl_websites()

        if args.index_page:
            app.index_page(args.index_page)

        if args.search:
            app.search_engine.print_results(args.search, args.site, args.offset, args.limit)

        if args.stats:
            app.show_statistics()

        if not any([args.crawl, args.index_page, args.search, args.stats]):
            parser.print_help()
    finally:
        app.cleanup()


if __name__ == "__main__":
    main()
