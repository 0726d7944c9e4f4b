import pytest

from conftest import FakeFetcher
from indexer import IndexBuilder
from indexing_service import IndexingService
from lemmatizer import LemmaExtractor, RussianMorphology
from models import Status
from search_engine import SearchEngine

SITE = 'https://a.test'
SINGLE_PAGE_SITE = 'https://b.test'


def index(db, extractor, site, path, html):
    page = db.save_page(site.id, path, 200, html)
    IndexBuilder(db, extractor).index_page(page, html, site)
    return page


@pytest.fixture
def site(db, extractor):
    site = db.add_site(SITE, 'Stored name', Status.INDEXED)
    index(db, extractor, site, '/1',
          '<html><head><title>One</title></head><body>cats cats dogs. bird here</body></html>')
    index(db, extractor, site, '/2', '<html><body>cats dogs fish</body></html>')
    index(db, extractor, site, '/3', '<html><body>bird fish tree</body></html>')
    return site


@pytest.fixture
def engine(db, extractor, search_config):
    return SearchEngine(db, extractor, sites=[{'url': SITE + '/', 'name': 'Configured'}],
                        config=search_config)


class TestQueryValidation:
    @pytest.mark.parametrize('query', ['', '   ', None])
    def test_empty_query(self, engine, query):
        response = engine.search(query)

        assert not response.result
        assert response.error == 'Empty search query'

    def test_only_particles(self, engine, site):
        response = engine.search('and or')

        assert not response.result
        assert response.error == "Nothing found for query 'and or'"

    def test_unknown_site(self, engine, site):
        response = engine.search('cats', site_url='https://unknown.test')

        assert not response.result
        assert response.error == 'Site not found'

    def test_empty_storage(self, engine):
        response = engine.search('cats')

        assert response.result
        assert response.count == 0
        assert response.data == []


class TestRanking:
    def test_pages_must_contain_all_lemmas(self, engine, site):
        response = engine.search('cats dogs')

        assert response.result
        assert response.count == 2
        assert [item.uri for item in response.data] == ['/1', '/2']

    def test_relevance_is_normalized(self, engine, site):
        response = engine.search('cats dogs')

        relevances = [item.relevance for item in response.data]
        assert relevances[0] == 1.0
        assert relevances[1] == pytest.approx(2 / 3)
        assert relevances == sorted(relevances, reverse=True)

    def test_missing_lemma_gives_nothing(self, engine, site):
        response = engine.search('cats unicorn')

        assert response.result
        assert response.count == 0

    def test_frequent_lemmas_are_dropped(self, db, engine, extractor):
        single = db.add_site(SINGLE_PAGE_SITE, 'Single', Status.INDEXED)
        index(db, extractor, single, '/', '<html><body>cats</body></html>')

        response = engine.search('cats', site_url=SINGLE_PAGE_SITE)

        assert response.result
        assert response.count == 0

    def test_all_sites_are_searched(self, db, engine, extractor, site):
        other = db.add_site(SINGLE_PAGE_SITE, 'Other', Status.INDEXED)
        index(db, extractor, other, '/x', '<html><body>bird song wing feather</body></html>')

        response = engine.search('bird')

        assert response.count == 3
        assert {item.site for item in response.data} == {SITE, SINGLE_PAGE_SITE}

    def test_site_filter(self, db, engine, extractor, site):
        other = db.add_site(SINGLE_PAGE_SITE, 'Other', Status.INDEXED)
        index(db, extractor, other, '/x', '<html><body>bird song wing feather</body></html>')

        response = engine.search('bird', site_url=SINGLE_PAGE_SITE + '/')

        assert response.count == 1
        assert response.data[0].uri == '/x'


class TestPagination:
    def test_limit(self, engine, site):
        response = engine.search('cats dogs', limit=1)

        assert response.count == 2
        assert [item.uri for item in response.data] == ['/1']

    def test_offset(self, engine, site):
        response = engine.search('cats dogs', offset=1, limit=1)

        assert response.count == 2
        assert [item.uri for item in response.data] == ['/2']

    @pytest.mark.parametrize('offset', [2, 10])
    def test_offset_past_the_end(self, engine, site, offset):
        response = engine.search('cats dogs', offset=offset)

        assert response.result
        assert response.count == 2
        assert response.data == []


class TestSearchData:
    def test_fields(self, engine, site):
        first, second = engine.search('cats dogs').data

        assert first.site == SITE
        assert first.site_name == 'Configured'
        assert first.title == 'One'
        assert second.title == 'No title'
        assert '<b>cats</b>' in first.snippet
        assert '<title>' not in first.snippet

    def test_site_name_falls_back_to_stored(self, db, extractor, site, search_config):
        engine = SearchEngine(db, extractor, sites=[], config=search_config)

        assert engine.search('cats dogs').data[0].site_name == 'Stored name'


class TestSnippet:
    def test_relevant_sentences_are_highlighted(self, engine):
        snippet = engine.create_snippet('Cat. A cat sits on the mat. Nothing else matters here.', {'cat'})

        assert snippet == 'A <b>cat</b> sits on the mat'

    def test_falls_back_to_first_sentences(self, engine):
        text = 'First sentence here. Second sentence here. Third one here.'

        assert engine.create_snippet(text, {'unicorn'}) == 'First sentence here. Second sentence here'

    def test_at_most_three_sentences(self, engine):
        text = ' '.join(f'Sentence number {i} has cats.' for i in range(6))

        assert engine.create_snippet(text, {'cat'}).count('<b>cats') == 3

    def test_truncated(self, engine):
        snippet = engine.create_snippet('cats ' * 100, {'cat'})

        assert len(snippet) == 200
        assert snippet.endswith('...')


class TestEndToEnd:
    def test_mixed_script_page(self, db, extractor, crawler_config, search_config):
        fetcher = FakeFetcher({
            'http://mixed.test': (200, '''
                <html><head><title>Mixed</title></head><body>
                Search is useful. Информация важна для всех.
                </body></html>'''),
        })
        service = IndexingService(db, fetcher=fetcher, extractor=extractor,
                                  sites=[{'url': 'http://mixed.test', 'name': 'Mixed'}],
                                  config=crawler_config)

        assert service.start_indexing().result
        assert service.wait(10)

        response = SearchEngine(db, extractor, sites=service.sites,
                                config=search_config).search('search информация')

        assert response.result
        assert response.count == 1
        [item] = response.data
        assert item.uri == '/'
        assert item.relevance == 1.0
        assert item.snippet == 'Mixed <b>Search</b> is useful. <b>Информация</b> важна для всех'

    def test_russian_site(self, db, crawler_config, search_config):
        extractor = LemmaExtractor(cyrillic=RussianMorphology())
        fetcher = FakeFetcher({
            'http://ru.test': (200, '''
                <html><head><title>Главная</title></head><body>
                Поиск информации полезен. Данные хранятся в базе.
                </body></html>'''),
        })
        service = IndexingService(db, fetcher=fetcher, extractor=extractor,
                                  sites=[{'url': 'http://ru.test', 'name': 'Русский сайт'}],
                                  config=crawler_config)

        assert service.start_indexing().result
        assert service.wait(10)

        response = SearchEngine(db, extractor, sites=service.sites, config=search_config).search('поиск')

        assert response.result
        assert response.count == 1
        [item] = response.data
        assert item.uri == '/'
        assert item.title == 'Главная'
        assert item.relevance == 1.0
        assert '<b>Поиск</b>' in item.snippet
