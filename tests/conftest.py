import threading
from collections import Counter

import pytest

from config import CRAWLER_CONFIG, SEARCH_CONFIG
from database import Database
from fetcher import FetchError, parse_document
from lemmatizer import LemmaExtractor, MorphologyAnalyzer


class FakeMorphology(MorphologyAnalyzer):
    """Deterministic analyzer: a word is its own lemma unless listed below."""

    particle_tags = frozenset({'PREP', 'CONJ', 'INTJ'})

    PARTICLES = {
        'and': 'CONJ', 'or': 'CONJ', 'in': 'PREP', 'on': 'PREP', 'oh': 'INTJ',
        'и': 'CONJ', 'или': 'CONJ', 'в': 'PREP', 'на': 'PREP',
    }
    NORMAL_FORMS = {
        'cats': 'cat', 'dogs': 'dog', 'searching': 'search', 'searches': 'search',
    }
    UNKNOWN = {'zzz'}

    def get_morph_info(self, word):
        if word in self.UNKNOWN:
            return []
        return [self.PARTICLES.get(word, 'NOUN')]

    def get_normal_forms(self, word):
        return [self.NORMAL_FORMS.get(word, word)]


class FakeFetcher:
    """In-memory site graph: url -> (status code, html)."""

    def __init__(self, pages, failing=()):
        self.pages = pages
        self.failing = set(failing)
        self.calls = Counter()
        self._lock = threading.Lock()

    def fetch(self, url):
        with self._lock:
            self.calls[url] += 1
        if url in self.failing:
            raise FetchError(f"Error downloading {url}: connection refused")
        status, html = self.pages.get(url, (404, '<html><body>Not found</body></html>'))
        return parse_document(url, status, html)


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / 'search_engine_test.db'))
    yield database
    database.close()


@pytest.fixture
def fake_morphology():
    return FakeMorphology()


@pytest.fixture
def extractor(fake_morphology):
    return LemmaExtractor(cyrillic=fake_morphology, latin=fake_morphology)


@pytest.fixture
def crawler_config():
    config = dict(CRAWLER_CONFIG)
    config.update({'request_delay': 0, 'max_workers': 4, 'monitor_interval': 0.02})
    return config


@pytest.fixture
def search_config():
    return dict(SEARCH_CONFIG)
