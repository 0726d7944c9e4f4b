"""
Модуль лемматизации текста
"""

import re
import threading
from collections import Counter
from functools import lru_cache
from typing import Dict, List, Optional, Set

from utils import logger, strip_markup

_NON_LETTERS_RE = re.compile(r'[^а-яёa-z\s]')
_CYRILLIC_RE = re.compile(r'^[а-яё]+$')
_LATIN_RE = re.compile(r'^[a-z]+$')


class MorphologyAnalyzer:
    """
    Обертка над внешним морфологическим анализатором.

    Наследники возвращают грамматические признаки слова и его нормальные
    формы; particle_tags - признаки служебных частей речи (предлог, союз,
    междометие), слова с ними не индексируются.
    """

    particle_tags: frozenset = frozenset()

    def get_morph_info(self, word: str) -> List[str]:
        raise NotImplementedError

    def get_normal_forms(self, word: str) -> List[str]:
        raise NotImplementedError


class RussianMorphology(MorphologyAnalyzer):
    """Русская морфология на основе pymorphy3 (теги OpenCorpora)"""

    particle_tags = frozenset({'PREP', 'CONJ', 'INTJ'})

    def __init__(self):
        import pymorphy3

        self._morph = pymorphy3.MorphAnalyzer()
        self._parse = lru_cache(maxsize=100_000)(self._parse_uncached)

    def _parse_uncached(self, word: str):
        return tuple(self._morph.parse(word))

    def get_morph_info(self, word: str) -> List[str]:
        return [str(parsed.tag.POS) for parsed in self._parse(word) if parsed.tag.POS]

    def get_normal_forms(self, word: str) -> List[str]:
        return [parsed.normal_form for parsed in self._parse(word)]


class EnglishMorphology(MorphologyAnalyzer):
    """
    Английская морфология на основе nltk: частеречная разметка
    (теги Penn Treebank) и лемматизатор WordNet
    """

    particle_tags = frozenset({'IN', 'CC', 'UH'})

    _RESOURCES = (
        ('taggers/averaged_perceptron_tagger_eng', 'averaged_perceptron_tagger_eng'),
        ('corpora/wordnet', 'wordnet'),
    )

    def __init__(self):
        import nltk
        from nltk.corpus import wordnet
        from nltk.stem import WordNetLemmatizer
        from nltk.tag import PerceptronTagger

        for resource, package in self._RESOURCES:
            try:
                nltk.data.find(resource)
            except LookupError:
                nltk.download(package, quiet=True)

        # Обе модели должны загрузиться здесь, а не при первом слове
        wordnet.ensure_loaded()
        self._tagger = PerceptronTagger()
        self._lemmatizer = WordNetLemmatizer()
        self._lock = threading.Lock()
        self._tag = lru_cache(maxsize=100_000)(self._tag_uncached)

    def _tag_uncached(self, word: str) -> str:
        with self._lock:
            return self._tagger.tag([word])[0][1]

    @staticmethod
    def _wordnet_pos(tag: str) -> str:
        if tag.startswith('V'):
            return 'v'
        if tag.startswith('J'):
            return 'a'
        if tag.startswith('R'):
            return 'r'
        return 'n'

    def get_morph_info(self, word: str) -> List[str]:
        return [self._tag(word)]

    def get_normal_forms(self, word: str) -> List[str]:
        tag = self._tag(word)
        with self._lock:
            return [self._lemmatizer.lemmatize(word, self._wordnet_pos(tag))]


def default_analyzers() -> Dict[str, Optional[MorphologyAnalyzer]]:
    """Анализаторы по умолчанию для кириллицы и латиницы"""
    analyzers: Dict[str, Optional[MorphologyAnalyzer]] = {'cyrillic': RussianMorphology()}
    try:
        analyzers['latin'] = EnglishMorphology()
    except LookupError as e:
        logger.warning(f"English morphology is unavailable, latin words will be skipped: {e}")
        analyzers['latin'] = None
    return analyzers


class LemmaExtractor:
    """Извлечение лемм из текста"""

    def __init__(self, cyrillic: Optional[MorphologyAnalyzer] = None,
                 latin: Optional[MorphologyAnalyzer] = None):
        if cyrillic is None and latin is None:
            analyzers = default_analyzers()
            cyrillic, latin = analyzers['cyrillic'], analyzers['latin']
        self.cyrillic = cyrillic
        self.latin = latin

    @staticmethod
    def tokenize(text: str) -> List[str]:
        """Нижний регистр, все кроме букв и пробелов становится разделителем"""
        text = _NON_LETTERS_RE.sub(' ', (text or '').lower())
        return text.split()

    def _analyzer_for(self, word: str) -> Optional[MorphologyAnalyzer]:
        if _CYRILLIC_RE.match(word):
            return self.cyrillic
        if _LATIN_RE.match(word):
            return self.latin
        return None

    def lemma_of(self, word: str) -> Optional[str]:
        """
        Нормальная форма слова или None, если слово не индексируется:
        анализатор не вернул данных или слово - служебная часть речи
        """
        analyzer = self._analyzer_for(word)
        if analyzer is None:
            return None

        morph_info = analyzer.get_morph_info(word)
        if not morph_info:
            return None

        normal_forms = analyzer.get_normal_forms(word)
        if not normal_forms:
            return None

        if any(tag.upper() in analyzer.particle_tags for tag in morph_info):
            return None

        return normal_forms[0]

    def extract(self, text: str) -> Dict[str, int]:
        """Словарь лемма -> количество вхождений"""
        lemmas = Counter()
        for word in self.tokenize(text):
            lemma = self.lemma_of(word)
            if lemma:
                lemmas[lemma] += 1
        return dict(lemmas)

    def extract_set(self, text: str) -> Set[str]:
        """Множество различных лемм текста"""
        return {lemma for lemma in map(self.lemma_of, self.tokenize(text)) if lemma}

    @staticmethod
    def strip_markup(html: str) -> str:
        return strip_markup(html)
