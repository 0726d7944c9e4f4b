import pytest

from lemmatizer import EnglishMorphology, LemmaExtractor, RussianMorphology


@pytest.fixture(scope='module')
def russian_extractor():
    return LemmaExtractor(cyrillic=RussianMorphology())


@pytest.fixture(scope='module')
def english_extractor():
    try:
        english = EnglishMorphology()
    except LookupError:
        pytest.skip('nltk tagger or wordnet data is not available')
    return LemmaExtractor(latin=english)


class TestExtractionPolicy:
    """Tokenization and filtering rules, independent of dictionaries."""

    def test_counts_normal_forms(self, extractor):
        lemmas = extractor.extract('cats and dogs, cats; cat!')

        assert lemmas == {'cat': 3, 'dog': 1}

    def test_particles_are_dropped(self, extractor):
        assert extractor.extract('and or in on oh и или в на') == {}

    def test_unknown_words_are_dropped(self, extractor):
        assert extractor.extract('zzz cat') == {'cat': 1}

    def test_non_letters_are_separators(self, extractor):
        assert extractor.extract('cat123dog_bird-fish') == {'cat': 1, 'dog': 1, 'bird': 1, 'fish': 1}

    def test_counts_are_positive(self, extractor):
        lemmas = extractor.extract('<p>searching searches cats</p> 42 !!!')

        assert all(count > 0 for count in lemmas.values())
        assert lemmas == {'search': 2, 'cat': 1, 'p': 2}

    def test_case_insensitive(self, extractor):
        assert extractor.extract('SEARCH').keys() == extractor.extract('search').keys()
        assert extractor.extract('SeArCh').keys() == extractor.extract('search').keys()

    def test_extract_set_collapses_repeats(self, extractor):
        assert extractor.extract_set('cats cat cats dogs') == {'cat', 'dog'}

    def test_empty(self, extractor):
        assert extractor.extract('') == {}
        assert extractor.extract_set('   ') == set()

    def test_missing_analyzer_skips_script(self, fake_morphology):
        only_latin = LemmaExtractor(latin=fake_morphology)

        assert only_latin.extract('cat кот') == {'cat': 1}


class TestRussianMorphology:
    def test_lemmas_of_russian_text(self, russian_extractor):
        lemmas = russian_extractor.extract('Повторное появление леопарда в Осетии позволяет предположить')

        assert 'леопард' in lemmas
        assert 'осетия' in lemmas
        assert 'появление' in lemmas
        assert 'в' not in lemmas

    def test_counts_words(self, russian_extractor):
        lemmas = russian_extractor.extract('поиск информации поиск данных поиск')

        assert lemmas['поиск'] == 3

    def test_extract_set_is_distinct(self, russian_extractor):
        assert len(russian_extractor.extract_set('повторное появление повторное')) == 2

        lemmas = russian_extractor.extract_set('Повторное появление леопарда повторное')
        assert lemmas == {'повторный', 'появление', 'леопард'}

    def test_particles_are_filtered(self, russian_extractor):
        lemmas = russian_extractor.extract('и или но у в на с')

        assert len(lemmas) < 3

    def test_special_characters(self, russian_extractor):
        lemmas = russian_extractor.extract('поиск!@#$%^&*()информации')

        assert 'поиск' in lemmas
        assert 'информация' in lemmas

    def test_parse_cache_belongs_to_instance(self):
        first, second = RussianMorphology(), RussianMorphology()

        first.get_normal_forms('поиск')
        first.get_morph_info('поиск')

        assert first._parse.cache_info().currsize == 1
        assert second._parse.cache_info().currsize == 0

    def test_case_insensitive(self, russian_extractor):
        first = russian_extractor.extract('ПОИСК')

        assert first
        assert first.keys() == russian_extractor.extract('поиск').keys()
        assert first.keys() == russian_extractor.extract('ПоИсК').keys()


class TestEnglishMorphology:
    def test_lemmas_of_english_text(self, english_extractor):
        lemmas = english_extractor.extract('The quick brown fox jumps over the lazy dog')

        assert 'fox' in lemmas
        assert 'dog' in lemmas

    def test_conjunctions_are_filtered(self, english_extractor):
        assert 'and' not in english_extractor.extract('cats and dogs')

    def test_plural_normal_form(self, english_extractor):
        assert 'dog' in english_extractor.extract_set('dogs')
