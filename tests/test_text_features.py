"""
Test Suite for the Text Feature Extractor
Covers short-text handling, feature ranges and the local text classifier.
"""

import math
import sys
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'backend'))

from text_detector import TextFeatureExtractor, TextStats, FEATURE_FUNCTIONS, QUICK_FEATURES
from text_detector import LocalTextClassifier
from text_detector import features as text_features


UNIFORM_PARAGRAPH = (
    "The cat is on the mat and the dog is in the house. "
    "The sun is at the top of the sky in the day. "
    "The man is at the door of the house with a hat. "
    "The boy is in the park with the dog."
)

CASUAL_PARAGRAPH = (
    "Honestly? I didn't expect much. We drove three hours north, got lost twice, "
    "argued about whose turn it was to pick music, and ended up at a diner that smelled "
    "like burnt coffee and maple syrup. Best pancakes I've had in years! My brother "
    "insisted on photographing every plate; the waitress laughed at him - kindly, I think."
)


class TestTextStats:
    """Tokenization is shared across features"""

    def test_words_and_sentences(self):
        stats = TextStats(UNIFORM_PARAGRAPH)
        assert len(stats.words) == 46
        assert len(stats.sentences) == 4
        assert [len(w) for w in stats.sentence_words] == [13, 12, 12, 9]

    def test_homoglyphs_are_folded(self):
        # Cyrillic a and e look like their Latin counterparts
        stats = TextStats("The c\u0430t s\u0430t on the m\u0430t n\u0435ar the door.")
        assert 'cat' in stats.words
        assert 'near' in stats.words

    def test_bullet_lines_counted(self):
        stats = TextStats("Steps:\n- first item\n- second item\n1. third item\nplain line")
        assert stats.bullet_lines == 3


class TestTextFeatureExtractor:
    """Feature extraction behaviour"""

    @pytest.fixture
    def extractor(self):
        return TextFeatureExtractor()

    @pytest.mark.parametrize("text", ["", "   ", "short", "Too short to score at all."])
    def test_short_text_returns_empty_vector(self, extractor, text):
        assert extractor.extract(text) == {}

    def test_few_words_returns_empty_vector(self, extractor):
        text = "The quick brown fox jumps over the lazy sleeping dog."
        assert len(text.strip()) >= 20
        assert extractor.extract(text) == {}

    def test_all_features_in_unit_range(self, extractor):
        for text in (UNIFORM_PARAGRAPH, CASUAL_PARAGRAPH):
            features = extractor.extract(text)
            assert set(features) == set(FEATURE_FUNCTIONS)
            for name, value in features.items():
                assert not math.isnan(value), name
                assert 0.0 <= value <= 1.0, f"{name}={value}"

    def test_quick_features_subset(self, extractor):
        features = extractor.quick_features(UNIFORM_PARAGRAPH)
        assert tuple(features.keys()) == QUICK_FEATURES

    def test_unknown_feature_names_ignored(self, extractor):
        features = extractor.extract(UNIFORM_PARAGRAPH, ['stopword_density', 'does_not_exist'])
        assert list(features) == ['stopword_density']

    def test_extraction_is_deterministic(self, extractor):
        assert extractor.extract(CASUAL_PARAGRAPH) == extractor.extract(CASUAL_PARAGRAPH)

    def test_word_count(self):
        assert TextFeatureExtractor.word_count(UNIFORM_PARAGRAPH) == 46
        assert TextFeatureExtractor.word_count(None) == 0


class TestIndividualFeatures:
    """Closed-form statistics on hand-checked inputs"""

    def test_uniform_sentences_score_high(self):
        stats = TextStats(UNIFORM_PARAGRAPH)
        # lengths 13, 12, 12, 9 -> variance 2.25
        assert text_features.sentence_uniformity(stats) == pytest.approx(1 - 2.25 / 50)

    def test_stopword_heavy_text_saturates(self):
        assert text_features.stopword_density(TextStats(UNIFORM_PARAGRAPH)) == 1.0

    def test_fewer_than_three_sentences_is_neutral(self):
        stats = TextStats("Only one sentence here with enough words to count for something")
        assert text_features.burstiness(stats) == text_features.NEUTRAL
        assert text_features.sentence_uniformity(stats) == text_features.NEUTRAL
        assert text_features.syntactic_complexity(stats) == text_features.NEUTRAL

    def test_sparse_punctuation_default(self):
        stats = TextStats("no punctuation in this text at all just words")
        assert text_features.punctuation_diversity(stats) == text_features.SPARSE_MARKS

    def test_hedging_phrases(self):
        stats = TextStats("Overall, it is important to note that results vary. In conclusion, be careful.")
        assert text_features.hedging(stats) == 1.0
        assert text_features.hedging(TextStats(UNIFORM_PARAGRAPH)) == 0.0

    def test_repeated_trigrams(self):
        text = "one two three " * 10
        assert text_features.ngram_repetition(TextStats(text)) == 1.0

    def test_pronoun_person_third_heavy(self):
        stats = TextStats("He said they would bring it to them, and she agreed with him.")
        assert text_features.pronoun_person(stats) == 1.0


class TestLocalTextClassifier:
    """Quick and refined scoring through the ensemble"""

    @pytest.fixture
    def classifier(self):
        return LocalTextClassifier()

    def test_uniform_paragraph_scores_above_default_threshold(self, classifier):
        result = classifier.quick(UNIFORM_PARAGRAPH)
        assert result.score > 0.25
        assert 0.5 <= result.confidence <= 1.0
        assert result.profile == 'text_quick'

    def test_short_text_scores_zero(self, classifier):
        result = classifier.quick("The quick brown fox jumps over the lazy sleeping dog.")
        assert result.score == 0.0
        assert result.confidence == 0.0

    def test_refine_uses_full_vector(self, classifier):
        result = classifier.refine(CASUAL_PARAGRAPH)
        assert result.profile == 'text_refined'
        assert 0.0 <= result.score <= 1.0
        assert 'burstiness' in result.features

    @pytest.mark.asyncio
    async def test_classify_matches_refine(self, classifier):
        result = await classifier.classify(CASUAL_PARAGRAPH, 'key')
        assert result == classifier.refine(CASUAL_PARAGRAPH)
