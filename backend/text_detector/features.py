"""
SlopShield Text Feature Extractor
Closed-form stylometric statistics over a block of page text.

Every feature is normalized to [0, 1] where 1 means "more machine-like".
Tokenization and sentence splitting happen once per text (TextStats) and
the resulting statistics object is shared by every feature function.

Features:
- char_entropy: Shannon entropy of the character distribution (inverted)
- burstiness / sentence_uniformity: sentence length variation (inverted)
- lexical_diversity: type/token ratio (inverted)
- ngram_repetition: fraction of repeated 3-grams
- word_entropy: normalized word frequency entropy (inverted)
- stopword_density, cross_entropy: function-word and common-word usage
- punctuation_diversity, discourse_marker_diversity (inverted)
- pronoun_person: third-person share of pronouns
- word_length_variance (inverted), coherence (adjacent-sentence overlap)
- syntactic_complexity, sentence_perplexity_variance, transition_smoothness
- hedging, list_density: stock phrasing and bullet layout
"""
import math
import re
import logging
from collections import Counter
from typing import Callable, Dict, List, Optional

from .lexicon import (
    STOPWORDS, COMMON_WORDS, DISCOURSE_MARKERS, HEDGING_PHRASES,
    FIRST_PERSON, SECOND_PERSON, THIRD_PERSON, CLAUSE_WORDS, HOMOGLYPH_MAP,
)

logger = logging.getLogger(__name__)

MIN_TEXT_CHARS = 20
MIN_WORDS = 20
MAX_CHAR_ENTROPY = 5.0
NEUTRAL = 0.5
SPARSE_MARKS = 0.3

_SENTENCE_SPLIT = re.compile(r'[.!?]+')
_WORD = re.compile(r"[a-z0-9']+")
_PUNCTUATION = re.compile(r'[.,;:!?\-()"\'\u2014\u2013\u2026]')
_BULLET_LINE = re.compile(r'(?m)^\s*(?:[-•*]|\d+[.)])\s+')
_WHITESPACE = re.compile(r'\s+')
_DISCOURSE = re.compile(r'\b(' + '|'.join(DISCOURSE_MARKERS) + r')\b')
_HOMOGLYPHS = str.maketrans(HOMOGLYPH_MAP)


def _clamp(value: float) -> float:
    if math.isnan(value):
        return NEUTRAL
    return max(0.0, min(1.0, value))


def _variance(values: List[float]) -> float:
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def _entropy(counts) -> float:
    total = sum(counts)
    if total == 0:
        return 0.0
    h = 0.0
    for c in counts:
        if c:
            p = c / total
            h -= p * math.log2(p)
    return h


def _tokenize(text: str) -> List[str]:
    return _WORD.findall(text.lower())


class TextStats:
    """
    Tokenized view of one text, computed once and shared by all features.

    Attributes:
        text: homoglyph-folded, whitespace-normalized text
        lower: lowercase copy of text
        words: lowercase word tokens
        content_words: tokens longer than 2 characters
        sentences: sentence fragments with more than 5 non-space characters
        sentence_words: word tokens per sentence
        punctuation: punctuation marks in order of appearance
        bullet_lines: number of lines that start with a list marker
    """

    def __init__(self, text: str):
        raw = (text or '').translate(_HOMOGLYPHS)
        self.bullet_lines = len(_BULLET_LINE.findall(raw))
        self.text = _WHITESPACE.sub(' ', raw).strip()
        self.lower = self.text.lower()
        self.words = _tokenize(self.text)
        self.content_words = [w for w in self.words if len(w) > 2]
        self.sentences = [s.strip() for s in _SENTENCE_SPLIT.split(self.text) if len(s.strip()) > 5]
        self.sentence_words = [_tokenize(s) for s in self.sentences]
        self.punctuation = _PUNCTUATION.findall(self.text)
        self._word_counts: Optional[Counter] = None

    @property
    def word_counts(self) -> Counter:
        if self._word_counts is None:
            self._word_counts = Counter(self.words)
        return self._word_counts


# ==================== FEATURE FUNCTIONS ====================

def char_entropy(stats: TextStats) -> float:
    if not stats.text:
        return NEUTRAL
    h = _entropy(Counter(stats.text).values())
    return _clamp(1 - h / MAX_CHAR_ENTROPY)


def burstiness(stats: TextStats) -> float:
    """Coefficient of variation of sentence lengths; uniform lengths score high."""
    lengths = [len(w) for w in stats.sentence_words]
    if len(lengths) < 3:
        return NEUTRAL
    mean = sum(lengths) / len(lengths)
    if mean == 0:
        return NEUTRAL
    cv = math.sqrt(_variance(lengths)) / mean
    return _clamp(1 - cv / 2)


def sentence_uniformity(stats: TextStats) -> float:
    lengths = [len(w) for w in stats.sentence_words]
    if len(lengths) < 3:
        return NEUTRAL
    return _clamp(1 - _variance(lengths) / 50)


def lexical_diversity(stats: TextStats) -> float:
    words = stats.content_words
    if len(words) < 10:
        return NEUTRAL
    ttr = len(set(words)) / len(words)
    return _clamp(1 - ttr * 2)


def ngram_repetition(stats: TextStats, n: int = 3) -> float:
    words = stats.words
    if len(words) < 10:
        return NEUTRAL
    grams = [tuple(words[i:i + n]) for i in range(len(words) - n + 1)]
    repeated = 1 - len(set(grams)) / len(grams)
    return _clamp(repeated * 2)


def word_entropy(stats: TextStats) -> float:
    words = stats.content_words
    if len(words) < 10:
        return NEUTRAL
    counts = Counter(words)
    if len(counts) < 2:
        return 1.0
    normalized = _entropy(counts.values()) / math.log2(len(counts))
    return _clamp(1 - normalized)


def stopword_density(stats: TextStats) -> float:
    if not stats.words:
        return NEUTRAL
    count = sum(1 for w in stats.words if w in STOPWORDS)
    return _clamp(count / len(stats.words) * 2)


def punctuation_diversity(stats: TextStats) -> float:
    marks = stats.punctuation
    if len(marks) < 5:
        return SPARSE_MARKS
    diversity = len(set(marks)) / min(len(marks), 10)
    return _clamp(1 - min(1.0, diversity))


def discourse_marker_diversity(stats: TextStats) -> float:
    markers = _DISCOURSE.findall(stats.lower)
    if len(markers) < 2:
        return SPARSE_MARKS
    diversity = len(set(markers)) / min(len(markers), 10)
    return _clamp(1 - diversity)


def pronoun_person(stats: TextStats) -> float:
    first = second = third = 0
    for w in stats.words:
        if w in FIRST_PERSON:
            first += 1
        elif w in SECOND_PERSON:
            second += 1
        elif w in THIRD_PERSON:
            third += 1
    total = first + second + third
    if total < 3:
        return NEUTRAL
    return _clamp(third / total * 1.3)


def word_length_variance(stats: TextStats) -> float:
    if len(stats.words) < 10:
        return NEUTRAL
    return _clamp(1 - _variance([len(w) for w in stats.words]) / 5)


def cross_entropy(stats: TextStats) -> float:
    words = stats.content_words
    if len(words) < 10:
        return NEUTRAL
    common = sum(1 for w in words if w in COMMON_WORDS)
    return _clamp(common / len(words) * 1.5)


def coherence(stats: TextStats) -> float:
    """Mean Jaccard overlap of content words between adjacent sentences."""
    if len(stats.sentence_words) < 2:
        return NEUTRAL
    total = 0.0
    pairs = 0
    for a, b in zip(stats.sentence_words, stats.sentence_words[1:]):
        s1 = {w for w in a if len(w) > 2}
        s2 = {w for w in b if len(w) > 2}
        union = len(s1 | s2)
        total += len(s1 & s2) / union if union else 0.0
        pairs += 1
    return _clamp(total / pairs * 2)


def syntactic_complexity(stats: TextStats) -> float:
    if len(stats.sentences) < 3:
        return NEUTRAL
    ratios = []
    for sentence, words in zip(stats.sentences, stats.sentence_words):
        if not words:
            ratios.append(0.0)
            continue
        clauses = sentence.count(',') + sum(1 for w in words if w in CLAUSE_WORDS)
        ratios.append(clauses / len(words))
    return _clamp(1 - _variance(ratios) * 20)


def sentence_perplexity_variance(stats: TextStats) -> float:
    """
    Variance of per-sentence mean word frequency, a closed-form stand-in for
    language-model perplexity. Machine text keeps it flat.
    """
    if len(stats.sentences) < 3 or not stats.words:
        return NEUTRAL
    freq = Counter(stats.content_words)
    total = len(stats.words)
    scores = []
    for words in stats.sentence_words:
        content = [w for w in words if len(w) > 2]
        if not content:
            scores.append(NEUTRAL)
            continue
        scores.append(sum(freq[w] / total for w in content) / len(content))
    return _clamp(1 - _variance(scores) * 10)


def transition_smoothness(stats: TextStats) -> float:
    words = stats.words
    if len(words) < 20:
        return NEUTRAL
    bigrams = Counter(zip(words, words[1:]))
    counts = stats.word_counts
    probs = [freq / counts[w1] for (w1, _), freq in bigrams.items()]
    return _clamp(sum(probs) / len(probs) * 2)


def hedging(stats: TextStats) -> float:
    hits = sum(1 for phrase in HEDGING_PHRASES if phrase in stats.lower)
    return _clamp(hits / 2)


def list_density(stats: TextStats) -> float:
    return _clamp(stats.bullet_lines / 5)


FEATURE_FUNCTIONS: Dict[str, Callable[[TextStats], float]] = {
    'char_entropy': char_entropy,
    'burstiness': burstiness,
    'sentence_uniformity': sentence_uniformity,
    'lexical_diversity': lexical_diversity,
    'ngram_repetition': ngram_repetition,
    'word_entropy': word_entropy,
    'stopword_density': stopword_density,
    'punctuation_diversity': punctuation_diversity,
    'discourse_marker_diversity': discourse_marker_diversity,
    'pronoun_person': pronoun_person,
    'word_length_variance': word_length_variance,
    'cross_entropy': cross_entropy,
    'coherence': coherence,
    'syntactic_complexity': syntactic_complexity,
    'sentence_perplexity_variance': sentence_perplexity_variance,
    'transition_smoothness': transition_smoothness,
    'hedging': hedging,
    'list_density': list_density,
}

QUICK_FEATURES = ('char_entropy', 'sentence_uniformity', 'stopword_density', 'list_density', 'hedging')


class TextFeatureExtractor:
    """
    Computes a FeatureVector from a text block.

    Texts whose trimmed length is under MIN_TEXT_CHARS, or that hold fewer
    than min_words words, are too short to carry a signal and produce an
    empty vector (which scores 0 with confidence 0).
    """

    def __init__(self, min_words: int = MIN_WORDS):
        self.min_words = min_words

    def is_analyzable(self, stats: TextStats) -> bool:
        return len(stats.text) >= MIN_TEXT_CHARS and len(stats.words) >= self.min_words

    def extract(self, text: str, names=None) -> Dict[str, float]:
        """
        Args:
            text: Raw text block
            names: Optional subset of FEATURE_FUNCTIONS keys; all when omitted

        Returns:
            Dict of feature name to value in [0, 1]
        """
        stats = TextStats(text)
        if not self.is_analyzable(stats):
            return {}
        selected = names if names is not None else FEATURE_FUNCTIONS.keys()
        features = {}
        for name in selected:
            fn = FEATURE_FUNCTIONS.get(name)
            if fn is None:
                logger.debug(f"Unknown text feature requested: {name}")
                continue
            features[name] = fn(stats)
        return features

    def quick_features(self, text: str) -> Dict[str, float]:
        return self.extract(text, QUICK_FEATURES)

    def refine_features(self, text: str) -> Dict[str, float]:
        return self.extract(text)

    @staticmethod
    def word_count(text: str) -> int:
        return len(_tokenize(text or ''))
