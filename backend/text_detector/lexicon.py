"""
Fixed word lists used by the stylometric features.

These sets are part of the feature definitions: changing them changes
every score, so they are plain constants rather than anything downloaded.
"""

# Stopwords counted by stopword_density
STOPWORDS = frozenset([
    'the', 'is', 'at', 'which', 'on', 'and', 'a', 'an', 'to', 'of', 'in', 'for', 'with',
])

# 100 most frequent English words, reference distribution for cross_entropy
COMMON_WORDS = frozenset([
    'the', 'be', 'to', 'of', 'and', 'a', 'in', 'that', 'have', 'i',
    'it', 'for', 'not', 'on', 'with', 'he', 'as', 'you', 'do', 'at',
    'this', 'but', 'his', 'by', 'from', 'they', 'we', 'say', 'her', 'she',
    'or', 'an', 'will', 'my', 'one', 'all', 'would', 'there', 'their', 'what',
    'so', 'up', 'out', 'if', 'about', 'who', 'get', 'which', 'go', 'me',
    'when', 'make', 'can', 'like', 'time', 'no', 'just', 'him', 'know', 'take',
    'people', 'into', 'year', 'your', 'good', 'some', 'could', 'them', 'see', 'other',
    'than', 'then', 'now', 'look', 'only', 'come', 'its', 'over', 'think', 'also',
    'back', 'after', 'use', 'two', 'how', 'our', 'work', 'first', 'well', 'way',
    'even', 'new', 'want', 'because', 'any', 'these', 'give', 'day', 'most', 'us',
])

DISCOURSE_MARKERS = (
    'however', 'therefore', 'moreover', 'furthermore', 'nevertheless', 'consequently',
    'additionally', 'meanwhile', 'thus', 'hence', 'indeed', 'specifically', 'generally',
    'particularly', 'especially', 'notably', 'importantly', 'interestingly', 'surprisingly',
    'obviously', 'clearly', 'essentially', 'basically', 'ultimately', 'finally', 'initially',
    'subsequently', 'previously', 'currently', 'recently', 'traditionally', 'typically',
    'usually', 'often', 'sometimes', 'rarely', 'never', 'always',
)

HEDGING_PHRASES = (
    'it is important to note',
    'in conclusion',
    'generally speaking',
    'overall',
    'as mentioned earlier',
)

FIRST_PERSON = frozenset(['i', 'me', 'my', 'mine', 'myself', 'we', 'us', 'our', 'ours', 'ourselves'])
SECOND_PERSON = frozenset(['you', 'your', 'yours', 'yourself', 'yourselves'])
THIRD_PERSON = frozenset([
    'he', 'she', 'it', 'him', 'her', 'his', 'hers', 'its',
    'they', 'them', 'their', 'theirs', 'themselves',
])

# Tokens that open a new clause inside a sentence (commas counted separately)
CLAUSE_WORDS = frozenset(['and', 'but', 'or', 'because', 'although', 'while', 'if', 'when'])

# Unicode lookalikes folded to ASCII before tokenizing
HOMOGLYPH_MAP = {
    # Cyrillic
    '\u0430': 'a', '\u0435': 'e', '\u043e': 'o', '\u0440': 'p',
    '\u0441': 'c', '\u0443': 'y', '\u0445': 'x', '\u0456': 'i',
    # Greek
    '\u03b1': 'a', '\u03bf': 'o', '\u03b5': 'e',
    # Invisible characters
    '\u200b': '', '\u200c': '', '\u200d': '',
    '\ufeff': '', '\u00ad': '', '\u2060': '',
}
