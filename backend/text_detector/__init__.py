"""
SlopShield Text Detector Module
Stylometric feature extraction and local classification for page text.

Components:
- TextFeatureExtractor: closed-form features over a shared TextStats view
- LocalTextClassifier: quick (synchronous) and refined (async) scoring
"""

from .features import TextFeatureExtractor, TextStats, FEATURE_FUNCTIONS, QUICK_FEATURES
from .classifier import LocalTextClassifier

__all__ = [
    'TextFeatureExtractor',
    'TextStats',
    'FEATURE_FUNCTIONS',
    'QUICK_FEATURES',
    'LocalTextClassifier',
]
