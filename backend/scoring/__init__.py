"""
SlopShield Scoring Module
Ensemble scoring, profiles, result caching and the remote scorer client.

Components:
- EnsembleScorer: weighted ensemble with variance-based confidence
- ScoringProfile: weight table plus exponent/confidence constants
- ResultCache: bounded FIFO (or LRU) memo per content kind
- RemoteScorer: privacy-preserving client for the cloud scoring service
- TextClassifier / ImageClassifier: refinement strategy interfaces
"""

from .ensemble import EnsembleScorer, ScoringProfile
from .profiles import (
    TEXT_QUICK, TEXT_REFINED, IMAGE_QUICK, IMAGE_REFINED, IMAGE_METADATA, CLOUD,
    get_profile,
)
from .cache import ResultCache, stage_key, STAGE_QUICK, STAGE_REFINED
from .remote_client import RemoteScorer
from .strategies import (
    TextClassifier, ImageClassifier, HybridClassifier, resolve_strategies, blend_results,
)

__all__ = [
    'EnsembleScorer',
    'ScoringProfile',
    'TEXT_QUICK',
    'TEXT_REFINED',
    'IMAGE_QUICK',
    'IMAGE_REFINED',
    'IMAGE_METADATA',
    'CLOUD',
    'get_profile',
    'ResultCache',
    'stage_key',
    'STAGE_QUICK',
    'STAGE_REFINED',
    'RemoteScorer',
    'TextClassifier',
    'ImageClassifier',
    'HybridClassifier',
    'resolve_strategies',
    'blend_results',
]
