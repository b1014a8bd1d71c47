"""
Value types shared by extractors, the scorer and the state machine.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

FeatureVector = Dict[str, float]


class ContentKind(str, Enum):
    TEXT = 'text'
    IMAGE = 'image'


class ScoreSource(str, Enum):
    LOCAL = 'local'
    REMOTE = 'remote'
    HYBRID = 'hybrid'


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp to [low, high]; NaN collapses to low."""
    if value is None or math.isnan(value):
        return low
    return max(low, min(high, value))


def is_present(value: Any) -> bool:
    """A feature counts only when it is a real, finite number."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class ScoreResult:
    """
    Outcome of scoring one content unit.

    metadata_only marks image results produced from URL/context signals
    alone, so thresholding can ask for a higher confidence bar.
    """
    score: float
    confidence: float
    features: FeatureVector = field(default_factory=dict)
    source: ScoreSource = ScoreSource.LOCAL
    metadata_only: bool = False
    profile: str = ''

    @classmethod
    def empty(cls, profile: str = '') -> 'ScoreResult':
        return cls(score=0.0, confidence=0.0, features={}, profile=profile)

    def with_source(self, source: ScoreSource) -> 'ScoreResult':
        return replace(self, source=source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': round(self.score, 4),
            'confidence': round(self.confidence, 4),
            'source': self.source.value,
            'metadata_only': self.metadata_only,
            'profile': self.profile,
            'features': {k: round(v, 4) for k, v in self.features.items()},
        }

    def delta(self, other: Optional['ScoreResult']) -> float:
        if other is None:
            return 0.0
        return abs(self.score - other.score)
