"""
SlopShield Ensemble Scorer
Combines a named feature vector into a single AI-likelihood score plus a
self-consistency confidence.

One scorer serves every content kind and stage; what differs between quick
text scoring, refined image scoring and the remote service is only the
ScoringProfile passed in.

Algorithm:
1. Weighted mean over features present in both vector and profile,
   normalized by the weights actually applied.
2. Optional score boost when page metadata strongly corroborates.
3. Clamp, then the profile's exponent for high-end selectivity.
4. Confidence = 1 - variance * k over the same values, floored.
5. Optional bounded confidence boost from metadata.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from core.types import ScoreResult, ScoreSource, clamp, is_present

logger = logging.getLogger(__name__)

STRONG_METADATA = 0.5
WEAK_METADATA = 0.3


@dataclass(frozen=True)
class ScoringProfile:
    """
    Weight table plus the shaping constants that belong to it.

    Attributes:
        name: Profile identifier, recorded on every ScoreResult
        weights: feature name -> non-negative weight (order is iteration order)
        exponent: Applied after clamping; 1.0 leaves the score linear
        sensitivity: Variance multiplier k in 1 - variance * k
        confidence_floor: Lowest confidence once any feature contributed
        metadata_score_boost: Score multiplier when metadata strongly agrees
        metadata_confidence_boost: (both strong, either weak) additions
    """
    name: str
    weights: Mapping[str, float]
    exponent: float = 1.0
    sensitivity: float = 1.5
    confidence_floor: float = 0.5
    metadata_score_boost: float = 1.0
    metadata_confidence_boost: Tuple[float, float] = (0.0, 0.0)
    description: str = field(default='', compare=False)

    def __post_init__(self):
        for name, weight in self.weights.items():
            if weight < 0:
                raise ValueError(f"Profile {self.name}: negative weight for {name}")
        if self.exponent <= 0:
            raise ValueError(f"Profile {self.name}: exponent must be positive")

    @property
    def feature_names(self) -> Tuple[str, ...]:
        return tuple(self.weights.keys())


class EnsembleScorer:
    """Stateless weighted-ensemble scorer. Safe to share across tasks."""

    def score(self, features: Mapping[str, float], profile: ScoringProfile,
              metadata: Optional[Mapping[str, float]] = None,
              source: ScoreSource = ScoreSource.LOCAL) -> ScoreResult:
        """
        Score a feature vector.

        Args:
            features: feature name -> value in [0, 1]; missing/NaN values skipped
            profile: ScoringProfile to apply
            metadata: Optional {'url_score', 'context_score'} corroboration
            source: Recorded on the result

        Returns:
            ScoreResult (score 0, confidence 0 when nothing was scoreable)
        """
        used: Dict[str, float] = {}
        weighted = 0.0
        applied = 0.0

        for name, weight in profile.weights.items():
            if weight <= 0:
                continue
            value = features.get(name)
            if not is_present(value):
                continue
            value = clamp(float(value))
            used[name] = value
            weighted += weight * value
            applied += weight

        if applied == 0:
            return ScoreResult(score=0.0, confidence=0.0, features={}, source=source,
                               profile=profile.name)

        url_score, context_score = _metadata_scores(metadata)
        strong = url_score > STRONG_METADATA or context_score > STRONG_METADATA

        score = weighted / applied
        if strong and profile.metadata_score_boost != 1.0:
            score *= profile.metadata_score_boost
        score = clamp(score)
        if profile.exponent != 1.0:
            score = clamp(score ** profile.exponent)

        confidence = self.confidence(list(used.values()), profile)
        both_strong, either_weak = profile.metadata_confidence_boost
        if url_score > STRONG_METADATA and context_score > STRONG_METADATA:
            confidence = clamp(confidence + both_strong)
        elif url_score > WEAK_METADATA or context_score > WEAK_METADATA:
            confidence = clamp(confidence + either_weak)

        return ScoreResult(
            score=score,
            confidence=confidence,
            features=used,
            source=source,
            profile=profile.name,
        )

    @staticmethod
    def confidence(values, profile: ScoringProfile) -> float:
        """Agreement between feature values; never below the profile floor."""
        if not values:
            return 0.0
        mean = sum(values) / len(values)
        variance = sum((v - mean) ** 2 for v in values) / len(values)
        return clamp(max(profile.confidence_floor, 1 - variance * profile.sensitivity))


def _metadata_scores(metadata: Optional[Mapping[str, float]]) -> Tuple[float, float]:
    if not metadata:
        return 0.0, 0.0
    url = metadata.get('url_score')
    context = metadata.get('context_score')
    return (
        clamp(float(url)) if is_present(url) else 0.0,
        clamp(float(context)) if is_present(context) else 0.0,
    )
