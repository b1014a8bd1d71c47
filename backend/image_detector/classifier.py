"""
Local image classifier.

Three outcomes for every image:
- metadata short-circuit: the page context alone is conclusive
- pixel scoring: quick or refined pixel features through the ensemble
- metadata fallback: pixels unreadable, url/context scored on their own
  (flagged metadata_only so a stricter confidence bar applies)
"""
import dataclasses
import logging
from typing import Optional

from core.types import ScoreResult
from scoring.ensemble import EnsembleScorer, ScoringProfile
from scoring.profiles import IMAGE_QUICK, IMAGE_REFINED, IMAGE_METADATA

from .extractor import ImageExtraction, ImageFeatureExtractor
from .sample import ImagePayload

logger = logging.getLogger(__name__)


class LocalImageClassifier:
    """
    Args:
        extractor: ImageFeatureExtractor (default created)
        scorer: EnsembleScorer (default created)
        yield_every: Pixel features computed between event-loop yields
    """

    name = 'local_image'
    priority = 10

    def __init__(self, extractor: Optional[ImageFeatureExtractor] = None,
                 scorer: Optional[EnsembleScorer] = None,
                 quick_profile: ScoringProfile = IMAGE_QUICK,
                 refined_profile: ScoringProfile = IMAGE_REFINED,
                 metadata_profile: ScoringProfile = IMAGE_METADATA,
                 yield_every: int = 4):
        self.extractor = extractor or ImageFeatureExtractor()
        self.scorer = scorer or EnsembleScorer()
        self.quick_profile = quick_profile
        self.refined_profile = refined_profile
        self.metadata_profile = metadata_profile
        self.yield_every = yield_every

    def available(self) -> bool:
        return True

    def quick(self, payload: ImagePayload) -> ScoreResult:
        return self._score(self.extractor.quick_extract(payload), self.quick_profile)

    async def classify(self, payload: ImagePayload, key: str) -> ScoreResult:
        extraction = await self.extractor.extract_async(payload, yield_every=self.yield_every)
        result = self._score(extraction, self.refined_profile)
        logger.debug(f"Refined image {key[:8]}: score={result.score:.3f} confidence={result.confidence:.3f}")
        return result

    def _score(self, extraction: ImageExtraction, profile: ScoringProfile) -> ScoreResult:
        if extraction.short_circuit is not None:
            return extraction.short_circuit
        if not extraction.pixels_available:
            result = self.scorer.score(extraction.metadata_features, self.metadata_profile)
            return dataclasses.replace(result, metadata_only=True)
        return self.scorer.score(extraction.features, profile, metadata=extraction.metadata_features)
