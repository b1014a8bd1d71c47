"""
Local text classifier.

quick() runs synchronously at discovery time on the cheap feature subset;
classify() is the asynchronous refinement over the full feature set.
"""
import asyncio
import logging
from typing import Optional

from core.types import ScoreResult
from scoring.ensemble import EnsembleScorer, ScoringProfile
from scoring.profiles import TEXT_QUICK, TEXT_REFINED

from .features import TextFeatureExtractor

logger = logging.getLogger(__name__)


class LocalTextClassifier:
    """
    Args:
        extractor: TextFeatureExtractor (default created)
        scorer: EnsembleScorer (default created)
        quick_profile / refined_profile: ScoringProfiles for the two stages
    """

    name = 'local_text'
    priority = 10

    def __init__(self, extractor: Optional[TextFeatureExtractor] = None,
                 scorer: Optional[EnsembleScorer] = None,
                 quick_profile: ScoringProfile = TEXT_QUICK,
                 refined_profile: ScoringProfile = TEXT_REFINED):
        self.extractor = extractor or TextFeatureExtractor()
        self.scorer = scorer or EnsembleScorer()
        self.quick_profile = quick_profile
        self.refined_profile = refined_profile

    def available(self) -> bool:
        return True

    def quick(self, text: str) -> ScoreResult:
        features = self.extractor.quick_features(text)
        return self.scorer.score(features, self.quick_profile)

    def refine(self, text: str) -> ScoreResult:
        features = self.extractor.refine_features(text)
        return self.scorer.score(features, self.refined_profile)

    async def classify(self, text: str, key: str) -> ScoreResult:
        await asyncio.sleep(0)
        result = self.refine(text)
        logger.debug(f"Refined text {key[:8]}: score={result.score:.3f} confidence={result.confidence:.3f}")
        return result
