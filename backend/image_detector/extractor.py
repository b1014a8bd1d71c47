"""
SlopShield Image Feature Extractor
Runs the metadata path and, unless it short-circuits, the pixel path.

Metadata path: url_score/context_score from the page context. When either
exceeds SHORT_CIRCUIT_THRESHOLD the pixels are never read and a
metadata-only ScoreResult is returned directly.

Pixel path: PixelAnalyzer statistics over the decoded sample. If pixels
cannot be read (cross-origin, undecodable bytes) the extraction is marked
pixels_available=False and callers fall back to metadata-only scoring.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from core.errors import PixelAccessDenied
from core.types import ScoreResult, ScoreSource

from .metadata_analyzer import MetadataAnalyzer
from .pixel_analyzer import PixelAnalyzer, QUICK_FEATURES
from .sample import ImagePayload, load_sample

logger = logging.getLogger(__name__)


@dataclass
class ImageExtraction:
    features: Dict[str, float] = field(default_factory=dict)
    metadata: Dict = field(default_factory=dict)
    short_circuit: Optional[ScoreResult] = None
    pixels_available: bool = True
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def metadata_features(self) -> Dict[str, float]:
        return {
            'url_score': self.metadata.get('url_score', 0.0),
            'context_score': self.metadata.get('context_score', 0.0),
        }


class ImageFeatureExtractor:
    """
    Args:
        metadata_analyzer: MetadataAnalyzer instance (default created)
        pixel_analyzer: PixelAnalyzer instance (default created)
    """

    def __init__(self, metadata_analyzer: Optional[MetadataAnalyzer] = None,
                 pixel_analyzer: Optional[PixelAnalyzer] = None):
        self.metadata_analyzer = metadata_analyzer or MetadataAnalyzer()
        self.pixel_analyzer = pixel_analyzer or PixelAnalyzer()

    def metadata_only_result(self, meta: Dict) -> ScoreResult:
        """High-confidence result built from page context alone."""
        url_score = meta['url_score']
        context_score = meta['context_score']
        return ScoreResult(
            score=max(url_score, context_score),
            confidence=self.metadata_analyzer.confidence(url_score, context_score),
            features={'url_score': url_score, 'context_score': context_score},
            source=ScoreSource.REMOTE,
            metadata_only=True,
            profile='metadata_short_circuit',
        )

    def _prepare(self, payload: ImagePayload):
        """Metadata pass; returns (extraction, sample or None)."""
        meta = self.metadata_analyzer.analyze(payload)
        extraction = ImageExtraction(
            metadata=meta,
            width=payload.declared_width,
            height=payload.declared_height,
        )
        if meta['short_circuit']:
            extraction.short_circuit = self.metadata_only_result(meta)
            return extraction, None

        try:
            sample = load_sample(payload)
        except PixelAccessDenied as e:
            logger.info(f"Pixel analysis unavailable, using metadata only: {e}")
            extraction.pixels_available = False
            return extraction, None

        extraction.width, extraction.height = sample.original_size
        return extraction, sample

    def extract(self, payload: ImagePayload, names: Optional[Iterable[str]] = None) -> ImageExtraction:
        """
        Extract features for one image.

        Args:
            payload: ImagePayload from the discovery stream
            names: Pixel feature names; all when omitted

        Returns:
            ImageExtraction (short_circuit is set when metadata alone decides)
        """
        extraction, sample = self._prepare(payload)
        if sample is not None:
            extraction.features = self.pixel_analyzer.analyze(sample, names)
            extraction.features.update(extraction.metadata_features)
        return extraction

    def quick_extract(self, payload: ImagePayload) -> ImageExtraction:
        return self.extract(payload, QUICK_FEATURES)

    async def extract_async(self, payload: ImagePayload, names: Optional[Iterable[str]] = None,
                            yield_every: int = 4) -> ImageExtraction:
        """
        Same as extract() but yields to the event loop every yield_every
        pixel features so large images do not starve other tasks.
        """
        extraction, sample = self._prepare(payload)
        if sample is None:
            return extraction
        for i, (name, value) in enumerate(self.pixel_analyzer.iter_features(sample, names), start=1):
            extraction.features[name] = value
            if i % yield_every == 0:
                await asyncio.sleep(0)
        extraction.features.update(extraction.metadata_features)
        return extraction
