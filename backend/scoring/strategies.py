"""
Classifier strategy interfaces.

Refinement goes through a ranked list of classifier implementations per
content kind. The list is resolved once when the engine starts (dropping
implementations that report themselves unavailable) and is never probed
again per call.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

from core.errors import RemoteScorerUnreachable
from core.types import ScoreResult, ScoreSource, clamp

logger = logging.getLogger(__name__)


@runtime_checkable
class TextClassifier(Protocol):
    name: str
    priority: int

    def available(self) -> bool: ...

    async def classify(self, text: str, key: str) -> ScoreResult: ...


@runtime_checkable
class ImageClassifier(Protocol):
    name: str
    priority: int

    def available(self) -> bool: ...

    async def classify(self, payload: Any, key: str) -> ScoreResult: ...


def resolve_strategies(candidates: Sequence[Any]) -> List[Any]:
    """
    Rank available strategies, highest priority first.

    Args:
        candidates: Strategy instances in any order

    Returns:
        Available strategies sorted by descending priority (stable on ties)
    """
    resolved = []
    for strategy in candidates:
        try:
            ok = strategy.available()
        except Exception as e:
            logger.warning(f"Strategy {getattr(strategy, 'name', strategy)} failed its availability check: {e}")
            ok = False
        if ok:
            resolved.append(strategy)
        else:
            logger.info(f"Strategy {getattr(strategy, 'name', strategy)} unavailable, skipping")
    resolved.sort(key=lambda s: -getattr(s, 'priority', 0))
    logger.info(f"Resolved strategies: {[s.name for s in resolved]}")
    return resolved


def blend_results(local: ScoreResult, remote: Optional[ScoreResult],
                  remote_weight: float) -> ScoreResult:
    """
    Combine a local and a remote result into a HYBRID result.

    Without a remote result the local one is returned unchanged.
    """
    if remote is None:
        return local
    w = clamp(remote_weight)
    return ScoreResult(
        score=clamp(local.score * (1 - w) + remote.score * w),
        confidence=clamp(max(local.confidence, remote.confidence)),
        features=local.features,
        source=ScoreSource.HYBRID,
        metadata_only=local.metadata_only,
        profile=local.profile,
    )


class HybridClassifier:
    """
    Wraps a local classifier and asks the remote scorer for a second opinion.

    Only the local result's feature vector and the content key are sent.
    Any remote failure falls back to the local result.

    Args:
        local: Local TextClassifier or ImageClassifier
        remote: RemoteScorer
        remote_weight: Share of the remote score in the blend
        analytics: Optional Analytics for latency/error bookkeeping
    """

    priority = 20

    def __init__(self, local, remote, remote_weight: float = 0.6, analytics=None):
        self.local = local
        self.remote = remote
        self.remote_weight = remote_weight
        self.analytics = analytics
        self.name = f"hybrid_{local.name}"

    def available(self) -> bool:
        return bool(getattr(self.remote, 'enabled', False)) and self.local.available()

    async def classify(self, payload, key: str) -> ScoreResult:
        local = await self.local.classify(payload, key)
        if local.metadata_only or not local.features:
            self._track_local_only(local)
            return local

        length = len(payload) if isinstance(payload, str) else 0
        try:
            remote, latency_ms = await self.remote.timed_score_async(
                key, local.features, length, guess_language(payload)
            )
        except RemoteScorerUnreachable as e:
            logger.warning(f"Remote scorer unavailable, keeping local result: {e}")
            if self.analytics is not None:
                self.analytics.track_remote_request(e.latency_ms or 0.0, error=True)
            self._track_local_only(local)
            return local

        if self.analytics is not None:
            self.analytics.track_remote_request(latency_ms, error=False)
        blended = blend_results(local, remote, self.remote_weight)
        if self.analytics is not None:
            self.analytics.track_hybrid(local.score, remote.score, used_remote=True)
        return blended

    def _track_local_only(self, local: ScoreResult):
        if self.analytics is not None:
            self.analytics.track_hybrid(local.score, None, used_remote=False)


def guess_language(payload) -> str:
    """Coarse language tag: 'en' for mostly-ASCII text, 'und' otherwise."""
    if not isinstance(payload, str) or not payload:
        return 'und'
    ascii_letters = sum(1 for ch in payload if ch.isascii() and ch.isalpha())
    letters = sum(1 for ch in payload if ch.isalpha())
    return 'en' if letters and ascii_letters / letters > 0.9 else 'und'
