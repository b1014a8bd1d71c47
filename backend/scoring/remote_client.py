"""
Remote Scorer Client
Sends derived features to the optional cloud scoring service.

Only a content hash, the numeric feature vector and coarse metadata
(length, language) ever leave the process. Raw text and image bytes are
never part of a request.
"""
import asyncio
import logging
import time
from typing import Dict, Mapping, Optional, Tuple

import requests

from core.config import REMOTE_TIMEOUT, REMOTE_URL
from core.errors import RemoteScorerUnreachable
from core.types import ScoreResult, ScoreSource, clamp, is_present

logger = logging.getLogger(__name__)

SCORE_PATH = '/api/score'


class RemoteScorer:
    """
    Thin client for POST {contentHash, features, metadata} -> {score, confidence?}.

    Args:
        endpoint: Base URL of the service (empty disables the client)
        timeout: Seconds before the call is abandoned
        session: Optional requests.Session to reuse connections
    """

    def __init__(self, endpoint: str = REMOTE_URL, timeout: float = REMOTE_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.endpoint = (endpoint or '').rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint)

    def build_request(self, content_hash: str, features: Mapping[str, float],
                      length: int = 0, language: str = 'en') -> Dict:
        return {
            'contentHash': content_hash,
            'features': {k: float(v) for k, v in features.items() if is_present(v)},
            'metadata': {'length': int(length), 'language': language},
        }

    def score(self, content_hash: str, features: Mapping[str, float],
              length: int = 0, language: str = 'en') -> ScoreResult:
        """
        Blocking call to the remote service.

        Returns:
            ScoreResult with source REMOTE

        Raises:
            RemoteScorerUnreachable: timeout, connection error, non-2xx
                status or a response without a usable score
        """
        result, _ = self.timed_score(content_hash, features, length, language)
        return result

    def timed_score(self, content_hash: str, features: Mapping[str, float],
                    length: int = 0, language: str = 'en') -> Tuple[ScoreResult, float]:
        """
        Like score(), but also returns this call's round-trip time in ms.

        A RemoteScorerUnreachable raised here carries latency_ms as well, so
        concurrent callers never read each other's timings.
        """
        if not self.enabled:
            raise RemoteScorerUnreachable('Remote scorer is not configured', latency_ms=0.0)

        payload = self.build_request(content_hash, features, length, language)
        started = time.perf_counter()

        def elapsed_ms() -> float:
            return (time.perf_counter() - started) * 1000

        try:
            response = self.session.post(
                f"{self.endpoint}{SCORE_PATH}",
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.Timeout as e:
            raise RemoteScorerUnreachable(f'Remote scorer timed out after {self.timeout}s',
                                          latency_ms=elapsed_ms()) from e
        except requests.RequestException as e:
            raise RemoteScorerUnreachable(f'Remote scorer request failed: {e}',
                                          latency_ms=elapsed_ms()) from e
        except ValueError as e:
            raise RemoteScorerUnreachable('Remote scorer returned invalid JSON',
                                          latency_ms=elapsed_ms()) from e

        latency_ms = elapsed_ms()
        try:
            return self._parse(data, features), latency_ms
        except RemoteScorerUnreachable as e:
            e.latency_ms = latency_ms
            raise

    async def score_async(self, content_hash: str, features: Mapping[str, float],
                          length: int = 0, language: str = 'en') -> ScoreResult:
        result, _ = await self.timed_score_async(content_hash, features, length, language)
        return result

    async def timed_score_async(self, content_hash: str, features: Mapping[str, float],
                                length: int = 0, language: str = 'en') -> Tuple[ScoreResult, float]:
        """Run timed_score() off the event loop, bounded by the client timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.timed_score, content_hash, features, length, language),
                timeout=self.timeout + 0.5,
            )
        except asyncio.TimeoutError as e:
            raise RemoteScorerUnreachable(f'Remote scorer timed out after {self.timeout}s',
                                          latency_ms=(self.timeout + 0.5) * 1000) from e

    @staticmethod
    def _parse(data, features: Mapping[str, float]) -> ScoreResult:
        if not isinstance(data, dict) or not is_present(data.get('score')):
            raise RemoteScorerUnreachable('Remote scorer response is missing a score')
        confidence = data.get('confidence')
        return ScoreResult(
            score=clamp(float(data['score'])),
            confidence=clamp(float(confidence)) if is_present(confidence) else 0.5,
            features=dict(features),
            source=ScoreSource.REMOTE,
            profile=str(data.get('modelVersion', 'remote')),
        )
