"""
SlopShield Analytics
Running metrics for local detections, remote scorer calls and hybrid blends.

Metrics are observational only: nothing here feeds back into scoring.
They persist through the preference store under METRICS_KEY so they
survive restarts when a JsonFilePreferenceStore is used.
"""
import logging
import time
from typing import Any, Dict, Optional, Protocol

from core.store import MemoryPreferenceStore

logger = logging.getLogger(__name__)

METRICS_KEY = 'detector_metrics'
MAX_IMPROVEMENTS = 100


class TelemetrySink(Protocol):
    def emit(self, event: Dict[str, Any]) -> None: ...


def _running_avg(avg: float, count: int, value: float) -> float:
    """Fold value into an average that already covers count - 1 samples."""
    if count <= 1:
        return value
    return (avg * (count - 1) + value) / count


def _pct(numerator: float, denominator: float) -> float:
    return round(numerator / denominator * 100, 2) if denominator else 0.0


class Analytics:
    """
    Telemetry sink that keeps cloud, local and hybrid counters.

    Args:
        store: PreferenceStore used for persistence (in-memory when omitted)
    """

    def __init__(self, store=None):
        self.store = store if store is not None else MemoryPreferenceStore()
        self._metrics = self._load()

    @staticmethod
    def _fresh() -> Dict[str, Any]:
        return {
            'startDate': time.time(),
            'cloud': {
                'requests': 0,
                'cacheHits': 0,
                'errors': 0,
                'avgResponseTime': 0.0,
                'scoreImprovements': [],
                'lastUpdated': None,
            },
            'local': {
                'detections': 0,
                'avgConfidence': 0.0,
                'avgScore': 0.0,
                'byKind': {},
                'lastUpdated': None,
            },
            'hybrid': {
                'totalDetections': 0,
                'cloudUsed': 0,
                'localOnly': 0,
                'avgScoreDelta': 0.0,
                'lastUpdated': None,
            },
        }

    def _load(self) -> Dict[str, Any]:
        stored = self.store.get(METRICS_KEY)
        fresh = self._fresh()
        if not isinstance(stored, dict):
            return fresh
        for group in ('cloud', 'local', 'hybrid'):
            fresh[group].update(stored.get(group) or {})
        fresh['startDate'] = stored.get('startDate', fresh['startDate'])
        return fresh

    def _save(self):
        self.store.set(METRICS_KEY, self._metrics)

    # ==================== TELEMETRY SINK ====================

    def emit(self, event: Dict[str, Any]) -> None:
        """
        Record one terminal decision.

        Args:
            event: {"unitKind": "text"|"image", "score": float, "confidence": float}
        """
        try:
            score = float(event['score'])
            confidence = float(event.get('confidence') or 0.0)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed telemetry event {event!r}: {e}")
            return
        kind = str(event.get('unitKind', 'unknown'))
        by_kind = self._metrics['local']['byKind']
        by_kind[kind] = by_kind.get(kind, 0) + 1
        self.track_local_detection(score, confidence)

    # ==================== TRACKING ====================

    def track_local_detection(self, score: float, confidence: float) -> None:
        local = self._metrics['local']
        local['detections'] += 1
        n = local['detections']
        local['avgScore'] = _running_avg(local['avgScore'], n, score)
        local['avgConfidence'] = _running_avg(local['avgConfidence'], n, confidence)
        local['lastUpdated'] = time.time()
        self._save()

    def track_remote_request(self, response_time_ms: float, error: bool = False,
                             cached: bool = False) -> None:
        cloud = self._metrics['cloud']
        cloud['requests'] += 1
        if cached:
            cloud['cacheHits'] += 1
        if error:
            cloud['errors'] += 1
        cloud['avgResponseTime'] = _running_avg(
            cloud['avgResponseTime'], cloud['requests'], float(response_time_ms)
        )
        cloud['lastUpdated'] = time.time()
        self._save()

    def track_hybrid(self, local_score: Optional[float], remote_score: Optional[float],
                     used_remote: bool = True) -> None:
        """
        Record whether a hybrid detection used the remote scorer and by how
        much the remote score moved the local one.
        """
        hybrid = self._metrics['hybrid']
        hybrid['totalDetections'] += 1
        if used_remote:
            hybrid['cloudUsed'] += 1
            if local_score is not None and remote_score is not None:
                delta = remote_score - local_score
                hybrid['avgScoreDelta'] = _running_avg(
                    hybrid['avgScoreDelta'], hybrid['cloudUsed'], delta
                )
                improvements = self._metrics['cloud']['scoreImprovements']
                improvements.append({
                    'local': local_score,
                    'remote': remote_score,
                    'improvement': abs(delta),
                    'timestamp': time.time(),
                })
                del improvements[:-MAX_IMPROVEMENTS]
        else:
            hybrid['localOnly'] += 1
        hybrid['lastUpdated'] = time.time()
        self._save()

    # ==================== REPORTING ====================

    def summary(self) -> Dict[str, Any]:
        """
        Derived view of the raw counters.

        Returns:
            Dict with cloud, local, hybrid and uptime sections. Rates are
            percentages rounded to two decimals.
        """
        cloud = self._metrics['cloud']
        local = self._metrics['local']
        hybrid = self._metrics['hybrid']
        improvements = cloud['scoreImprovements']
        avg_improvement = (
            sum(i['improvement'] for i in improvements) / len(improvements)
            if improvements else 0.0
        )
        return {
            'cloud': {
                'totalRequests': cloud['requests'],
                'cacheHits': cloud['cacheHits'],
                'cacheHitRate': _pct(cloud['cacheHits'], cloud['requests']),
                'errors': cloud['errors'],
                'errorRate': _pct(cloud['errors'], cloud['requests']),
                'avgResponseTimeMs': round(cloud['avgResponseTime']),
                'avgScoreImprovement': round(avg_improvement * 100, 2),
                'lastUpdated': cloud['lastUpdated'],
            },
            'local': {
                'totalDetections': local['detections'],
                'byKind': dict(local['byKind']),
                'avgScore': round(local['avgScore'] * 100, 2),
                'avgConfidence': round(local['avgConfidence'] * 100, 2),
                'lastUpdated': local['lastUpdated'],
            },
            'hybrid': {
                'totalDetections': hybrid['totalDetections'],
                'cloudUsed': hybrid['cloudUsed'],
                'localOnly': hybrid['localOnly'],
                'cloudUsageRate': _pct(hybrid['cloudUsed'], hybrid['totalDetections']),
                'avgScoreDelta': round(hybrid['avgScoreDelta'] * 100, 2),
                'lastUpdated': hybrid['lastUpdated'],
            },
            'uptime': {
                'days': int((time.time() - self._metrics['startDate']) // 86400),
                'startDate': self._metrics['startDate'],
            },
        }

    def reset(self) -> None:
        self._metrics = self._fresh()
        self._save()
        logger.info("Analytics metrics cleared")
