"""
SlopShield Scan Coordinator
Owns every live ClassificationUnit and drives it from discovery to a
terminal state.

Discovery is synchronous: each batch of {id, kind, payload} events is
validated, deduplicated, size-filtered and quick-scored immediately, so
annotation never waits on anything slow. Units that need a second look are
queued for refinement, which runs on a bounded pool of asyncio workers.

A refinement result is only applied if the unit is still alive and still in
the state the worker left it in. Units removed from the page mid-flight are
dropped on arrival rather than cancelled.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections import OrderedDict, deque
from types import MappingProxyType
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from core.config import (
    EngineConfig,
    IMAGE_CACHE_SIZE,
    MAX_IN_FLIGHT,
    MAX_IN_FLIGHT_BOUND,
    MAX_LIVE_UNITS,
    MAX_PENDING_EVENTS,
    MIN_IMAGE_SIDE,
    MIN_IN_FLIGHT_BOUND,
    MIN_TEXT_CHARS,
    REMOTE_WEIGHT,
    TEXT_CACHE_SIZE,
    YIELD_EVERY,
)
from core.errors import InvalidTransition, MalformedInput
from core.keys import image_key, text_key
from core.types import ContentKind, ScoreResult
from annotation.renderer import AnnotationRenderer, RenderSettings
from annotation.unit import (
    Annotation,
    ClassificationUnit,
    UnitState,
    apply_context_boost,
    decide_refinement,
    passes_threshold,
)
from image_detector.classifier import LocalImageClassifier
from image_detector.sample import ImagePayload
from scoring.cache import STAGE_QUICK, STAGE_REFINED, ResultCache, stage_key
from scoring.remote_client import RemoteScorer
from scoring.strategies import HybridClassifier, resolve_strategies
from text_detector.classifier import LocalTextClassifier

logger = logging.getLogger(__name__)


def _quick_scorer(candidates: Sequence[Any]):
    """First candidate (or wrapped local classifier) that can score synchronously."""
    for candidate in candidates:
        if callable(getattr(candidate, 'quick', None)):
            return candidate
        local = getattr(candidate, 'local', None)
        if callable(getattr(local, 'quick', None)):
            return local
    raise ValueError("No classifier with a synchronous quick() scorer was provided")


class ScanCoordinator:
    """
    Args:
        store: PreferenceStore, re-read on every discovery batch
        renderer: AnnotationRenderer for the page surface
        text_classifiers / image_classifiers: Candidate refinement strategies,
            ranked once here. The first one exposing quick() (directly or
            through .local) also does the quick scoring.
        text_cache / image_cache: ResultCache per kind
        telemetry: Optional TelemetrySink
        history: Optional DetectionHistory
        max_in_flight: Refinement workers, clamped to [4, 8]
        yield_every: Refinements per worker between event-loop yields
        max_live_units: Units tracked at once; excess events wait for the next batch
        max_pending: Deferred events kept, one per id; the oldest go first
    """

    def __init__(self, store, renderer: AnnotationRenderer,
                 text_classifiers: Sequence[Any], image_classifiers: Sequence[Any],
                 text_cache: Optional[ResultCache] = None,
                 image_cache: Optional[ResultCache] = None,
                 telemetry=None, history=None,
                 max_in_flight: int = MAX_IN_FLIGHT,
                 yield_every: int = YIELD_EVERY,
                 max_live_units: int = MAX_LIVE_UNITS,
                 max_pending: int = MAX_PENDING_EVENTS):
        self.store = store
        self.renderer = renderer
        self.telemetry = telemetry
        self.history = history
        self.max_in_flight = max(MIN_IN_FLIGHT_BOUND, min(MAX_IN_FLIGHT_BOUND, int(max_in_flight)))
        self.yield_every = max(1, int(yield_every))
        self.max_live_units = max_live_units
        self.max_pending = max(1, int(max_pending))

        self._quick = {
            ContentKind.TEXT: _quick_scorer(text_classifiers),
            ContentKind.IMAGE: _quick_scorer(image_classifiers),
        }
        self._strategies = {
            ContentKind.TEXT: resolve_strategies(text_classifiers),
            ContentKind.IMAGE: resolve_strategies(image_classifiers),
        }
        self._caches = {
            ContentKind.TEXT: text_cache or ResultCache(TEXT_CACHE_SIZE, name='text'),
            ContentKind.IMAGE: image_cache or ResultCache(IMAGE_CACHE_SIZE, name='image'),
        }

        self._units: Dict[str, ClassificationUnit] = {}
        self._pending: Dict[str, Mapping[str, Any]] = OrderedDict()
        self._backlog: Deque[Tuple[ClassificationUnit, EngineConfig]] = deque()
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    # ==================== UNIT REGISTRY ====================

    @property
    def units(self) -> Mapping[str, ClassificationUnit]:
        return MappingProxyType(self._units)

    def get_unit(self, unit_id: str) -> Optional[ClassificationUnit]:
        return self._units.get(unit_id)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def remove(self, unit_id: str) -> bool:
        """
        The unit's content left the page. Any refinement still in flight for
        it will be discarded on arrival.
        """
        unit = self._units.pop(unit_id, None)
        self._pending.pop(unit_id, None)
        if unit is None:
            return False
        unit.alive = False
        self.renderer.forget(unit_id)
        logger.debug(f"Unit {unit_id} removed")
        return True

    def cache_info(self) -> Dict[str, Dict]:
        return {kind.value: cache.get_cache_info() for kind, cache in self._caches.items()}

    # ==================== DISCOVERY ====================

    def discover(self, events: Iterable[Mapping[str, Any]],
                 page_url: Optional[str] = None) -> List[ClassificationUnit]:
        """
        Process one batch of discovery events.

        Args:
            events: {"id", "kind": "text"|"image", "payload"} mappings
            page_url: URL of the page the batch came from

        Returns:
            Units created by this batch, in discovery order
        """
        config = EngineConfig.from_store(self.store, page_url)
        deferred, self._pending = self._pending, OrderedDict()
        fresh = []
        for event in events:
            event_id = event.get('id') if isinstance(event, Mapping) else None
            if event_id is not None and str(event_id) in deferred:
                deferred[str(event_id)] = event
            else:
                fresh.append(event)
        batch = list(deferred.values()) + fresh

        if not config.enabled:
            logger.info(f"Scanning disabled for {page_url or 'this page'}, ignoring {len(batch)} events")
            return []

        settings = RenderSettings.from_config(config)
        created: List[ClassificationUnit] = []
        dropped = 0
        filtered = 0

        for event in batch:
            try:
                unit_id, kind, payload = self._validate(event)
            except MalformedInput as e:
                logger.warning(f"Dropping discovery event: {e}")
                dropped += 1
                continue

            if unit_id in self._units:
                continue
            if not self._large_enough(kind, payload):
                filtered += 1
                continue
            if len(self._units) >= self.max_live_units:
                self._defer(unit_id, event)
                continue

            unit = self._new_unit(unit_id, kind, payload)
            self._units[unit_id] = unit
            created.append(unit)
            self._quick_score(unit, config, settings)

        annotated = sum(1 for u in created if u.state is UnitState.ANNOTATED)
        logger.info(
            f"Discovery batch: {len(created)} new units, {annotated} annotated, "
            f"{filtered} below minimum size, {dropped} malformed, {len(self._pending)} deferred"
        )
        return created

    def _defer(self, unit_id: str, event: Mapping[str, Any]) -> None:
        """Hold an event for the next batch. A re-reported id keeps its slot but takes the newer payload."""
        self._pending[unit_id] = event
        while len(self._pending) > self.max_pending:
            dropped_id, _ = self._pending.popitem(last=False)
            logger.warning(f"Deferred queue full, dropping discovery event {dropped_id}")

    @staticmethod
    def _validate(event) -> Tuple[str, ContentKind, Any]:
        if not isinstance(event, Mapping):
            raise MalformedInput(f"event is not a mapping: {event!r}")
        unit_id = event.get('id')
        if unit_id is None or unit_id == '':
            raise MalformedInput("event has no id")
        try:
            kind = ContentKind(event.get('kind'))
        except ValueError:
            raise MalformedInput(f"event {unit_id} has unknown kind {event.get('kind')!r}")

        payload = event.get('payload')
        if payload is None:
            raise MalformedInput(f"event {unit_id} has no payload")
        if kind is ContentKind.TEXT:
            if not isinstance(payload, str):
                raise MalformedInput(f"text event {unit_id} payload is not a string")
        elif isinstance(payload, Mapping):
            payload = ImagePayload.from_mapping(payload)
        elif not isinstance(payload, ImagePayload):
            raise MalformedInput(f"image event {unit_id} payload is not an image payload")
        return str(unit_id), kind, payload

    @staticmethod
    def _large_enough(kind: ContentKind, payload) -> bool:
        if kind is ContentKind.TEXT:
            return len(payload.strip()) >= MIN_TEXT_CHARS
        for side in (payload.declared_width, payload.declared_height):
            if side is not None and side < MIN_IMAGE_SIDE:
                return False
        return True

    @staticmethod
    def _new_unit(unit_id: str, kind: ContentKind, payload) -> ClassificationUnit:
        if kind is ContentKind.TEXT:
            key = text_key(payload)
        else:
            key = image_key(payload.src, payload.declared_width, payload.declared_height)
        return ClassificationUnit(id=unit_id, kind=kind, key=key, payload=payload)

    def _quick_score(self, unit: ClassificationUnit, config: EngineConfig,
                     settings: RenderSettings) -> None:
        try:
            cache = self._caches[unit.kind]
            slot = stage_key(STAGE_QUICK, unit.key)
            result = cache.get(slot)
            if result is None:
                result = self._quick[unit.kind].quick(unit.payload)
                cache.put(slot, result)

            result = self._boost(result, config)
            unit.quick_result = result
            unit.transition(UnitState.QUICK_SCORED, expected=(UnitState.UNSCANNED,))

            min_confidence = config.min_confidence_for(unit.kind, result.metadata_only)
            if passes_threshold(result, config.threshold_for(unit.kind), min_confidence):
                self.renderer.apply(unit, settings, result)
                unit.transition(UnitState.ANNOTATED, expected=(UnitState.QUICK_SCORED,))
                self._enqueue(unit, config)
            else:
                unit.transition(UnitState.SUPPRESSED, expected=(UnitState.QUICK_SCORED,))
                if config.catch_false_negatives:
                    self._enqueue(unit, config)
                else:
                    self._emit(unit, result, config.page_url)
        except Exception as e:
            logger.error(f"Quick scoring failed for unit {unit.id}, suppressing: {e}", exc_info=True)
            self._force_suppressed(unit)

    def _force_suppressed(self, unit: ClassificationUnit) -> None:
        if unit.annotation.reversible:
            self.renderer.revert(unit)
        if unit.can_transition(UnitState.SUPPRESSED):
            unit.transition(UnitState.SUPPRESSED)

    def _boost(self, result: ScoreResult, config: EngineConfig) -> ScoreResult:
        boosted = apply_context_boost(
            result.score, config.page_url, config.allowlist,
            floor=config.boost_floor, factor=config.boost_factor,
        )
        if boosted == result.score:
            return result
        return dataclasses.replace(result, score=boosted)

    # ==================== REFINEMENT ====================

    def _enqueue(self, unit: ClassificationUnit, config: EngineConfig) -> None:
        if self._queue is None:
            self._backlog.append((unit, config))
        else:
            self._queue.put_nowait((unit, config))

    async def start(self) -> None:
        """Spawn the refinement workers. Units queued before start() are handed over."""
        if self._workers:
            return
        self._queue = asyncio.Queue()
        while self._backlog:
            self._queue.put_nowait(self._backlog.popleft())
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"slopshield-refine-{i}")
            for i in range(self.max_in_flight)
        ]
        logger.info(f"Started {self.max_in_flight} refinement workers")

    async def drain(self) -> None:
        """Wait until every queued refinement has finished."""
        if self._queue is None:
            await self.start()
        await self._queue.join()

    async def close(self) -> None:
        for task in self._workers:
            task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        if self._queue is not None:
            while not self._queue.empty():
                self._backlog.append(self._queue.get_nowait())
                self._queue.task_done()
        self._queue = None

    async def __aenter__(self) -> 'ScanCoordinator':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _worker(self, index: int) -> None:
        processed = 0
        while True:
            unit, config = await self._queue.get()
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                await self._refine(unit, config)
            except Exception as e:
                logger.error(f"Refinement worker {index} failed on unit {unit.id}: {e}", exc_info=True)
            finally:
                self.in_flight -= 1
                self._queue.task_done()
            processed += 1
            if processed % self.yield_every == 0:
                await asyncio.sleep(0)

    async def _refine(self, unit: ClassificationUnit, config: EngineConfig) -> None:
        if not unit.alive:
            logger.debug(f"Unit {unit.id} is gone, skipping refinement")
            return
        unit.transition(UnitState.REFINING, expected=(UnitState.ANNOTATED, UnitState.SUPPRESSED))

        refined = await self._refined_result(unit)

        if not unit.alive:
            logger.debug(f"Discarding late refinement for removed unit {unit.id}")
            return
        if unit.state is not UnitState.REFINING:
            logger.warning(f"Unit {unit.id} left REFINING ({unit.state.value}) before its result arrived")
            return

        settings = RenderSettings.from_config(config)
        if refined is None:
            unit.transition(UnitState.CONFIRMED, expected=(UnitState.REFINING,))
            self._emit(unit, unit.quick_result, config.page_url)
            return

        refined = self._boost(refined, config)
        unit.refined_result = refined
        decision = decide_refinement(
            unit, refined,
            threshold=config.threshold_for(unit.kind),
            tolerance=config.tolerance,
            min_confidence=config.min_confidence_for(unit.kind, refined.metadata_only),
        )

        if decision is UnitState.REVERTED:
            self.renderer.revert(unit)
        elif decision is UnitState.UPGRADED:
            self.renderer.apply(unit, settings, refined)
        else:
            self.renderer.update_badge(unit, refined, settings)

        try:
            unit.transition(decision, expected=(UnitState.REFINING,))
        except InvalidTransition as e:
            logger.error(f"Refinement decision rejected: {e}")
            return
        self._emit(unit, refined, config.page_url)

    async def _refined_result(self, unit: ClassificationUnit) -> Optional[ScoreResult]:
        """Ask the ranked strategies in order; None when every one failed."""
        cache = self._caches[unit.kind]
        slot = stage_key(STAGE_REFINED, unit.key)
        cached = cache.get(slot)
        if cached is not None:
            return cached

        for strategy in self._strategies[unit.kind]:
            try:
                result = await strategy.classify(unit.payload, unit.key)
            except Exception as e:
                logger.warning(f"Strategy {strategy.name} failed for unit {unit.id}: {e}")
                continue
            cache.put(slot, result)
            return result

        logger.warning(f"No refinement strategy succeeded for unit {unit.id}, keeping quick result")
        return None

    # ==================== REPORTING ====================

    def _emit(self, unit: ClassificationUnit, result: Optional[ScoreResult],
              page_url: Optional[str] = None) -> None:
        if result is None:
            return
        if self.telemetry is not None:
            try:
                self.telemetry.emit({
                    'unitKind': unit.kind.value,
                    'score': result.score,
                    'confidence': result.confidence,
                })
            except Exception as e:
                logger.warning(f"Telemetry sink failed: {e}")
        if self.history is not None and unit.annotation is not Annotation.NONE:
            try:
                self.history.add(unit, result, page_url)
            except Exception as e:
                logger.warning(f"Could not record unit {unit.id} in history: {e}")


def create_coordinator(store, renderer: AnnotationRenderer, remote: Optional[RemoteScorer] = None,
                       analytics=None, history=None, **kwargs) -> ScanCoordinator:
    """
    Wire a coordinator with the local classifiers and, when a remote scorer
    endpoint is configured, hybrid strategies ranked ahead of them.
    """
    text_local = LocalTextClassifier()
    image_local = LocalImageClassifier()
    text_classifiers: List[Any] = [text_local]
    image_classifiers: List[Any] = [image_local]
    if remote is not None:
        text_classifiers.insert(0, HybridClassifier(text_local, remote, REMOTE_WEIGHT, analytics))
        image_classifiers.insert(0, HybridClassifier(image_local, remote, REMOTE_WEIGHT, analytics))
    return ScanCoordinator(
        store, renderer, text_classifiers, image_classifiers,
        telemetry=analytics, history=history, **kwargs,
    )
