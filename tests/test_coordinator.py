"""
Test Suite for the Scan Coordinator
End-to-end discovery, quick annotation and asynchronous refinement.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'backend'))

from core.store import MemoryPreferenceStore
from core.types import ScoreResult
from annotation import Annotation, AnnotationRenderer, InMemorySurface, UnitState
from image_detector import LocalImageClassifier
from scanner import ScanCoordinator, create_coordinator
from text_detector import LocalTextClassifier
from tracking import Analytics, DetectionHistory


UNIFORM_PARAGRAPH = (
    "The cat is on the mat and the dog is in the house. "
    "The sun is at the top of the sky in the day. "
    "The man is at the door of the house with a hat. "
    "The boy is in the park with the dog."
)
TEN_WORDS = "The quick brown fox jumps over the lazy sleeping dog."
FILLER = "This paragraph is long enough to pass the discovery size filter."


class FakeTextClassifier:
    """Scripted classifier: fixed quick and refined scores, optional gating"""

    def __init__(self, quick_score=0.6, refined_score=0.6, name='fake_text', priority=10,
                 fail=False, delay=0.0, quick_fails_on=None):
        self.name = name
        self.priority = priority
        self.quick_score = quick_score
        self.refined_score = refined_score
        self.fail = fail
        self.delay = delay
        self.quick_fails_on = quick_fails_on
        self.quick_calls = 0
        self.classify_calls = 0
        self.active = 0
        self.peak = 0
        self.started = None
        self.gate = None

    def available(self):
        return True

    def quick(self, text):
        self.quick_calls += 1
        if self.quick_fails_on and self.quick_fails_on in text:
            raise RuntimeError("feature extraction exploded")
        return ScoreResult(score=self.quick_score, confidence=0.9, features={'x': self.quick_score})

    async def classify(self, text, key):
        self.classify_calls += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.started is not None:
                self.started.set()
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(self.delay)
            if self.fail:
                raise RuntimeError("refinement backend down")
            return ScoreResult(score=self.refined_score, confidence=0.9, features={'x': self.refined_score})
        finally:
            self.active -= 1


def text_event(unit_id, text=FILLER):
    return {'id': unit_id, 'kind': 'text', 'payload': text}


@pytest.fixture
def store():
    return MemoryPreferenceStore()


@pytest.fixture
def surface():
    return InMemorySurface()


def build(store, surface, text_classifiers, **kwargs):
    renderer = AnnotationRenderer(surface)
    return ScanCoordinator(store, renderer, text_classifiers, [LocalImageClassifier()], **kwargs)


def add_nodes(surface, events):
    for event in events:
        surface.add(str(event['id']), f"<p>{event['payload']}</p>")


class TestQuickPath:
    """Synchronous discovery and annotation"""

    def test_uniform_paragraph_is_annotated(self, store, surface):
        coordinator = build(store, surface, [LocalTextClassifier()])
        events = [text_event('t1', UNIFORM_PARAGRAPH)]
        add_nodes(surface, events)

        units = coordinator.discover(events)

        unit = units[0]
        assert unit.state is UnitState.ANNOTATED
        assert unit.history == [UnitState.UNSCANNED, UnitState.QUICK_SCORED]
        assert unit.annotation is Annotation.BLURRED
        assert 'slopshield-blur' in surface.nodes['t1']

    def test_ten_word_text_is_suppressed(self, store, surface):
        coordinator = build(store, surface, [LocalTextClassifier()])
        events = [text_event('t1', TEN_WORDS)]
        add_nodes(surface, events)

        unit = coordinator.discover(events)[0]

        assert unit.state is UnitState.SUPPRESSED
        assert unit.quick_result.score == 0.0
        assert surface.nodes['t1'] == f"<p>{TEN_WORDS}</p>"

    def test_generator_image_short_circuits(self, store, surface):
        coordinator = build(store, surface, [LocalTextClassifier()])
        event = {'id': 'img1', 'kind': 'image', 'payload': {
            'src': 'https://cdn.midjourney.com/abc/grid_0.png', 'width': 512, 'height': 512,
            'cross_origin_blocked': True,
        }}
        surface.add('img1', '<img src="https://cdn.midjourney.com/abc/grid_0.png">')

        unit = coordinator.discover([event])[0]

        assert unit.state is UnitState.ANNOTATED
        assert unit.quick_result.metadata_only
        assert unit.quick_result.confidence >= 0.75

    def test_malformed_events_are_dropped(self, store, surface):
        coordinator = build(store, surface, [FakeTextClassifier()])
        events = [
            {'kind': 'text', 'payload': FILLER},
            {'id': 'v1', 'kind': 'video', 'payload': 'x'},
            'not an event',
            {'id': 't2', 'kind': 'text', 'payload': 42},
            {'id': 'i1', 'kind': 'image', 'payload': ['nope']},
            {'id': 't3', 'kind': 'text'},
            text_event('ok'),
        ]
        units = coordinator.discover(events)
        assert [u.id for u in units] == ['ok']

    def test_duplicates_are_ignored(self, store, surface):
        coordinator = build(store, surface, [FakeTextClassifier()])
        assert len(coordinator.discover([text_event('t1')])) == 1
        assert coordinator.discover([text_event('t1')]) == []
        assert len(coordinator.units) == 1

    def test_minimum_size_filters(self, store, surface):
        coordinator = build(store, surface, [FakeTextClassifier()])
        events = [
            text_event('short', 'Too short to bother with.'),
            {'id': 'icon', 'kind': 'image', 'payload': {'src': 'https://x/icon.png', 'width': 16, 'height': 16}},
            {'id': 'photo', 'kind': 'image', 'payload': {'src': 'https://x/photo.png', 'width': 640, 'height': 480}},
        ]
        assert [u.id for u in coordinator.discover(events)] == ['photo']

    def test_backpressure_defers_events(self, store, surface):
        coordinator = build(store, surface, [FakeTextClassifier()], max_live_units=2)
        units = coordinator.discover([text_event('a'), text_event('b'), text_event('c')])
        assert [u.id for u in units] == ['a', 'b']
        assert coordinator.pending_count == 1

        coordinator.remove('a')
        units = coordinator.discover([])
        assert [u.id for u in units] == ['c']
        assert coordinator.pending_count == 0

    def test_rediscovered_deferred_event_is_kept_once(self, store, surface):
        coordinator = build(store, surface, [FakeTextClassifier()], max_live_units=1)
        coordinator.discover([text_event('a')])
        for i in range(5):
            coordinator.discover([text_event('b', f"{FILLER} v{i}")])
        assert coordinator.pending_count == 1

        coordinator.remove('a')
        units = coordinator.discover([text_event('b', f"{FILLER} latest")])
        assert [u.id for u in units] == ['b']
        assert units[0].payload == f"{FILLER} latest"
        assert coordinator.pending_count == 0

    def test_deferred_events_are_capped(self, store, surface):
        coordinator = build(store, surface, [FakeTextClassifier()], max_live_units=1, max_pending=3)
        coordinator.discover([text_event('a')])
        coordinator.discover([text_event(f'd{i}') for i in range(10)])
        assert coordinator.pending_count == 3

        coordinator.remove('a')
        units = coordinator.discover([])
        assert [u.id for u in units] == ['d7']
        assert coordinator.pending_count == 2

    def test_quick_failure_is_isolated(self, store, surface):
        fake = FakeTextClassifier(quick_fails_on='BOOM')
        coordinator = build(store, surface, [fake])
        units = coordinator.discover([
            text_event('bad', FILLER + ' BOOM'),
            text_event('good', FILLER),
        ])
        assert units[0].state is UnitState.SUPPRESSED
        assert units[1].state is UnitState.ANNOTATED

    def test_quick_results_are_cached_by_content(self, store, surface):
        fake = FakeTextClassifier()
        coordinator = build(store, surface, [fake])
        coordinator.discover([text_event('a'), text_event('b')])
        assert fake.quick_calls == 1
        assert coordinator.cache_info()['text']['hits'] == 1

    def test_disabled_engine_ignores_batch(self, surface):
        store = MemoryPreferenceStore({'enabled': False})
        coordinator = build(store, surface, [FakeTextClassifier()])
        assert coordinator.discover([text_event('a')]) == []

    def test_whitelisted_site_is_skipped(self, surface):
        store = MemoryPreferenceStore({'site_settings': {'news.example.com': {'whitelisted': True}}})
        coordinator = build(store, surface, [FakeTextClassifier()])
        assert coordinator.discover([text_event('a')], page_url='https://news.example.com/story') == []
        assert len(coordinator.discover([text_event('b')], page_url='https://other.example.com/')) == 1

    def test_preferences_reread_every_batch(self, store, surface):
        coordinator = build(store, surface, [FakeTextClassifier()])
        events = [text_event('a'), text_event('b', FILLER + ' again')]
        add_nodes(surface, events)

        coordinator.discover(events[:1])
        store.set('mode', 'outline')
        coordinator.discover(events[1:])

        assert coordinator.get_unit('a').annotation is Annotation.BLURRED
        assert coordinator.get_unit('b').annotation is Annotation.OUTLINED

    def test_threshold_from_store(self, surface):
        store = MemoryPreferenceStore({'thresholds': {'text': 0.7}})
        coordinator = build(store, surface, [FakeTextClassifier(quick_score=0.6)])
        assert coordinator.discover([text_event('a')])[0].state is UnitState.SUPPRESSED

    def test_allowlisted_page_boost(self, surface):
        store = MemoryPreferenceStore()
        coordinator = build(store, surface, [FakeTextClassifier(quick_score=0.24)])
        plain = coordinator.discover([text_event('a')], page_url='https://example.com/')[0]
        boosted = coordinator.discover([text_event('b', FILLER + '!')], page_url='https://claude.ai/chat')[0]
        assert plain.state is UnitState.SUPPRESSED
        assert boosted.state is UnitState.ANNOTATED
        assert boosted.quick_result.score == pytest.approx(0.264)

    def test_in_flight_bounds(self, store, surface):
        assert build(store, surface, [FakeTextClassifier()], max_in_flight=1).max_in_flight == 4
        assert build(store, surface, [FakeTextClassifier()], max_in_flight=64).max_in_flight == 8


class TestRefinement:
    """Asynchronous refinement and reconciliation"""

    @pytest.mark.asyncio
    async def test_refined_drop_reverts_blur(self, surface):
        store = MemoryPreferenceStore({'thresholds': {'text': 0.5}})
        coordinator = build(store, surface, [FakeTextClassifier(quick_score=0.6, refined_score=0.2)])
        events = [text_event('t1')]
        add_nodes(surface, events)
        original = surface.nodes['t1']

        async with coordinator:
            unit = coordinator.discover(events)[0]
            assert unit.annotation is Annotation.BLURRED
            await coordinator.drain()

        assert unit.state is UnitState.REVERTED
        assert unit.annotation is Annotation.NONE
        assert surface.nodes['t1'] == original

    @pytest.mark.asyncio
    async def test_agreement_confirms(self, store, surface):
        coordinator = build(store, surface, [FakeTextClassifier(quick_score=0.6, refined_score=0.65)])
        events = [text_event('t1')]
        add_nodes(surface, events)

        async with coordinator:
            unit = coordinator.discover(events)[0]
            await coordinator.drain()

        assert unit.state is UnitState.CONFIRMED
        assert unit.annotation is Annotation.BLURRED
        assert unit.refined_result.score == 0.65

    @pytest.mark.asyncio
    async def test_false_negative_upgraded(self, surface):
        store = MemoryPreferenceStore({'catch_false_negatives': True, 'thresholds': {'text': 0.5}})
        coordinator = build(store, surface, [FakeTextClassifier(quick_score=0.1, refined_score=0.8)])
        events = [text_event('t1')]
        add_nodes(surface, events)

        async with coordinator:
            unit = coordinator.discover(events)[0]
            assert unit.state is UnitState.SUPPRESSED
            assert unit.annotation is Annotation.NONE
            await coordinator.drain()

        assert unit.state is UnitState.UPGRADED
        assert unit.annotation is Annotation.BLURRED
        assert 'slopshield-blur' in surface.nodes['t1']

    @pytest.mark.asyncio
    async def test_small_threshold_crossing_is_upgraded(self, surface):
        store = MemoryPreferenceStore({'catch_false_negatives': True, 'thresholds': {'text': 0.5}})
        coordinator = build(store, surface, [FakeTextClassifier(quick_score=0.45, refined_score=0.58)])
        events = [text_event('t1')]
        add_nodes(surface, events)

        async with coordinator:
            unit = coordinator.discover(events)[0]
            assert unit.state is UnitState.SUPPRESSED
            await coordinator.drain()

        assert unit.state is UnitState.UPGRADED
        assert unit.annotation is Annotation.BLURRED
        assert unit.refined_result.score == 0.58

    @pytest.mark.asyncio
    async def test_suppressed_units_not_refined_by_default(self, store, surface):
        fake = FakeTextClassifier(quick_score=0.1)
        coordinator = build(store, surface, [fake])
        async with coordinator:
            unit = coordinator.discover([text_event('t1')])[0]
            await coordinator.drain()
        assert unit.state is UnitState.SUPPRESSED
        assert fake.classify_calls == 0

    @pytest.mark.asyncio
    async def test_removed_content_is_never_reverted(self, surface):
        store = MemoryPreferenceStore({'mode': 'remove', 'thresholds': {'text': 0.5}})
        coordinator = build(store, surface, [FakeTextClassifier(quick_score=0.9, refined_score=0.1)])
        events = [text_event('t1')]
        add_nodes(surface, events)

        async with coordinator:
            unit = coordinator.discover(events)[0]
            assert 't1' not in surface.nodes
            await coordinator.drain()

        assert unit.state is UnitState.CONFIRMED
        assert unit.annotation is Annotation.REMOVED
        assert 't1' not in surface.nodes

    @pytest.mark.asyncio
    async def test_failed_refinement_keeps_quick_result(self, store, surface):
        coordinator = build(store, surface, [FakeTextClassifier(quick_score=0.6, fail=True)])
        events = [text_event('t1')]
        add_nodes(surface, events)

        async with coordinator:
            unit = coordinator.discover(events)[0]
            await coordinator.drain()

        assert unit.state is UnitState.CONFIRMED
        assert unit.refined_result is None
        assert unit.annotation is Annotation.BLURRED

    @pytest.mark.asyncio
    async def test_next_strategy_used_when_first_fails(self, store, surface):
        broken = FakeTextClassifier(quick_score=0.6, fail=True, name='broken', priority=20)
        backup = FakeTextClassifier(quick_score=0.6, refined_score=0.62, name='backup', priority=10)
        coordinator = build(store, surface, [backup, broken])

        async with coordinator:
            unit = coordinator.discover([text_event('t1')])[0]
            await coordinator.drain()

        assert broken.classify_calls == 1
        assert backup.classify_calls == 1
        assert unit.refined_result.score == 0.62

    @pytest.mark.asyncio
    async def test_late_result_for_removed_unit_is_discarded(self, store, surface):
        fake = FakeTextClassifier(quick_score=0.6, refined_score=0.0)
        fake.started = asyncio.Event()
        fake.gate = asyncio.Event()
        coordinator = build(store, surface, [fake])
        events = [text_event('t1')]
        add_nodes(surface, events)

        async with coordinator:
            unit = coordinator.discover(events)[0]
            await fake.started.wait()
            assert unit.state is UnitState.REFINING
            coordinator.remove('t1')
            fake.gate.set()
            await coordinator.drain()

        assert not unit.alive
        assert unit.state is UnitState.REFINING
        assert unit.refined_result is None
        assert coordinator.get_unit('t1') is None

    @pytest.mark.asyncio
    async def test_dead_unit_is_never_refined(self, store, surface):
        fake = FakeTextClassifier()
        coordinator = build(store, surface, [fake])
        coordinator.discover([text_event('t1')])
        coordinator.remove('t1')
        async with coordinator:
            await coordinator.drain()
        assert fake.classify_calls == 0

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, store, surface):
        fake = FakeTextClassifier(quick_score=0.6, refined_score=0.6, delay=0.01)
        coordinator = build(store, surface, [fake], max_in_flight=4)
        events = [text_event(f't{i}', f"{FILLER} #{i}") for i in range(20)]
        add_nodes(surface, events)

        async with coordinator:
            units = coordinator.discover(events)
            await coordinator.drain()

        assert fake.classify_calls == 20
        assert 1 < fake.peak <= 4
        assert coordinator.peak_in_flight <= 4
        assert all(u.state is UnitState.CONFIRMED for u in units)

    @pytest.mark.asyncio
    async def test_telemetry_and_history_recorded(self, store, surface):
        analytics = Analytics(store)
        history = DetectionHistory(store)
        coordinator = build(store, surface, [FakeTextClassifier(quick_score=0.8, refined_score=0.85)],
                            telemetry=analytics, history=history)
        events = [text_event('t1')]
        add_nodes(surface, events)

        async with coordinator:
            coordinator.discover(events, page_url='https://www.example.com/post')
            await coordinator.drain()

        summary = analytics.summary()
        assert summary['local']['totalDetections'] == 1
        assert summary['local']['byKind'] == {'text': 1}
        entries = history.get()
        assert len(entries) == 1
        assert entries[0]['domain'] == 'example.com'
        assert entries[0]['state'] == 'confirmed'
        assert entries[0]['score'] == 0.85


class TestWiring:
    """Default construction"""

    @pytest.mark.asyncio
    async def test_create_coordinator_runs_end_to_end(self, store, surface):
        coordinator = create_coordinator(store, AnnotationRenderer(surface))
        events = [text_event('t1', UNIFORM_PARAGRAPH)]
        add_nodes(surface, events)

        async with coordinator:
            unit = coordinator.discover(events)[0]
            await coordinator.drain()

        assert unit.terminal
        assert unit.refined_result is not None
