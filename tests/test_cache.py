"""
Test Suite for the bounded result cache
"""

import sys
from pathlib import Path

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'backend'))

from core.types import ScoreResult
from scoring.cache import ResultCache, stage_key, STAGE_QUICK, STAGE_REFINED


def result(score):
    return ScoreResult(score=score, confidence=0.5)


class TestResultCache:
    """FIFO default, LRU option, statistics"""

    def test_round_trip(self):
        cache = ResultCache(3)
        r = result(0.4)
        cache.put('k', r)
        assert cache.get('k') is r
        assert 'k' in cache

    def test_capacity_plus_one_evicts_first_inserted(self):
        cache = ResultCache(3)
        for i in range(4):
            cache.put(f'k{i}', result(i / 10))
        assert len(cache) == 3
        assert cache.get('k0') is None
        assert cache.get('k3') is not None

    def test_fifo_ignores_reads(self):
        cache = ResultCache(2)
        cache.put('a', result(0.1))
        cache.put('b', result(0.2))
        cache.get('a')
        cache.put('c', result(0.3))
        assert 'a' not in cache
        assert 'b' in cache

    def test_lru_refreshes_on_read(self):
        cache = ResultCache(2, policy='lru')
        cache.put('a', result(0.1))
        cache.put('b', result(0.2))
        cache.get('a')
        cache.put('c', result(0.3))
        assert 'a' in cache
        assert 'b' not in cache

    def test_overwrite_is_last_writer_wins(self):
        cache = ResultCache(2)
        cache.put('a', result(0.1))
        cache.put('a', result(0.9))
        assert len(cache) == 1
        assert cache.get('a').score == 0.9

    def test_stats_and_info(self):
        cache = ResultCache(1, name='text')
        cache.put('a', result(0.1))
        cache.get('a')
        cache.get('missing')
        cache.put('b', result(0.2))
        info = cache.get_cache_info()
        assert info['name'] == 'text'
        assert info['hits'] == 1
        assert info['misses'] == 1
        assert info['evictions'] == 1
        assert info['size'] == 1
        assert info['max_size'] == 1
        assert info['hit_rate'] == 0.5

    def test_clear(self):
        cache = ResultCache(2)
        cache.put('a', result(0.1))
        cache.clear()
        assert len(cache) == 0
        assert cache.stats.hits == 0

    @pytest.mark.parametrize("capacity", [0, -5])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(ValueError):
            ResultCache(capacity)

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            ResultCache(5, policy='random')

    def test_stage_keys_do_not_collide(self):
        cache = ResultCache(4)
        cache.put(stage_key(STAGE_QUICK, 'abc'), result(0.3))
        cache.put(stage_key(STAGE_REFINED, 'abc'), result(0.7))
        assert cache.get(stage_key(STAGE_QUICK, 'abc')).score == 0.3
        assert cache.get(stage_key(STAGE_REFINED, 'abc')).score == 0.7
