"""
Bounded result cache.

Maps a ContentKey (plus a stage namespace) to a ScoreResult. Text and image
caches are separate instances with their own capacity.

Eviction is FIFO by default: the earliest-inserted entry leaves first, no
matter how often it was read. policy='lru' refreshes an entry's position on
every hit instead.

The host runtime is a single-threaded event loop, so no locking is done.
Concurrent refinements writing the same key simply overwrite each other.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Hashable, Optional

from core.types import ScoreResult

logger = logging.getLogger(__name__)

POLICY_FIFO = 'fifo'
POLICY_LRU = 'lru'

STAGE_QUICK = 'quick'
STAGE_REFINED = 'refined'


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ResultCache:
    """
    Args:
        capacity: Maximum number of entries held (must be positive)
        policy: 'fifo' (default) or 'lru'
        name: Label used in log messages and get_cache_info()
    """

    def __init__(self, capacity: int, policy: str = POLICY_FIFO, name: str = 'results'):
        if capacity <= 0:
            raise ValueError(f"Cache capacity must be positive, got {capacity}")
        if policy not in (POLICY_FIFO, POLICY_LRU):
            raise ValueError(f"Unknown cache policy: {policy}")
        self.capacity = capacity
        self.policy = policy
        self.name = name
        self._entries: 'OrderedDict[Hashable, ScoreResult]' = OrderedDict()
        self.stats = CacheStats()

    def get(self, key: Hashable) -> Optional[ScoreResult]:
        result = self._entries.get(key)
        if result is None:
            self.stats.misses += 1
            return None
        self.stats.hits += 1
        if self.policy == POLICY_LRU:
            self._entries.move_to_end(key)
        return result

    def put(self, key: Hashable, result: ScoreResult) -> None:
        if key in self._entries:
            self._entries[key] = result
            if self.policy == POLICY_LRU:
                self._entries.move_to_end(key)
            return
        self._entries[key] = result
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            self.stats.evictions += 1
            logger.debug(f"{self.name} cache evicted {evicted}")

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self.stats = CacheStats()

    def get_cache_info(self) -> Dict:
        """Get cache statistics."""
        return {
            'name': self.name,
            'policy': self.policy,
            'hits': self.stats.hits,
            'misses': self.stats.misses,
            'evictions': self.stats.evictions,
            'hit_rate': round(self.stats.hit_rate, 4),
            'size': len(self._entries),
            'max_size': self.capacity,
        }


def stage_key(stage: str, key: str) -> tuple:
    """Quick and refined results for one content key never share a slot."""
    return (stage, key)
