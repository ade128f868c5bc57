"""Condition Result Cache.

Memoizes condition results per ``(target, condition)``.  Each entry remembers
the fingerprint of the context that produced it; contexts are rebuilt for
every check, so identity is useless and the fingerprint decides whether a
stored result still applies.  A mismatch is a miss and drops the stale entry,
which keeps an "eligible" answer from one turn out of the next.
"""

from __future__ import annotations

import math
import sys
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from srpg_recruitment.domain.conditions import Condition
from srpg_recruitment.domain.models import RecruitmentContext, UnitID
from srpg_recruitment.domain.rules_config import CacheRules

Fingerprint = tuple[object, ...]
CacheKey = tuple[UnitID, str]


def context_fingerprint(context: RecruitmentContext) -> Fingerprint:
    """Summarize every part of ``context`` that a condition predicate reads."""

    result = context.battle_result
    battle = (
        None
        if result is None
        else (result.is_critical, result.damage_type, result.weapon_type, result.element)
    )
    living_allies = tuple(sorted(u.id for u in context.allied_units if u.is_alive))
    return (
        context.turn,
        context.damage,
        context.attacker.id,
        context.target.current_hp,
        context.target.max_hp,
        battle,
        living_allies,
    )


@dataclass(slots=True)
class CacheEntry:
    key: CacheKey
    result: bool
    fingerprint: Fingerprint


@dataclass(frozen=True, slots=True)
class CacheStatistics:
    entries: int
    capacity: int
    hits: int
    misses: int
    stale: int
    evictions: int
    estimated_bytes: int

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class ConditionCache:
    """Bounded LRU cache of condition results."""

    def __init__(self, rules: CacheRules | None = None) -> None:
        self.rules = rules or CacheRules()
        self.capacity = self.rules.capacity
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._stale = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(
        self, target_id: UnitID, condition: Condition, context: RecruitmentContext
    ) -> bool | None:
        """Return the cached result, or ``None`` when absent or stale."""

        key = (target_id, condition.id)
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.fingerprint != context_fingerprint(context):
            del self._entries[key]
            self._stale += 1
            self._misses += 1
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.result

    def set(
        self,
        target_id: UnitID,
        condition: Condition,
        context: RecruitmentContext,
        result: bool,
    ) -> None:
        key = (target_id, condition.id)
        self._entries[key] = CacheEntry(key, result, context_fingerprint(context))
        self._entries.move_to_end(key)
        self._evict_to(self.capacity)

    def lookup(
        self,
        target_id: UnitID,
        condition: Condition,
        context: RecruitmentContext,
        evaluator: Callable[[Condition, RecruitmentContext], bool],
    ) -> bool:
        """Return the cached result or compute, store and return it."""

        cached = self.get(target_id, condition, context)
        if cached is not None:
            return cached
        result = bool(evaluator(condition, context))
        self.set(target_id, condition, context, result)
        return result

    def resize(self, capacity: int) -> None:
        """Change the capacity (never below the configured minimum) and evict down to it."""

        self.capacity = max(self.rules.min_capacity, int(capacity))
        self._evict_to(self.capacity)

    def shrink(self) -> int:
        """Apply the configured shrink factor; returns the new capacity."""

        self.resize(int(self.capacity * self.rules.shrink_factor))
        return self.capacity

    def invalidate_unit(self, target_id: UnitID) -> int:
        """Drop every entry for ``target_id``; returns how many were removed."""

        keys = [key for key in self._entries if key[0] == target_id]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def trim(self, fraction: float = 0.25) -> int:
        """Evict the least recently used ``fraction`` of entries."""

        count = math.ceil(len(self._entries) * fraction)
        self._evict_to(len(self._entries) - count)
        return count

    def clear(self) -> None:
        """Drop all entries and reset counters."""

        self._entries.clear()
        self._hits = self._misses = self._stale = self._evictions = 0

    def estimated_bytes(self) -> int:
        total = sys.getsizeof(self._entries)
        for key, entry in self._entries.items():
            total += sys.getsizeof(key) + sys.getsizeof(entry) + sys.getsizeof(entry.fingerprint)
        return total

    def statistics(self) -> CacheStatistics:
        return CacheStatistics(
            entries=len(self._entries),
            capacity=self.capacity,
            hits=self._hits,
            misses=self._misses,
            stale=self._stale,
            evictions=self._evictions,
            estimated_bytes=self.estimated_bytes(),
        )

    def _evict_to(self, capacity: int) -> None:
        while len(self._entries) > capacity:
            self._entries.popitem(last=False)
            self._evictions += 1
