"""Shard router that resists adversarial key patterns.

The router maps keys to shards with one of several strategies and guards
load-driven redirections against abuse: a key that keeps being redirected
inside a short cooldown window is flagged as suspicious and pinned to its
natural shard.
"""

from __future__ import annotations

import bisect
import enum
import math
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Hashable, Optional

_MASK64 = (1 << 64) - 1
_FNV_OFFSET = 0xCBF29CE484222325
_FNV_PRIME = 0x100000001B3


def _fnv1a(data: bytes) -> int:
    h = _FNV_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV_PRIME) & _MASK64
    return h


def std_hash(key: Hashable) -> int:
    """Return the basic 64-bit hash of a key.

    Integers hash to themselves (negative values wrap to 64 bits), strings
    and bytes use FNV-1a, anything else falls back to ``hash()``.
    """
    if isinstance(key, int):
        return key & _MASK64
    if isinstance(key, str):
        return _fnv1a(key.encode("utf-8"))
    if isinstance(key, (bytes, bytearray, memoryview)):
        return _fnv1a(bytes(key))
    return hash(key) & _MASK64


def mix_hash(key: Hashable) -> int:
    """Return the key hash scrambled with the 32-bit Murmur3 mixing steps."""
    h = std_hash(key)
    h ^= h >> 16
    h = (h * 0x85EBCA6B) & _MASK64
    h ^= h >> 13
    h = (h * 0xC2B2AE35) & _MASK64
    h ^= h >> 16
    return h


def robust_hash(key: Hashable) -> int:
    """Return the key hash passed through the Murmur3 64-bit finalizer."""
    h = std_hash(key)
    h ^= h >> 33
    h = (h * 0xFF51AFD7ED558CCD) & _MASK64
    h ^= h >> 33
    h = (h * 0xC4CEB9FE1A85EC53) & _MASK64
    h ^= h >> 33
    return h


class Strategy(enum.Enum):
    """Routing strategies."""

    STATIC_HASH = "static_hash"
    LOAD_AWARE = "load_aware"
    CONSISTENT_HASH = "consistent_hash"
    VIRTUAL_NODES = "virtual_nodes"
    INTELLIGENT = "intelligent"


@dataclass(frozen=True)
class RouterStats:
    """Snapshot of per-shard load and attack counters."""

    total_load: int
    min_load: int
    max_load: int
    avg_load: float
    balance_score: float
    has_hotspot: bool
    suspicious_patterns: int
    blocked_redirects: int


@dataclass
class _RedirectHistory:
    consecutive_redirects: int = 0
    last_redirect: float = 0.0


class AdversaryResistantRouter:
    """Route keys to shards while detecting suspicious redirect patterns."""

    VNODES_PER_SHARD = 16
    WINDOW_SIZE = 50
    HOTSPOT_THRESHOLD = 1.5
    MAX_CONSECUTIVE_REDIRECTS = 3
    REDIRECT_COOLDOWN = 0.1
    HISTORY_TTL = 60
    MIN_CACHE_INTERVAL = 10
    MAX_CACHE_INTERVAL = 500

    def __init__(
        self,
        num_shards: int,
        strategy: Strategy = Strategy.INTELLIGENT,
        *,
        seed: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if num_shards < 1:
            raise ValueError("num_shards must be at least 1")
        self.num_shards = num_shards
        self.strategy = strategy
        self._clock = clock

        self._lock = threading.Lock()
        self._loads = [0] * num_shards
        self._recent_inserts = [0] * num_shards

        self._history_lock = threading.Lock()
        self._history: dict[Hashable, _RedirectHistory] = {}
        self._suspicious_patterns = 0
        self._blocked_redirects = 0

        self._ops_since_cache_update = 0
        self._cached_has_hotspot = False
        self._cached_balance_score = 1.0
        self._adaptive_interval = self.MIN_CACHE_INTERVAL

        self._rng_lock = threading.Lock()
        self._rng = random.Random(seed)

        self._vnode_hashes: list[int] = []
        self._vnode_shards: list[int] = []
        if strategy in (
            Strategy.CONSISTENT_HASH,
            Strategy.VIRTUAL_NODES,
            Strategy.INTELLIGENT,
        ):
            self._init_virtual_nodes()

    def _init_virtual_nodes(self) -> None:
        nodes = sorted(
            (
                (mix_hash(shard * self.VNODES_PER_SHARD + vnode), shard)
                for shard in range(self.num_shards)
                for vnode in range(self.VNODES_PER_SHARD)
            ),
            key=lambda node: node[0],
        )
        self._vnode_hashes = [h for h, _ in nodes]
        self._vnode_shards = [s for _, s in nodes]

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def route(self, key: Hashable) -> int:
        """Return the shard index for ``key``."""
        natural = self._route_static_hash(key)
        if self.strategy is Strategy.STATIC_HASH:
            return natural

        if self.strategy is Strategy.LOAD_AWARE:
            target = self._route_load_aware(natural)
        elif self.strategy in (Strategy.CONSISTENT_HASH, Strategy.VIRTUAL_NODES):
            target = self._route_consistent_hash(key)
        elif self.strategy is Strategy.INTELLIGENT:
            target = self._route_intelligent(natural)
        else:
            target = natural

        if target != natural and self._is_redirect_suspicious(key, natural, target):
            return natural
        return target

    def _route_static_hash(self, key: Hashable) -> int:
        return robust_hash(key) % self.num_shards

    def _route_load_aware(self, natural: int) -> int:
        with self._lock:
            loads = list(self._loads)
        avg_load = sum(loads) / self.num_shards
        if loads[natural] > self.HOTSPOT_THRESHOLD * avg_load:
            min_load = min(loads)
            if min_load < avg_load:
                return loads.index(min_load)
            with self._rng_lock:
                return self._rng.randrange(self.num_shards)
        return natural

    def _route_consistent_hash(self, key: Hashable) -> int:
        idx = bisect.bisect_left(self._vnode_hashes, std_hash(key))
        if idx == len(self._vnode_hashes):
            idx = 0
        return self._vnode_shards[idx]

    def _route_intelligent(self, natural: int) -> int:
        with self._lock:
            interval = self._adaptive_interval
            if interval >= self.MAX_CACHE_INTERVAL:
                return natural
            ops = self._ops_since_cache_update
            self._ops_since_cache_update += 1
            if ops >= interval:
                self._ops_since_cache_update = 0
                self._update_stats_cache()
            has_hotspot = self._cached_has_hotspot
            balance = self._cached_balance_score

        if has_hotspot or balance < 0.9:
            return self._route_load_aware(natural)
        return natural

    def _update_stats_cache(self) -> None:
        # Caller holds self._lock.
        loads = self._loads
        total = sum(loads)
        min_load = min(loads)
        max_load = max(loads)
        avg = total / self.num_shards

        if avg > 0:
            balance = max(0.0, 1.0 - (max_load - min_load) / (2.0 * avg))
        else:
            balance = 1.0
        hotspot = max_load > self.HOTSPOT_THRESHOLD * avg

        self._cached_balance_score = balance
        self._cached_has_hotspot = hotspot

        if hotspot or balance < 0.8:
            new_interval = self.MIN_CACHE_INTERVAL
        elif balance > 0.95:
            new_interval = self.MAX_CACHE_INTERVAL
        else:
            span = self.MAX_CACHE_INTERVAL - self.MIN_CACHE_INTERVAL
            new_interval = self.MIN_CACHE_INTERVAL + int((balance - 0.8) * span / 0.15)
        self._adaptive_interval = new_interval

    def _is_redirect_suspicious(self, key: Hashable, natural: int, target: int) -> bool:
        if natural == target:
            return False

        with self._history_lock:
            history = self._history.setdefault(key, _RedirectHistory())
            now = self._clock()

            if history.consecutive_redirects > 0:
                elapsed_ms = int((now - history.last_redirect) * 1000)
                if elapsed_ms < int(self.REDIRECT_COOLDOWN * 1000):
                    history.consecutive_redirects += 1
                    if history.consecutive_redirects > self.MAX_CONSECUTIVE_REDIRECTS:
                        self._suspicious_patterns += 1
                        self._blocked_redirects += 1
                        return True
                else:
                    history.consecutive_redirects = 1
            else:
                history.consecutive_redirects = 1

            history.last_redirect = now
            return False

    # ------------------------------------------------------------------
    # Load bookkeeping
    # ------------------------------------------------------------------

    def record_insertion(self, shard_idx: int) -> None:
        """Count an insertion into ``shard_idx`` and age out old history."""
        self._check_shard(shard_idx)
        with self._lock:
            self._loads[shard_idx] += 1
            self._recent_inserts[shard_idx] += 1
            window_full = sum(self._recent_inserts) >= self.WINDOW_SIZE * self.num_shards
            if window_full:
                self._recent_inserts = [0] * self.num_shards

        if window_full:
            with self._history_lock:
                now = self._clock()
                self._history = {
                    key: history
                    for key, history in self._history.items()
                    if int(now - history.last_redirect) <= self.HISTORY_TTL
                }

    def record_removal(self, shard_idx: int) -> None:
        """Count a removal from ``shard_idx``; loads never drop below zero."""
        self._check_shard(shard_idx)
        with self._lock:
            if self._loads[shard_idx] > 0:
                self._loads[shard_idx] -= 1

    def _check_shard(self, shard_idx: int) -> None:
        if not 0 <= shard_idx < self.num_shards:
            raise IndexError(f"shard index {shard_idx} out of range")

    def get_stats(self) -> RouterStats:
        """Return load distribution and attack-detection counters."""
        with self._lock:
            loads = list(self._loads)
        with self._history_lock:
            suspicious = self._suspicious_patterns
            blocked = self._blocked_redirects

        total = sum(loads)
        avg = total / self.num_shards
        max_load = max(loads)
        if avg > 0:
            variance = sum((load - avg) ** 2 for load in loads) / self.num_shards
            balance = max(0.0, 1.0 - math.sqrt(variance) / avg)
        else:
            balance = 1.0

        return RouterStats(
            total_load=total,
            min_load=min(loads),
            max_load=max_load,
            avg_load=avg,
            balance_score=balance,
            has_hotspot=max_load > self.HOTSPOT_THRESHOLD * avg,
            suspicious_patterns=suspicious,
            blocked_redirects=blocked,
        )