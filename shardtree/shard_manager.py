"""Consistent-hash shard routing that can grow and track migrated keys."""

from __future__ import annotations

import bisect
import threading
from dataclasses import dataclass
from typing import Hashable

from shardtree.router import robust_hash


@dataclass(frozen=True)
class MigrationCheck:
    """Whether a key sits on the shard the hash ring assigns it to."""

    needs_migration: bool
    current_shard: int
    target_shard: int


class DynamicShardManager:
    """Map keys to shards through a hash ring that can gain shards.

    Keys recorded as migrated are routed through a redirect index until
    their redirect is cleared.
    """

    VNODES_PER_SHARD = 32

    def __init__(self, initial_shards: int) -> None:
        if initial_shards < 0:
            raise ValueError("initial_shards must not be negative")
        self._num_shards = initial_shards
        self._schema_version = 0
        self._lock = threading.RLock()
        self._redirects: dict[Hashable, int] = {}
        self._ring: list[tuple[int, int]] = []
        for shard in range(initial_shards):
            self._add_to_ring(shard)
        self._ring.sort(key=lambda entry: entry[0])
        self._points = [point for point, _ in self._ring]

    @property
    def num_shards(self) -> int:
        """Number of shards currently on the ring."""
        with self._lock:
            return self._num_shards

    @property
    def schema_version(self) -> int:
        """Counter bumped by every topology change."""
        with self._lock:
            return self._schema_version

    def route(self, key: Hashable) -> int:
        """Return the shard for ``key``, honouring any recorded redirect."""
        with self._lock:
            redirected = self._redirects.get(key)
            if redirected is not None:
                return redirected
            return self._route_via_ring(key)

    def record_migration(self, key: Hashable, new_shard: int) -> None:
        """Route ``key`` to ``new_shard`` until the redirect is cleared."""
        with self._lock:
            self._redirects[key] = new_shard

    def clear_redirect(self, key: Hashable) -> None:
        """Drop the redirect of ``key``; unknown keys are ignored."""
        with self._lock:
            self._redirects.pop(key, None)

    def add_shard(self) -> int:
        """Add a shard to the ring and return its index."""
        with self._lock:
            new_shard = self._num_shards
            self._num_shards += 1
            self._schema_version += 1
            self._add_to_ring(new_shard)
            self._ring.sort(key=lambda entry: entry[0])
            self._points = [point for point, _ in self._ring]
            return new_shard

    def check_migration(self, key: Hashable, current_shard: int) -> MigrationCheck:
        """Compare ``current_shard`` with the ring's shard for ``key``."""
        with self._lock:
            ideal = self._route_via_ring(key)
        if ideal != current_shard:
            return MigrationCheck(True, current_shard, ideal)
        return MigrationCheck(False, current_shard, current_shard)

    def _add_to_ring(self, shard: int) -> None:
        base = shard * self.VNODES_PER_SHARD
        self._ring.extend(
            (robust_hash(base + vnode), shard) for vnode in range(self.VNODES_PER_SHARD)
        )

    def _route_via_ring(self, key: Hashable) -> int:
        # Caller holds self._lock.
        if not self._ring:
            return 0
        idx = bisect.bisect_left(self._points, robust_hash(key))
        if idx == len(self._ring):
            idx = 0
        return self._ring[idx][1]