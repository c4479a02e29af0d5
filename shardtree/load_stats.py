"""Per-shard load counters with cached min/max statistics.

Routing decisions read the cached values in constant time; the cache is
refreshed either on demand with :meth:`CachedLoadStats.refresh` or by a
background thread started with :meth:`CachedLoadStats.start`.
"""

from __future__ import annotations

import math
import threading
from typing import Optional


class CachedLoadStats:
    """Shard loads plus a periodically refreshed summary of them."""

    def __init__(self, num_shards: int, refresh_interval: float = 0.001) -> None:
        if num_shards < 0:
            raise ValueError("num_shards must not be negative")
        if refresh_interval <= 0:
            raise ValueError("refresh_interval must be positive")
        self.refresh_interval = refresh_interval

        self._lock = threading.Lock()
        self._loads = [0] * num_shards

        self._min_shard = 0
        self._max_shard = 0
        self._min_load = 0
        self._max_load = 0
        self._total_load = 0

        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Background refresh
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background refresh thread; does nothing if running."""
        if self._thread is not None and self._thread.is_alive():
            return
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._refresh_loop, args=(stop_event,), daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the background refresh thread; does nothing if stopped."""
        if self._thread is None:
            return
        assert self._stop_event is not None
        self._stop_event.set()
        self._thread.join()
        self._thread = None
        self._stop_event = None

    @property
    def running(self) -> bool:
        """Whether the background refresh thread is active."""
        return self._thread is not None and self._thread.is_alive()

    def __enter__(self) -> "CachedLoadStats":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _refresh_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.refresh()
            stop_event.wait(self.refresh_interval)

    def refresh(self) -> None:
        """Scan every shard and update the cached statistics."""
        with self._lock:
            loads = list(self._loads)
        if not loads:
            return

        min_load = min(loads)
        max_load = max(loads)
        # First index wins on ties; an all-zero set keeps max_shard at 0.
        min_idx = loads.index(min_load)
        max_idx = loads.index(max_load) if max_load > 0 else 0

        with self._lock:
            self._min_shard = min_idx
            self._max_shard = max_idx
            self._min_load = min_load
            self._max_load = max_load
            self._total_load = sum(loads)

    # ------------------------------------------------------------------
    # Load updates; indices out of range are ignored
    # ------------------------------------------------------------------

    def increment_load(self, shard_id: int) -> None:
        """Add one to the load of ``shard_id``."""
        with self._lock:
            if 0 <= shard_id < len(self._loads):
                self._loads[shard_id] += 1

    def decrement_load(self, shard_id: int) -> None:
        """Subtract one from the load of ``shard_id``, never below zero."""
        with self._lock:
            if 0 <= shard_id < len(self._loads) and self._loads[shard_id] > 0:
                self._loads[shard_id] -= 1

    def set_load(self, shard_id: int, load: int) -> None:
        """Set the load of ``shard_id``."""
        if load < 0:
            raise ValueError("load must not be negative")
        with self._lock:
            if 0 <= shard_id < len(self._loads):
                self._loads[shard_id] = load

    # ------------------------------------------------------------------
    # Cached queries
    # ------------------------------------------------------------------

    def min_shard(self) -> int:
        """Index of the least loaded shard at the last refresh."""
        with self._lock:
            return self._min_shard

    def max_shard(self) -> int:
        """Index of the most loaded shard at the last refresh."""
        with self._lock:
            return self._max_shard

    def min_load(self) -> int:
        """Smallest shard load at the last refresh."""
        with self._lock:
            return self._min_load

    def max_load(self) -> int:
        """Largest shard load at the last refresh."""
        with self._lock:
            return self._max_load

    def total_load(self) -> int:
        """Sum of shard loads at the last refresh."""
        with self._lock:
            return self._total_load

    def average_load(self) -> float:
        """Cached total load divided by the number of shards."""
        with self._lock:
            if not self._loads:
                return 0.0
            return self._total_load / len(self._loads)

    def load(self, shard_id: int) -> int:
        """Current (live) load of ``shard_id``, or 0 if out of range."""
        with self._lock:
            if 0 <= shard_id < len(self._loads):
                return self._loads[shard_id]
            return 0

    def coefficient_of_variation(self) -> float:
        """Standard deviation of live loads over the cached mean."""
        mean = self.average_load()
        if mean == 0:
            return 0.0
        loads = self.snapshot()
        variance = sum((load - mean) ** 2 for load in loads) / len(loads)
        return math.sqrt(variance) / mean

    def balance_score(self) -> float:
        """Cached min load over cached max load; 1.0 when nothing is loaded."""
        with self._lock:
            low, high = self._min_load, self._max_load
        if high == 0:
            return 1.0
        return low / high

    def detect_hotspot(self, threshold: float = 1.5) -> bool:
        """Whether the cached max load exceeds ``threshold`` times the average."""
        avg = self.average_load()
        if avg == 0:
            return False
        return self.max_load() > avg * threshold

    def num_shards(self) -> int:
        """Number of shards tracked."""
        return len(self._loads)

    def snapshot(self) -> list[int]:
        """Copy of the current live loads."""
        with self._lock:
            return list(self._loads)