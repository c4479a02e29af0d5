"""Sharded key-value tree with per-shard locks, hotspot prediction and growth.

Keys are routed through a consistent-hash ring managed by
:class:`~shardtree.shard_manager.DynamicShardManager`. With the predictive
strategy, inserts aimed at a shard predicted to turn hot go to the coolest
shard instead. Shards can be added at run time.
"""

from __future__ import annotations

import enum
import math
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Hashable, Optional

from shardtree.distributed import DistributedHooks
from shardtree.predictor import HotspotPredictor
from shardtree.shard_manager import DynamicShardManager

_REDIRECT_CONFIDENCE = 0.7


class RoutingStrategy(enum.Enum):
    """How keys are assigned to shards."""

    HASH = "hash"
    RANGE = "range"
    CONSISTENT_HASH = "consistent_hash"
    PREDICTIVE = "predictive"


@dataclass(frozen=True)
class ShardStats:
    """Counters and hotspot prediction for one shard."""

    shard_id: int
    element_count: int
    read_count: int
    write_count: int
    read_write_ratio: float
    load_percentage: float
    predicted_hotspot: bool
    hotspot_confidence: float


@dataclass(frozen=True)
class ArchitectureInfo:
    """Summary of the tree's layout, balance and traffic."""

    num_shards: int
    hardware_concurrency: int
    routing: RoutingStrategy
    total_elements: int
    avg_elements_per_shard: float
    load_balance_score: float
    total_reads: int
    total_writes: int
    global_read_write_ratio: float
    prediction_enabled: bool
    distributed_mode: bool
    schema_version: int


@dataclass
class _Shard:
    items: dict = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)
    read_count: int = 0
    write_count: int = 0


def _hardware_concurrency() -> int:
    return os.cpu_count() or 1


def _ratio(reads: int, writes: int) -> float:
    return reads / writes if writes > 0 else float(reads)


class ParallelTreeV2:
    """Thread-safe map split over independently locked shards."""

    def __init__(
        self,
        num_shards: Optional[int] = None,
        routing: RoutingStrategy = RoutingStrategy.HASH,
        enable_predictions: bool = True,
        *,
        predictor: Optional[HotspotPredictor] = None,
    ) -> None:
        if num_shards is None:
            num_shards = _hardware_concurrency()
        if num_shards < 1:
            raise ValueError("num_shards must be at least 1")
        self.routing = routing
        self.prediction_enabled = enable_predictions
        self.metrics_enabled = True

        self._topology_lock = threading.Lock()
        self._shards = [_Shard() for _ in range(num_shards)]
        self._predictor = predictor if predictor is not None else HotspotPredictor(num_shards)
        self._shard_manager = DynamicShardManager(num_shards)
        self._hooks = DistributedHooks()

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def predictor(self) -> HotspotPredictor:
        """The hotspot predictor fed by this tree."""
        return self._predictor

    @property
    def shard_manager(self) -> DynamicShardManager:
        """The manager that routes keys to shards."""
        return self._shard_manager

    @property
    def distributed_hooks(self) -> DistributedHooks:
        """Hooks for spreading shards across nodes."""
        return self._hooks

    @property
    def num_shards(self) -> int:
        """Current number of shards."""
        return len(self._shards)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _shard_index(self, key: Hashable) -> int:
        return self._shard_manager.route(key)

    def _shard_index_predictive(self, key: Hashable) -> int:
        natural = self._shard_index(key)
        if not self.prediction_enabled:
            return natural
        prediction = self._predictor.predict_hotspot(natural)
        if prediction.will_be_hotspot and prediction.confidence > _REDIRECT_CONFIDENCE:
            return self._predictor.coolest_shard()
        return natural

    # ------------------------------------------------------------------
    # Map operations
    # ------------------------------------------------------------------

    def insert(self, key: Hashable, value: Any = None) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        if self.routing is RoutingStrategy.PREDICTIVE:
            idx = self._shard_index_predictive(key)
        else:
            idx = self._shard_index(key)
        shard = self._shards[idx]
        with shard.lock:
            shard.items[key] = value
            shard.write_count += 1
        if self.metrics_enabled:
            self._predictor.record_access(idx, True)

    def remove(self, key: Hashable) -> None:
        """Delete ``key`` if present; missing keys are ignored."""
        shard = self._shards[self._shard_index(key)]
        with shard.lock:
            shard.items.pop(key, None)
            shard.write_count += 1

    def contains(self, key: Hashable) -> bool:
        """Whether ``key`` is stored on the shard it routes to."""
        idx = self._shard_index(key)
        shard = self._shards[idx]
        with shard.lock:
            shard.read_count += 1
            found = key in shard.items
        if self.metrics_enabled:
            self._predictor.record_access(idx, False)
        return found

    def __contains__(self, key: Hashable) -> bool:
        return self.contains(key)

    def get(self, key: Hashable) -> Any:
        """Return the value stored under ``key``; raise KeyError if absent."""
        shard = self._shards[self._shard_index(key)]
        with shard.lock:
            shard.read_count += 1
            try:
                return shard.items[key]
            except KeyError:
                raise KeyError(key) from None

    def __len__(self) -> int:
        return sum(len(shard.items) for shard in self._shards)

    @property
    def size(self) -> int:
        """Number of stored keys."""
        return len(self)

    def clear(self) -> None:
        """Remove every key, reset counters and the predictor."""
        for shard in self._shards:
            with shard.lock:
                shard.items.clear()
                shard.read_count = 0
                shard.write_count = 0
        self._predictor.reset()

    def add_shard(self) -> int:
        """Add an empty shard and return its index."""
        with self._topology_lock:
            self._shards.append(_Shard())
            return self._shard_manager.add_shard()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def shard_stats(self) -> list[ShardStats]:
        """Per-shard counters and hotspot predictions."""
        shards = list(self._shards)
        counts = []
        for shard in shards:
            with shard.lock:
                counts.append((len(shard.items), shard.read_count, shard.write_count))
        total = sum(count for count, _, _ in counts)

        stats = []
        for idx, (count, reads, writes) in enumerate(counts):
            prediction = self._predictor.predict_hotspot(idx)
            stats.append(
                ShardStats(
                    shard_id=idx,
                    element_count=count,
                    read_count=reads,
                    write_count=writes,
                    read_write_ratio=_ratio(reads, writes),
                    load_percentage=100.0 * count / total if total > 0 else 0.0,
                    predicted_hotspot=prediction.will_be_hotspot,
                    hotspot_confidence=prediction.confidence,
                )
            )
        return stats

    def architecture_info(self) -> ArchitectureInfo:
        """Overall layout, balance score and read/write totals."""
        stats = self.shard_stats()
        num_shards = len(stats)
        total = sum(s.element_count for s in stats)
        avg = total / num_shards
        variance = sum((s.element_count - avg) ** 2 for s in stats) / num_shards
        std_dev = math.sqrt(variance)
        balance = max(0.0, 1.0 - std_dev / avg) if avg > 0 else 1.0
        reads = sum(s.read_count for s in stats)
        writes = sum(s.write_count for s in stats)

        return ArchitectureInfo(
            num_shards=num_shards,
            hardware_concurrency=_hardware_concurrency(),
            routing=self.routing,
            total_elements=total,
            avg_elements_per_shard=avg,
            load_balance_score=balance,
            total_reads=reads,
            total_writes=writes,
            global_read_write_ratio=_ratio(reads, writes),
            prediction_enabled=self.prediction_enabled,
            distributed_mode=self._hooks.is_distributed,
            schema_version=self._shard_manager.schema_version,
        )

    def format_distribution(self) -> str:
        """Human-readable report of the shard distribution."""
        stats = self.shard_stats()
        info = self.architecture_info()
        lines = [
            "",
            "╔══════════════════════════════════════════════════════╗",
            "║  Parallel Tree V2 - Extended Architecture            ║",
            "╚══════════════════════════════════════════════════════╝",
            "",
            f"Shards: {info.num_shards}",
            f"Hardware threads: {info.hardware_concurrency}",
            f"Total elements: {info.total_elements}",
            f"Avg per shard: {info.avg_elements_per_shard:.1f}",
            f"Balance score: {info.load_balance_score * 100:.1f}%",
            f"Read/Write ratio: {info.global_read_write_ratio:.2f}",
            f"Prediction: {'ON' if info.prediction_enabled else 'OFF'}",
            f"Distributed: {'YES' if info.distributed_mode else 'NO'}",
            "",
            "Shard Distribution:",
            "  ID   Elements   Reads   Writes   R/W    Hotspot?",
            "  ──   ────────   ─────   ──────   ───    ────────",
        ]
        for s in stats:
            line = (
                f"  {s.shard_id:>2}   {s.element_count:>8}   {s.read_count:>5}"
                f"   {s.write_count:>6}   {s.read_write_ratio:>5.1f}"
            )
            if s.predicted_hotspot:
                line += f"   ⚠️  {s.hotspot_confidence * 100:.0f}%"
            lines.append(line)
        return "\n".join(lines) + "\n"