"""Hotspot prediction from exponential moving averages of shard access rates."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable


def _local_hour() -> int:
    return time.localtime().tm_hour


@dataclass
class ShardMetrics:
    """Smoothed access statistics of one shard."""

    ema_load: float = 0.0
    ema_variance: float = 0.0
    trend: float = 0.0
    access_count: int = 0
    last_update: float = 0.0


@dataclass(frozen=True)
class Prediction:
    """Outcome of a hotspot prediction for one shard."""

    will_be_hotspot: bool = False
    confidence: float = 0.0
    predicted_load: float = 0.0
    time_to_hotspot: float = -1.0


@dataclass
class _TemporalPattern:
    hourly_load: list[float] = field(default_factory=lambda: [0.0] * 24)
    samples: int = 0


class HotspotPredictor:
    """Track per-shard access rates and predict which shards turn hot."""

    PROJECTION_SECONDS = 5.0
    TREND_WEIGHT = 10.0
    MIN_HOTSPOT_FACTOR = 1.5
    DEFAULT_RATE = 100.0

    def __init__(
        self,
        num_shards: int,
        alpha: float = 0.2,
        threshold: float = 2.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        hour_source: Callable[[], int] = _local_hour,
    ) -> None:
        if num_shards < 1:
            raise ValueError("num_shards must be at least 1")
        self.num_shards = num_shards
        self.alpha = alpha
        self.threshold = threshold
        self._clock = clock
        self._hour_source = hour_source
        self._lock = threading.Lock()
        self._metrics: list[ShardMetrics] = []
        self._patterns: list[_TemporalPattern] = []
        self._reset_state()

    def _reset_state(self) -> None:
        now = self._clock()
        self._metrics = [ShardMetrics(last_update=now) for _ in range(self.num_shards)]
        self._patterns = [_TemporalPattern() for _ in range(self.num_shards)]

    def record_access(self, shard_idx: int, is_write: bool = False) -> None:
        """Fold one access to ``shard_idx`` into its moving averages."""
        if not 0 <= shard_idx < self.num_shards:
            return
        with self._lock:
            m = self._metrics[shard_idx]
            now = self._clock()
            elapsed_ms = int((now - m.last_update) * 1000)

            m.access_count += 1
            instant_rate = 1000.0 / elapsed_ms if elapsed_ms > 0 else self.DEFAULT_RATE
            old_ema = m.ema_load
            m.ema_load = self.alpha * instant_rate + (1 - self.alpha) * m.ema_load
            m.trend = m.ema_load - old_ema
            error = instant_rate - m.ema_load
            m.ema_variance = self.alpha * error * error + (1 - self.alpha) * m.ema_variance
            m.last_update = now

            hour = self._hour_source()
            pattern = self._patterns[shard_idx]
            pattern.hourly_load[hour] = (
                self.alpha * instant_rate + (1 - self.alpha) * pattern.hourly_load[hour]
            )
            pattern.samples += 1

    def predict_hotspot(self, shard_idx: int) -> Prediction:
        """Predict whether ``shard_idx`` is or is about to become a hotspot."""
        if not 0 <= shard_idx < self.num_shards:
            return Prediction()
        with self._lock:
            loads = [m.ema_load for m in self._metrics]
            m = self._metrics[shard_idx]
            ema_load, trend, ema_variance = m.ema_load, m.trend, m.ema_variance

        avg_load = sum(loads) / self.num_shards
        std_dev = math.sqrt(sum((load - avg_load) ** 2 for load in loads) / self.num_shards)
        predicted_load = ema_load + trend * self.PROJECTION_SECONDS

        hotspot_threshold = max(
            avg_load + self.threshold * std_dev, avg_load * self.MIN_HOTSPOT_FACTOR
        )

        if ema_load > hotspot_threshold:
            confidence = (
                min(1.0, (ema_load - hotspot_threshold) / std_dev) if std_dev > 0 else 1.0
            )
            return Prediction(True, confidence, predicted_load, 0.0)

        if trend > 0 and predicted_load > hotspot_threshold:
            gap = hotspot_threshold - ema_load
            volatility = math.sqrt(ema_variance)
            confidence = max(0.0, min(1.0, trend / (volatility + 0.1) * 0.5))
            return Prediction(True, confidence, predicted_load, gap / trend)

        return Prediction(False, 0.0, predicted_load, -1.0)

    def coolest_shard(self) -> int:
        """Shard with the lowest load plus weighted trend; first wins on ties."""
        with self._lock:
            scores = [m.ema_load + m.trend * self.TREND_WEIGHT for m in self._metrics]
        return min(range(self.num_shards), key=scores.__getitem__)

    def predicted_load_for_hour(self, shard_idx: int, hour: int) -> float:
        """Smoothed access rate seen for ``shard_idx`` during ``hour``."""
        if not 0 <= shard_idx < self.num_shards or not 0 <= hour < 24:
            return 0.0
        with self._lock:
            return self._patterns[shard_idx].hourly_load[hour]

    def reset(self) -> None:
        """Forget every recorded access."""
        with self._lock:
            self._reset_state()