"""
Inference statistics for the embedding service.

Keeps a sliding window of recent latencies for the rolling average and
p95, plus lifetime counters (calls, errors, characters, min/max).
"""

import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

# Number of recent latency samples kept for avg/p95
LATENCY_WINDOW_SIZE = 200

# p95 is only reported once the window holds this many samples
P95_MIN_SAMPLES = 5


@dataclass(frozen=True)
class LastError:
    """Most recent failure, with its epoch-millisecond timestamp."""

    message: str
    timestamp: int


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time copy of the statistics, rounded for display."""

    total_calls: int
    total_errors: int
    total_chars_processed: int
    avg_latency_ms: float
    p95_latency_ms: float
    min_latency_ms: float
    max_latency_ms: float
    last_error: Optional[LastError]
    model_load_time_ms: float


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class EmbeddingStats:
    """
    Running statistics for embedding inference.

    The latency window is a ring buffer: once full, each new sample
    evicts the oldest and the running sum is adjusted accordingly.
    Min and max cover every call since the last reset().
    """

    window_size: int = LATENCY_WINDOW_SIZE
    total_calls: int = 0
    total_errors: int = 0
    total_chars_processed: int = 0
    avg_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    min_latency_ms: float = math.inf
    max_latency_ms: float = 0.0
    last_error: Optional[LastError] = None
    model_load_time_ms: float = 0.0
    _window: deque[float] = field(init=False, repr=False)
    _window_sum: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self) -> None:
        self._window = deque(maxlen=self.window_size)

    @property
    def window(self) -> list[float]:
        """Copy of the current latency window, oldest first."""
        return list(self._window)

    def record_latency(self, latency_ms: float) -> None:
        """Add a latency sample and refresh avg, p95, min and max."""
        if len(self._window) == self._window.maxlen:
            self._window_sum -= self._window[0]
        self._window.append(latency_ms)
        self._window_sum += latency_ms

        self.avg_latency_ms = self._window_sum / len(self._window)

        if len(self._window) >= P95_MIN_SAMPLES:
            ordered = sorted(self._window)
            self.p95_latency_ms = ordered[math.floor(len(ordered) * 0.95)]

        self.min_latency_ms = min(self.min_latency_ms, latency_ms)
        self.max_latency_ms = max(self.max_latency_ms, latency_ms)

    def record_call(self, chars: int) -> None:
        """Count one successful call over ``chars`` characters."""
        self.total_calls += 1
        self.total_chars_processed += chars

    def record_error(self, message: str) -> None:
        """Count a failed call and remember its message."""
        self.total_errors += 1
        self.set_last_error(message)

    def set_last_error(self, message: str) -> None:
        """Remember a failure without counting it as a failed call."""
        self.last_error = LastError(message=message, timestamp=_now_ms())

    def set_load_time(self, load_time_ms: float) -> None:
        self.model_load_time_ms = load_time_ms

    def reset(self) -> None:
        """Clear all counters and the latency window."""
        self.total_calls = 0
        self.total_errors = 0
        self.total_chars_processed = 0
        self.avg_latency_ms = 0.0
        self.p95_latency_ms = 0.0
        self.min_latency_ms = math.inf
        self.max_latency_ms = 0.0
        self.last_error = None
        self.model_load_time_ms = 0.0
        self._window.clear()
        self._window_sum = 0.0

    def to_snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            total_calls=self.total_calls,
            total_errors=self.total_errors,
            total_chars_processed=self.total_chars_processed,
            avg_latency_ms=round(self.avg_latency_ms, 2),
            p95_latency_ms=round(self.p95_latency_ms, 2),
            min_latency_ms=round(self.min_latency_ms, 2) if self.min_latency_ms != math.inf else 0.0,
            max_latency_ms=round(self.max_latency_ms, 2),
            last_error=self.last_error,
            model_load_time_ms=round(self.model_load_time_ms, 2),
        )
