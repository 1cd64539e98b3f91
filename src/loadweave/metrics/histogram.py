"""Cumulative latency distribution backed by an HDR histogram.

Values are recorded in milliseconds and stored as integer microseconds,
since ``HdrHistogram`` only accepts integers.
"""

from __future__ import annotations

from hdrh.histogram import HdrHistogram  # type: ignore[import-untyped]

# 1 microsecond to 5 minutes, three significant digits
_LOWEST_US = 1
_HIGHEST_US = 300_000_000
_SIGNIFICANT_DIGITS = 3


class LatencyHistogram:
    """Run-long latency distribution for one step name or the whole run.

    Recording is O(1) and memory stays bounded no matter how many calls a
    run makes, unlike the per-interval numpy arrays.
    """

    def __init__(self) -> None:
        self._histogram = HdrHistogram(_LOWEST_US, _HIGHEST_US, _SIGNIFICANT_DIGITS)

    def __len__(self) -> int:
        return int(self._histogram.total_count)

    def record(self, latency_ms: float) -> None:
        """Record one latency, clamped to the trackable range."""
        value_us = max(_LOWEST_US, min(int(latency_ms * 1000), _HIGHEST_US))
        self._histogram.record_value(value_us)

    def percentile(self, percentile: float) -> float:
        """Return the latency (ms) at *percentile* (0-100), or 0.0 when empty."""
        if not len(self):
            return 0.0
        return self._histogram.get_value_at_percentile(percentile) / 1000.0

    @property
    def min(self) -> float:
        return self._histogram.get_min_value() / 1000.0 if len(self) else 0.0

    @property
    def max(self) -> float:
        return self._histogram.get_max_value() / 1000.0 if len(self) else 0.0

    @property
    def mean(self) -> float:
        return self._histogram.get_mean_value() / 1000.0 if len(self) else 0.0
