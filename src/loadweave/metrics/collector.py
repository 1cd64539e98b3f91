"""In-memory outcome collection and aggregation for a run."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field

import numpy as np

from loadweave._internal.logging import get_logger
from loadweave.metrics.histogram import LatencyHistogram
from loadweave.metrics.models import (
    IntervalSnapshot,
    Outcome,
    OutcomeStatus,
    RunSummary,
    StepStats,
    UserOutcome,
    UserStatus,
)

logger = get_logger("metrics.collector")


def _interval_latencies(latencies: list[float]) -> tuple[float, float, float, float]:
    """Compute (avg, p50, p95, p99) for one interval's call latencies.

    Args:
        latencies: Latency values in milliseconds.

    Returns:
        The four statistics, all 0.0 for an empty interval.
    """
    if not latencies:
        return (0.0, 0.0, 0.0, 0.0)

    arr = np.array(latencies, dtype=np.float64)
    p50, p95, p99 = np.percentile(arr, [50.0, 95.0, 99.0])
    return (float(np.mean(arr)), float(p50), float(p95), float(p99))


@dataclass
class _StepAccumulator:
    ok: int = 0
    ko: int = 0
    cancelled: int = 0
    first_error: str | None = None
    first_error_at: float = float("inf")
    histogram: LatencyHistogram = field(default_factory=LatencyHistogram)


class MetricCollector:
    """Collects outcomes from every virtual user of a run.

    ``record`` is handed to the chain interpreter as its outcome sink. Each
    outcome is folded into run-long per-step accumulators straight away and
    buffered for the next ``flush``, which turns the buffer into an
    :class:`IntervalSnapshot`.

    Aggregation never depends on arrival order: counts are sums, and the
    first-seen error of a step is the one with the earliest timestamp.
    """

    def __init__(self) -> None:
        self._buffer: deque[Outcome] = deque()
        self._steps: dict[str, _StepAccumulator] = {}
        self._overall = LatencyHistogram()
        self._users: dict[int, UserOutcome] = {}
        self._last_flush_time: float = time.monotonic()

    @property
    def user_outcomes(self) -> list[UserOutcome]:
        """Return recorded user outcomes ordered by user id."""
        return [self._users[uid] for uid in sorted(self._users)]

    def record(self, outcome: Outcome) -> None:
        """Record one step outcome.

        Args:
            outcome: The outcome to aggregate.
        """
        self._buffer.append(outcome)

        acc = self._steps.get(outcome.name)
        if acc is None:
            acc = self._steps[outcome.name] = _StepAccumulator()

        if outcome.status is OutcomeStatus.OK:
            acc.ok += 1
        elif outcome.status is OutcomeStatus.KO:
            acc.ko += 1
            if outcome.timestamp < acc.first_error_at:
                acc.first_error_at = outcome.timestamp
                acc.first_error = outcome.error
        else:
            acc.cancelled += 1

        if outcome.latency_ms is not None:
            acc.histogram.record(outcome.latency_ms)
            self._overall.record(outcome.latency_ms)

    def record_user(self, outcome: UserOutcome) -> None:
        """Record how a virtual user ended."""
        self._users[outcome.user_id] = outcome

    def flush(
        self,
        elapsed_seconds: float,
        active_users: int,
        started_users: int = 0,
    ) -> IntervalSnapshot:
        """Drain the buffer and compute a snapshot for the interval.

        Args:
            elapsed_seconds: Seconds elapsed since the run started.
            active_users: Virtual users currently running.
            started_users: Virtual users started so far.

        Returns:
            An IntervalSnapshot summarizing every outcome since the last flush.
        """
        drained: list[Outcome] = []
        while self._buffer:
            drained.append(self._buffer.popleft())

        now = time.monotonic()
        interval = max(now - self._last_flush_time, 0.001)
        self._last_flush_time = now

        latencies = [o.latency_ms for o in drained if o.latency_ms is not None]
        errors = sum(1 for o in drained if o.status is OutcomeStatus.KO)
        executed = sum(1 for o in drained if o.status is not OutcomeStatus.CANCELLED)
        avg, p50, p95, p99 = _interval_latencies(latencies)

        return IntervalSnapshot(
            timestamp=now,
            elapsed_seconds=elapsed_seconds,
            active_users=active_users,
            started_users=started_users,
            total_requests=len(latencies),
            requests_per_second=len(latencies) / interval,
            latency_avg=avg,
            latency_p50=p50,
            latency_p95=p95,
            latency_p99=p99,
            total_errors=errors,
            error_rate=errors / executed if executed else 0.0,
        )

    def summarize(self, users_started: int | None = None) -> RunSummary:
        """Build the run summary from everything recorded so far.

        Args:
            users_started: Users injected; defaults to the number of recorded
                user outcomes.

        Returns:
            The aggregate RunSummary.
        """
        steps: dict[str, StepStats] = {}
        for name, acc in self._steps.items():
            hist = acc.histogram
            steps[name] = StepStats(
                name=name,
                ok=acc.ok,
                ko=acc.ko,
                cancelled=acc.cancelled,
                first_error=acc.first_error,
                latency_min=hist.min,
                latency_max=hist.max,
                latency_avg=hist.mean,
                latency_p50=hist.percentile(50.0),
                latency_p95=hist.percentile(95.0),
                latency_p99=hist.percentile(99.0),
            )

        by_status = {status: 0 for status in UserStatus}
        for user in self._users.values():
            by_status[user.status] += 1

        overall = self._overall
        return RunSummary(
            total_ok=sum(s.ok for s in steps.values()),
            total_ko=sum(s.ko for s in steps.values()),
            total_cancelled=sum(s.cancelled for s in steps.values()),
            latency_min=overall.min,
            latency_max=overall.max,
            latency_avg=overall.mean,
            latency_p50=overall.percentile(50.0),
            latency_p75=overall.percentile(75.0),
            latency_p95=overall.percentile(95.0),
            latency_p99=overall.percentile(99.0),
            latency_p999=overall.percentile(99.9),
            steps=steps,
            users_started=users_started if users_started is not None else len(self._users),
            users_completed=by_status[UserStatus.COMPLETED],
            users_failed=by_status[UserStatus.FAILED],
            users_cancelled=by_status[UserStatus.CANCELLED],
        )
