"""Outcome records and aggregated result dataclasses for LoadWeave."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class OutcomeStatus(Enum):
    """Result of a single step execution."""

    OK = "OK"
    KO = "KO"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class Outcome:
    """One recorded step result.

    Attributes:
        name: Step name (rendered, for calls with placeholders in their name).
        status: OK, KO or CANCELLED.
        timestamp: Monotonic time the step started.
        user_id: Virtual user that ran the step.
        scenario: Scenario the user was running.
        latency_ms: Response time for calls that reached the transport,
            otherwise None.
        status_code: HTTP status code when a response was received.
        error: Failure reason for KO outcomes.
    """

    name: str
    status: OutcomeStatus
    timestamp: float
    user_id: int
    scenario: str
    latency_ms: float | None = None
    status_code: int | None = None
    error: str | None = None


class UserStatus(Enum):
    """How a virtual user's life ended."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class UserOutcome:
    """Aggregated result of one virtual user.

    Attributes:
        user_id: Virtual user identifier.
        scenario: Scenario the user ran.
        status: How the user ended.
        passes: Number of top-level chain passes started.
        failed_passes: Passes that ended with a step failure.
        error: Error that ended the user, if any.
    """

    user_id: int
    scenario: str
    status: UserStatus
    passes: int = 0
    failed_passes: int = 0
    error: str | None = None


@dataclass
class StepStats:
    """Aggregated outcomes for a single step name.

    Attributes:
        name: Step name.
        ok: Successful executions.
        ko: Failed executions.
        cancelled: Executions that never ran because the run was cancelled.
        first_error: Error of the earliest failed execution.
        latency_min: Minimum response time in milliseconds.
        latency_max: Maximum response time in milliseconds.
        latency_avg: Mean response time in milliseconds.
        latency_p50: 50th percentile response time in milliseconds.
        latency_p95: 95th percentile response time in milliseconds.
        latency_p99: 99th percentile response time in milliseconds.
    """

    name: str
    ok: int = 0
    ko: int = 0
    cancelled: int = 0
    first_error: str | None = None
    latency_min: float = 0.0
    latency_max: float = 0.0
    latency_avg: float = 0.0
    latency_p50: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0

    @property
    def total(self) -> int:
        return self.ok + self.ko + self.cancelled

    @property
    def failure_rate(self) -> float:
        """Fraction of executed steps that failed (cancelled ones excluded)."""
        executed = self.ok + self.ko
        return self.ko / executed if executed else 0.0


@dataclass
class IntervalSnapshot:
    """Point-in-time metrics, emitted every tick (typically 1s).

    Attributes:
        timestamp: Monotonic timestamp of the snapshot.
        elapsed_seconds: Seconds since the run started.
        active_users: Virtual users still running.
        started_users: Virtual users started so far.
        total_requests: Calls completed in this interval.
        requests_per_second: Calls per second in this interval.
        latency_avg: Mean latency (ms).
        latency_p50: 50th percentile latency (ms).
        latency_p95: 95th percentile latency (ms).
        latency_p99: 99th percentile latency (ms).
        total_errors: KO outcomes in this interval.
        error_rate: Fraction of this interval's outcomes that failed.
    """

    timestamp: float
    elapsed_seconds: float
    active_users: int
    started_users: int = 0
    total_requests: int = 0
    requests_per_second: float = 0.0
    latency_avg: float = 0.0
    latency_p50: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0
    total_errors: int = 0
    error_rate: float = 0.0


@dataclass
class RunSummary:
    """Aggregate summary of a whole run.

    Attributes:
        total_ok: Successful step executions.
        total_ko: Failed step executions.
        total_cancelled: Steps that never ran because of cancellation.
        latency_min: Minimum call latency (ms).
        latency_max: Maximum call latency (ms).
        latency_avg: Mean call latency (ms).
        latency_p50: 50th percentile call latency (ms).
        latency_p75: 75th percentile call latency (ms).
        latency_p95: 95th percentile call latency (ms).
        latency_p99: 99th percentile call latency (ms).
        latency_p999: 99.9th percentile call latency (ms).
        steps: Per-step statistics keyed by step name, in first-seen order.
        users_started: Virtual users injected.
        users_completed: Users whose scenario bound ended them.
        users_failed: Users ended by a fatal or ``exit_on_failure`` error.
        users_cancelled: Users stopped by the run controller.
    """

    total_ok: int = 0
    total_ko: int = 0
    total_cancelled: int = 0
    latency_min: float = 0.0
    latency_max: float = 0.0
    latency_avg: float = 0.0
    latency_p50: float = 0.0
    latency_p75: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0
    latency_p999: float = 0.0
    steps: dict[str, StepStats] = field(default_factory=dict)
    users_started: int = 0
    users_completed: int = 0
    users_failed: int = 0
    users_cancelled: int = 0

    @property
    def total_executed(self) -> int:
        return self.total_ok + self.total_ko

    @property
    def failure_rate(self) -> float:
        """Fraction of executed steps that failed (0.0 to 1.0)."""
        return self.total_ko / self.total_executed if self.total_executed else 0.0


@dataclass
class RunResult:
    """Complete result of a simulation run.

    Attributes:
        simulation_name: Name of the simulation that was executed.
        start_time: Monotonic time when the run started.
        end_time: Monotonic time when the run completed.
        duration_seconds: Total wall-clock duration of the run.
        profile_description: Human-readable description of the injection profile.
        snapshots: Time-series of IntervalSnapshot objects (one per tick).
        summary: Aggregate summary of the entire run.
        user_outcomes: One entry per virtual user, in user id order.
        cancelled: True if the run was cut short by max_duration or stop().
    """

    simulation_name: str
    start_time: float
    end_time: float
    duration_seconds: float
    profile_description: str
    snapshots: list[IntervalSnapshot] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)
    user_outcomes: list[UserOutcome] = field(default_factory=list)
    cancelled: bool = False
