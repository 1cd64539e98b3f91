"""Token-bucket request throttle and its rate-change schedule."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from loadweave._internal.errors import ConfigError


class Throttle:
    """Token bucket limiting how fast the calls of a whole run are sent.

    Every ``Call`` step takes one token before its request goes out. Tokens
    refill at ``rate`` per second up to ``capacity``. A caller finding the
    bucket empty reserves the next token anyway and sleeps until it is due,
    so waiting users are served in arrival order.

    Args:
        rate: Tokens per second. Must be positive.
        capacity: Burst size. Defaults to one second of tokens, at least 1.

    Raises:
        ConfigError: If *rate* is not positive.
    """

    def __init__(self, rate: float, capacity: float | None = None) -> None:
        if rate <= 0:
            msg = f"Throttle rate must be positive, got {rate}"
            raise ConfigError(msg)
        self._rate = rate
        self._capacity = capacity if capacity is not None else max(rate, 1.0)
        # Negative while callers are waiting for reserved tokens
        self._tokens = self._capacity
        self._updated_at = time.monotonic()

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def capacity(self) -> float:
        return self._capacity

    async def acquire(self) -> None:
        """Take one token, sleeping until it is due if the bucket is empty."""
        self._refill()
        self._tokens -= 1.0
        if self._tokens < 0:
            await asyncio.sleep(-self._tokens / self._rate)

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(self._capacity, self._tokens + (now - self._updated_at) * self._rate)
        self._updated_at = now

    def update_rate(self, new_rate: float) -> None:
        """Switch to *new_rate* tokens per second; capacity follows the rate.

        Tokens accrued at the old rate are kept, up to the new capacity.

        Raises:
            ConfigError: If *new_rate* is not positive.
        """
        if new_rate <= 0:
            msg = f"Throttle rate must be positive, got {new_rate}"
            raise ConfigError(msg)
        self._refill()
        self._rate = new_rate
        self._capacity = max(new_rate, 1.0)
        self._tokens = min(self._tokens, self._capacity)


# -- schedule ----------------------------------------------------------------


@dataclass(frozen=True)
class ReachRps:
    """Move the target rate linearly to *rps* over *during* seconds."""

    rps: float
    during: float


@dataclass(frozen=True)
class HoldFor:
    """Keep the current target rate for *seconds*."""

    seconds: float


@dataclass(frozen=True)
class JumpToRps:
    """Switch the target rate to *rps* immediately."""

    rps: float


ThrottleStep = ReachRps | HoldFor | JumpToRps


def reach_rps(rps: float, during: float) -> ReachRps:
    if rps <= 0 or during <= 0:
        msg = f"reach_rps needs positive rps and duration, got ({rps}, {during})"
        raise ConfigError(msg)
    return ReachRps(rps, during)


def hold_for(seconds: float) -> HoldFor:
    if seconds <= 0:
        msg = f"hold_for duration must be positive, got {seconds}"
        raise ConfigError(msg)
    return HoldFor(seconds)


def jump_to_rps(rps: float) -> JumpToRps:
    if rps <= 0:
        msg = f"jump_to_rps rate must be positive, got {rps}"
        raise ConfigError(msg)
    return JumpToRps(rps)


class ThrottleSchedule:
    """A sequence of throttle steps describing the target request rate over time.

    The schedule starts at 0 rps. ``rate_at`` returns None once the last
    step has ended, meaning "unthrottled".

    Example::

        schedule = ThrottleSchedule(
            reach_rps(10, during=30.0),
            hold_for(60.0),
            jump_to_rps(20),
            hold_for(60.0),
        )
        assert schedule.rate_at(15.0) == 5.0
        assert schedule.rate_at(100.0) == 20.0
    """

    def __init__(self, *steps: ThrottleStep) -> None:
        if not steps:
            msg = "ThrottleSchedule needs at least one step"
            raise ConfigError(msg)
        self._steps = steps

    @property
    def steps(self) -> tuple[ThrottleStep, ...]:
        return self._steps

    @property
    def duration(self) -> float:
        total = 0.0
        for step in self._steps:
            if isinstance(step, ReachRps):
                total += step.during
            elif isinstance(step, HoldFor):
                total += step.seconds
        return total

    def rate_at(self, elapsed: float) -> float | None:
        """Return the target rate at *elapsed* seconds, or None when unthrottled."""
        if elapsed < 0 or elapsed >= self.duration:
            return None
        rate = 0.0
        offset = 0.0
        for step in self._steps:
            if isinstance(step, JumpToRps):
                rate = step.rps
                continue
            length = step.during if isinstance(step, ReachRps) else step.seconds
            if elapsed < offset + length:
                if isinstance(step, ReachRps):
                    fraction = (elapsed - offset) / length
                    rate += (step.rps - rate) * fraction
                break
            if isinstance(step, ReachRps):
                rate = step.rps
            offset += length
        return rate

    def describe(self) -> str:
        parts = []
        for step in self._steps:
            if isinstance(step, ReachRps):
                parts.append(f"reach {step.rps} rps in {step.during}s")
            elif isinstance(step, HoldFor):
                parts.append(f"hold {step.seconds}s")
            else:
                parts.append(f"jump to {step.rps} rps")
        return ", ".join(parts)
