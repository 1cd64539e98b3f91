"""Abstract base class for all injection profiles."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from loadweave._internal.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator

# Absorbs float error so that e.g. 10 * 0.3 / 0.3 floors to 10, not 9.
_EPSILON = 1e-9

# Per-user arrival times are searched one window at a time, to this precision.
_SEARCH_WINDOW = 1.0
_RESOLUTION = 1e-6


class InjectionProfile(ABC):
    """Abstract base for all injection profiles.

    An injection profile describes how virtual users *arrive*: how many have
    been started once ``elapsed`` seconds have passed.  Users are never
    stopped by a profile; each runs until its scenario bound ends it.

    Concrete subclasses implement :meth:`users_started_by`, which must be
    monotonically non-decreasing in *elapsed* and reach :attr:`total_users`
    at :attr:`duration`.

    Example::

        profile = RampUsers(users=100, during=60.0)
        for elapsed, started in profile.iter_arrivals(tick_interval=1.0):
            print(f"t={elapsed:.1f}s -> {started} users started")
    """

    @property
    @abstractmethod
    def duration(self) -> float:
        """Seconds after which no more users are injected."""

    @property
    @abstractmethod
    def total_users(self) -> int:
        """Number of users started over the whole profile."""

    @abstractmethod
    def users_started_by(self, elapsed: float) -> int:
        """Return the cumulative number of users started by *elapsed* seconds.

        Args:
            elapsed: Seconds since injection began.  Negative values yield 0.
        """

    @abstractmethod
    def describe(self) -> str:
        """Return a short human-readable description for logs and summaries."""

    def iter_arrivals(self, tick_interval: float = 1.0) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed_seconds, cumulative_users)`` at each tick.

        Ticks land on multiples of *tick_interval*; a final tick always lands
        exactly on :attr:`duration` so the full user count is injected.

        Args:
            tick_interval: Seconds between ticks.  Defaults to 1.0.

        Yields:
            ``(elapsed_seconds, cumulative_users)`` tuples.
        """
        _validate_positive(tick_interval, "tick_interval")
        duration = self.duration
        index = 0
        while True:
            elapsed = index * tick_interval
            if elapsed >= duration - _EPSILON:
                break
            yield (elapsed, self.users_started_by(elapsed))
            index += 1
        yield (duration, self.total_users)

    def iter_user_arrivals(self) -> Iterator[float]:
        """Yield the start time of every user, in order.

        User *k* (1-based) starts at the earliest time at which
        :meth:`users_started_by` reaches *k*, so the number of users started
        by any time *t* follows the arrival curve exactly rather than in
        per-tick bursts.

        Yields:
            Seconds since injection began, one value per user.
        """
        low = 0.0
        started = 0
        for elapsed, cumulative in self.iter_arrivals(_SEARCH_WINDOW):
            for user in range(started + 1, cumulative + 1):
                yield self._first_time_reaching(user, low, elapsed)
            started = max(started, cumulative)
            low = elapsed

    def _first_time_reaching(self, user: int, low: float, high: float) -> float:
        # Bisection inside one search window; the curve is non-decreasing.
        if self.users_started_by(low) >= user:
            return low
        while high - low > _RESOLUTION:
            mid = (low + high) / 2
            if self.users_started_by(mid) >= user:
                high = mid
            else:
                low = mid
        return high


def _floor(value: float) -> int:
    return max(math.floor(value + _EPSILON), 0)


def _validate_positive(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is not strictly positive.

    Args:
        value: The numeric value to validate.
        name: Parameter name used in the error message.

    Raises:
        ConfigError: If *value* is not > 0.
    """
    if value <= 0:
        msg = f"{name} must be positive, got {value}"
        raise ConfigError(msg)


def _validate_non_negative(value: float, name: str) -> None:
    """Raise :class:`ConfigError` if *value* is negative.

    Args:
        value: The numeric value to validate.
        name: Parameter name used in the error message.

    Raises:
        ConfigError: If *value* is < 0.
    """
    if value < 0:
        msg = f"{name} must be non-negative, got {value}"
        raise ConfigError(msg)
