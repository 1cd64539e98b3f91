"""Ramp injection profiles — linear growth of users or of the arrival rate."""

from __future__ import annotations

from loadweave._internal.errors import ConfigError
from loadweave.injection.base import (
    InjectionProfile,
    _floor,
    _validate_non_negative,
    _validate_positive,
)


class RampUsers(InjectionProfile):
    """Start *users* virtual users spread linearly over *during* seconds.

    ``users_started_by(t) = floor(users * min(t, during) / during)``, so the
    count is 0 at ``t = 0`` and exactly *users* from ``t = during`` on.

    Args:
        users: Total users to start.  Must be >= 1.
        during: Ramp duration in seconds.  Must be > 0.

    Raises:
        ConfigError: If any argument is out of range.

    Example::

        profile = RampUsers(users=10, during=5.0)
        assert profile.users_started_by(2.5) == 5
        assert profile.users_started_by(60.0) == 10
    """

    def __init__(self, users: int, during: float) -> None:
        if users < 1:
            msg = f"users must be >= 1, got {users}"
            raise ConfigError(msg)
        _validate_positive(during, "during")
        self._users = users
        self._during = during

    @property
    def duration(self) -> float:
        return self._during

    @property
    def total_users(self) -> int:
        return self._users

    def users_started_by(self, elapsed: float) -> int:
        if elapsed <= 0:
            return 0
        fraction = min(elapsed, self._during) / self._during
        return min(_floor(self._users * fraction), self._users)

    def describe(self) -> str:
        return f"Ramp: {self._users} users over {self._during}s"


class RampUsersPerSec(InjectionProfile):
    """Open workload whose arrival rate changes linearly over *during* seconds.

    Users arrive at a rate moving from *start_rate* to *end_rate* users per
    second; the cumulative count is the integral of that rate, floored.

    Args:
        start_rate: Arrival rate at ``t = 0``.  Must be >= 0.
        end_rate: Arrival rate at ``t = during``.  Must be >= 0.
        during: Seconds over which the rate changes.  Must be > 0.

    Raises:
        ConfigError: If any argument is out of range or both rates are 0.

    Example::

        profile = RampUsersPerSec(start_rate=1.0, end_rate=10.0, during=60.0)
        # 1 user/s at the start, 10 users/s after one minute, 330 users total
    """

    def __init__(self, start_rate: float, end_rate: float, during: float) -> None:
        _validate_non_negative(start_rate, "start_rate")
        _validate_non_negative(end_rate, "end_rate")
        _validate_positive(during, "during")
        if start_rate == 0 and end_rate == 0:
            msg = "start_rate and end_rate cannot both be 0; use NothingFor for a pause"
            raise ConfigError(msg)
        self._start_rate = start_rate
        self._end_rate = end_rate
        self._during = during

    @property
    def duration(self) -> float:
        return self._during

    @property
    def total_users(self) -> int:
        return self.users_started_by(self._during)

    def users_started_by(self, elapsed: float) -> int:
        if elapsed <= 0:
            return 0
        t = min(elapsed, self._during)
        slope = (self._end_rate - self._start_rate) / self._during
        return _floor(self._start_rate * t + slope * t * t / 2)

    def describe(self) -> str:
        return f"Ramp rate: {self._start_rate} -> {self._end_rate} users/s over {self._during}s"
