"""Fixed-shape injection profiles: at once, constant rate, and idle."""

from __future__ import annotations

from loadweave._internal.errors import ConfigError
from loadweave.injection.base import InjectionProfile, _floor, _validate_positive


class AtOnceUsers(InjectionProfile):
    """Start *users* virtual users immediately.

    Args:
        users: Number of users.  Must be >= 1.

    Raises:
        ConfigError: If *users* < 1.
    """

    def __init__(self, users: int) -> None:
        if users < 1:
            msg = f"users must be >= 1, got {users}"
            raise ConfigError(msg)
        self._users = users

    @property
    def duration(self) -> float:
        return 0.0

    @property
    def total_users(self) -> int:
        return self._users

    def users_started_by(self, elapsed: float) -> int:
        return self._users if elapsed >= 0 else 0

    def describe(self) -> str:
        return f"At once: {self._users} users"


class ConstantUsersPerSec(InjectionProfile):
    """Open workload: start users at a fixed *rate* for *during* seconds.

    Args:
        rate: Users started per second.  Must be > 0.
        during: Injection duration in seconds.  Must be > 0.

    Raises:
        ConfigError: If any argument is out of range.

    Example::

        profile = ConstantUsersPerSec(rate=2.0, during=180.0)
        assert profile.total_users == 360
    """

    def __init__(self, rate: float, during: float) -> None:
        _validate_positive(rate, "rate")
        _validate_positive(during, "during")
        self._rate = rate
        self._during = during

    @property
    def duration(self) -> float:
        return self._during

    @property
    def total_users(self) -> int:
        return _floor(self._rate * self._during)

    def users_started_by(self, elapsed: float) -> int:
        if elapsed <= 0:
            return 0
        return _floor(self._rate * min(elapsed, self._during))

    def describe(self) -> str:
        return f"Constant rate: {self._rate} users/s for {self._during}s"


class NothingFor(InjectionProfile):
    """Inject nothing for *during* seconds; used between composite phases."""

    def __init__(self, during: float) -> None:
        _validate_positive(during, "during")
        self._during = during

    @property
    def duration(self) -> float:
        return self._during

    @property
    def total_users(self) -> int:
        return 0

    def users_started_by(self, elapsed: float) -> int:  # noqa: ARG002
        return 0

    def describe(self) -> str:
        return f"Nothing for {self._during}s"
