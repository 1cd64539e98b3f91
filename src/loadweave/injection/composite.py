"""Composite injection profile — chain multiple profiles sequentially."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loadweave._internal.errors import ConfigError
from loadweave.injection.base import InjectionProfile

if TYPE_CHECKING:
    from collections.abc import Sequence


class CompositeProfile(InjectionProfile):
    """Run several profiles back to back, forming a rate-change schedule.

    Each phase starts when the previous one's duration has elapsed; the
    cumulative count is the sum of every finished phase's total plus the
    running phase's own count.

    Args:
        phases: Profiles in the order they run.  Must not be empty.

    Raises:
        ConfigError: If *phases* is empty.

    Example::

        profile = CompositeProfile(
            [
                AtOnceUsers(5),
                NothingFor(10.0),
                RampUsersPerSec(start_rate=1.0, end_rate=5.0, during=30.0),
                ConstantUsersPerSec(rate=5.0, during=60.0),
            ]
        )
    """

    def __init__(self, phases: Sequence[InjectionProfile]) -> None:
        if not phases:
            msg = "phases must contain at least one injection profile"
            raise ConfigError(msg)
        self._phases = tuple(phases)

    @property
    def duration(self) -> float:
        return sum(phase.duration for phase in self._phases)

    @property
    def total_users(self) -> int:
        return sum(phase.total_users for phase in self._phases)

    def users_started_by(self, elapsed: float) -> int:
        if elapsed < 0:
            return 0
        started = 0
        offset = 0.0
        for phase in self._phases:
            if elapsed < offset:
                break
            started += phase.users_started_by(elapsed - offset)
            offset += phase.duration
        return started

    def describe(self) -> str:
        phase_descs = [f"  {i + 1}. {p.describe()}" for i, p in enumerate(self._phases)]
        header = f"Composite: {len(self._phases)} phases, {self.duration}s total"
        return "\n".join([header, *phase_descs])
