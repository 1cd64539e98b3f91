"""Workload injector that turns an injection profile into user start events."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loadweave._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from loadweave.injection.base import InjectionProfile

logger = get_logger("engine.injector")

# Users due within this many seconds of each other start together.
_COALESCE_SECONDS = 0.001


@dataclass(frozen=True)
class InjectionTick:
    """Users to start at one point of the injection timeline.

    Attributes:
        elapsed_seconds: Time offset from injection start.
        cumulative_users: Users started once this tick is applied.
        delta: Users started by this tick (always >= 1).
    """

    elapsed_seconds: float
    cumulative_users: int
    delta: int


class Injector:
    """Converts an injection profile's arrival curve into user start events.

    Every user is started at its own arrival time, so the number started by
    any moment follows the profile's curve rather than a coarse tick grid.
    The injector never waits on a virtual user: ``spawn`` is expected to
    schedule the user and return immediately.

    Args:
        profile: The arrival model to follow.
    """

    def __init__(self, profile: InjectionProfile) -> None:
        self._profile = profile
        self._started = 0

    @property
    def started(self) -> int:
        """Return how many users have been spawned so far."""
        return self._started

    def iter_schedule(self) -> Iterator[InjectionTick]:
        """Yield an InjectionTick for each distinct user start time."""
        pending: InjectionTick | None = None
        cumulative = 0
        for at in self._profile.iter_user_arrivals():
            cumulative += 1
            if pending is not None and at - pending.elapsed_seconds < _COALESCE_SECONDS:
                pending = InjectionTick(pending.elapsed_seconds, cumulative, pending.delta + 1)
                continue
            if pending is not None:
                yield pending
            pending = InjectionTick(elapsed_seconds=at, cumulative_users=cumulative, delta=1)
        if pending is not None:
            yield pending

    async def run(self, spawn: Callable[[], object], stop_event: asyncio.Event) -> int:
        """Follow the schedule in real time, calling *spawn* once per user.

        Args:
            spawn: Starts one virtual user without awaiting it.
            stop_event: Ends injection early when set.

        Returns:
            The number of users spawned.
        """
        start_time = time.monotonic()
        logger.info("Injection started: %s", self._profile.describe())

        for tick in self.iter_schedule():
            if stop_event.is_set():
                break

            target_time = start_time + tick.elapsed_seconds
            delay = target_time - time.monotonic()
            if delay > 0:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=delay)
                except TimeoutError:
                    pass
                else:
                    break

            for _ in range(tick.delta):
                spawn()
                self._started += 1

            logger.debug(
                "At %.3fs: started %d user(s), %d total",
                tick.elapsed_seconds,
                tick.delta,
                tick.cumulative_users,
            )

        # The profile may run on past its last arrival (e.g. a trailing pause)
        remaining = start_time + self._profile.duration - time.monotonic()
        if remaining > 0 and not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=remaining)
            except TimeoutError:
                pass

        logger.info("Injection finished: %d user(s) started", self._started)
        return self._started
