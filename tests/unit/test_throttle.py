"""Tests for the token-bucket throttle and throttle schedules."""

from __future__ import annotations

import asyncio
import time

import pytest

from loadweave._internal.errors import ConfigError
from loadweave.engine.throttle import (
    HoldFor,
    Throttle,
    ThrottleSchedule,
    hold_for,
    jump_to_rps,
    reach_rps,
)


class TestThrottleInit:
    """Construction and validation."""

    def test_default_capacity(self) -> None:
        throttle = Throttle(rate=10.0)
        assert throttle.rate == 10.0
        assert throttle.capacity == 10.0

    def test_low_rate_keeps_one_token(self) -> None:
        assert Throttle(rate=0.5).capacity == 1.0

    def test_invalid_rate(self) -> None:
        with pytest.raises(ConfigError):
            Throttle(rate=0)


class TestThrottleAcquire:
    """Token consumption and waiting."""

    async def test_burst_is_immediate(self) -> None:
        throttle = Throttle(rate=5.0)
        t0 = time.monotonic()
        for _ in range(5):
            await throttle.acquire()
        assert time.monotonic() - t0 < 0.1

    async def test_waits_when_empty(self) -> None:
        throttle = Throttle(rate=20.0, capacity=1.0)
        await throttle.acquire()
        t0 = time.monotonic()
        await throttle.acquire()
        await throttle.acquire()
        assert time.monotonic() - t0 >= 0.08

    async def test_concurrent_acquirers_share_rate(self) -> None:
        throttle = Throttle(rate=50.0, capacity=1.0)
        t0 = time.monotonic()
        await asyncio.gather(*(throttle.acquire() for _ in range(6)))
        assert time.monotonic() - t0 >= 0.08

    async def test_update_rate(self) -> None:
        throttle = Throttle(rate=1.0)
        throttle.update_rate(100.0)
        assert throttle.rate == 100.0
        assert throttle.capacity == 100.0
        with pytest.raises(ConfigError):
            throttle.update_rate(0)


class TestThrottleSchedule:
    """Rate-change schedules."""

    @pytest.fixture
    def schedule(self) -> ThrottleSchedule:
        return ThrottleSchedule(
            reach_rps(10, during=30.0),
            hold_for(60.0),
            jump_to_rps(20),
            hold_for(60.0),
        )

    def test_duration(self, schedule: ThrottleSchedule) -> None:
        assert schedule.duration == 150.0

    def test_starts_at_zero(self, schedule: ThrottleSchedule) -> None:
        assert schedule.rate_at(0.0) == 0.0

    def test_linear_reach(self, schedule: ThrottleSchedule) -> None:
        assert schedule.rate_at(15.0) == pytest.approx(5.0)

    def test_hold(self, schedule: ThrottleSchedule) -> None:
        assert schedule.rate_at(45.0) == 10.0

    def test_jump(self, schedule: ThrottleSchedule) -> None:
        assert schedule.rate_at(100.0) == 20.0

    def test_unthrottled_after_end(self, schedule: ThrottleSchedule) -> None:
        assert schedule.rate_at(150.0) is None
        assert schedule.rate_at(-1.0) is None

    def test_describe(self) -> None:
        text = ThrottleSchedule(reach_rps(5, during=1.0), HoldFor(2.0)).describe()
        assert text == "reach 5 rps in 1.0s, hold 2.0s"

    def test_invalid_steps(self) -> None:
        with pytest.raises(ConfigError):
            ThrottleSchedule()
        with pytest.raises(ConfigError):
            reach_rps(0, during=1.0)
        with pytest.raises(ConfigError):
            hold_for(0)
        with pytest.raises(ConfigError):
            jump_to_rps(-1)
