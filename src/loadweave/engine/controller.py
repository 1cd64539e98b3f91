"""Run lifecycle management and signal handling."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
import time
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadweave._internal.errors import EngineError
from loadweave._internal.logging import get_logger
from loadweave.dsl.http import AiohttpTransport
from loadweave.engine.injector import Injector
from loadweave.engine.interpreter import ChainInterpreter
from loadweave.engine.throttle import Throttle
from loadweave.engine.user import VirtualUser, shutdown_users, user_random
from loadweave.metrics.collector import MetricCollector
from loadweave.metrics.models import IntervalSnapshot, RunResult, UserOutcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadweave.dsl.http import Transport
    from loadweave.dsl.scenario import Simulation

logger = get_logger("engine.controller")

# Rate used while a throttle schedule ramps up from 0 rps.
_MIN_THROTTLE_RPS = 1.0


class RunState(Enum):
    """State machine for a run."""

    CREATED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    COMPLETED = auto()
    FAILED = auto()


class RunController:
    """Owns a whole simulation run.

    Starts the injector, spawns one task per virtual user, flushes an
    :class:`IntervalSnapshot` every tick and builds the final
    :class:`RunResult`. A run ends when injection is finished and every
    user has ended, when ``max_duration`` elapses, or on ``stop()``,
    SIGINT or SIGTERM. In the last two cases users are cancelled
    cooperatively and hard-cancelled after ``cancel_grace`` seconds.

    One user's failure never aborts the run.

    State machine: CREATED -> STARTING -> RUNNING -> STOPPING -> COMPLETED
                                                  -> FAILED (on error)

    Attributes:
        simulation: The simulation being executed.
    """

    def __init__(
        self,
        simulation: Simulation,
        transport: Transport | None = None,
        *,
        tick_interval: float = 1.0,
        cancel_grace: float = 5.0,
        request_timeout: float = 30.0,
        pool_size: int = 100,
        on_snapshot: Callable[[IntervalSnapshot], None] | None = None,
        handle_signals: bool = True,
    ) -> None:
        """Initialize a run controller.

        Args:
            simulation: The simulation to run.
            transport: HTTP collaborator. Defaults to an AiohttpTransport
                opened for the duration of the run.
            tick_interval: Seconds between metric snapshots.
            cancel_grace: Seconds users get to stop cooperatively before
                their tasks are cancelled.
            request_timeout: Timeout of the default transport.
            pool_size: Connection limit of the default transport.
            on_snapshot: Optional callback invoked with each snapshot.
            handle_signals: Install SIGINT/SIGTERM handlers during the run.
        """
        self.simulation = simulation
        self._transport = transport
        self._tick_interval = tick_interval
        self._cancel_grace = cancel_grace
        self._request_timeout = request_timeout
        self._pool_size = pool_size
        self._on_snapshot = on_snapshot
        self._handle_signals = handle_signals

        self._state = RunState.CREATED
        self._collector = MetricCollector()
        self._throttle: Throttle | None = None
        self._interpreter: ChainInterpreter | None = None
        self._injector = Injector(simulation.profile)
        self._user_tasks: dict[int, asyncio.Task[UserOutcome]] = {}
        self._next_user_id = 0
        self._stop_event = asyncio.Event()
        self._cancel_event = asyncio.Event()
        self._cut_short = False

    @property
    def state(self) -> RunState:
        """Return the current run state."""
        return self._state

    @property
    def active_user_count(self) -> int:
        """Return the number of virtual users still running."""
        return len(self._user_tasks)

    async def run(self) -> RunResult:
        """Execute the full run lifecycle.

        Returns:
            RunResult containing all snapshots and the final summary.

        Raises:
            EngineError: If the run was already started or the engine hits
                an unrecoverable error.
        """
        if self._state is not RunState.CREATED:
            msg = f"Run already started (state={self._state.name})"
            raise EngineError(msg)

        sim = self.simulation
        self._state = RunState.STARTING
        logger.info(
            "Starting run: simulation=%s, scenarios=%s, profile=%s, max_duration=%s",
            sim.name,
            ", ".join(spec.name for spec in sim.dispatcher.scenarios),
            sim.profile.describe(),
            f"{sim.max_duration}s" if sim.max_duration is not None else "none",
        )

        if self._handle_signals:
            self._install_signal_handlers()

        if sim.throttle is not None:
            logger.info("Throttle: %s", sim.throttle.describe())
            initial_rate = sim.throttle.rate_at(0.0) or 0.0
            self._throttle = Throttle(rate=max(initial_rate, _MIN_THROTTLE_RPS))

        start_time = time.monotonic()
        snapshots: list[IntervalSnapshot] = []

        try:
            async with contextlib.AsyncExitStack() as stack:
                transport = self._transport
                if transport is None:
                    transport = await stack.enter_async_context(
                        AiohttpTransport(timeout=self._request_timeout, pool_size=self._pool_size)
                    )
                self._interpreter = ChainInterpreter(
                    transport,
                    base_url=sim.base_url,
                    default_headers=sim.default_headers,
                    extractor=sim.extractor,
                    record=self._collector.record,
                    cancel_event=self._cancel_event,
                    throttle=self._throttle,
                )

                self._state = RunState.RUNNING
                injector_task = asyncio.create_task(
                    self._injector.run(self._spawn_user, self._stop_event),
                    name="injector",
                )
                try:
                    await self._monitor(start_time, injector_task, snapshots)
                finally:
                    if self._state is RunState.RUNNING:
                        self._state = RunState.STOPPING
                    self._stop_event.set()
                    await shutdown_users(self._user_tasks, self._cancel_event, self._cancel_grace)
                    await injector_task
        except Exception as exc:
            self._state = RunState.FAILED
            logger.exception("Run failed")
            raise EngineError("Run failed") from exc
        finally:
            if self._handle_signals:
                self._remove_signal_handlers()

        end_time = time.monotonic()
        total_duration = end_time - start_time

        # Final flush to capture outcomes recorded during shutdown
        final = self._collector.flush(
            elapsed_seconds=total_duration,
            active_users=0,
            started_users=self._injector.started,
        )
        if final.total_requests or final.total_errors:
            snapshots.append(final)

        summary = self._collector.summarize(users_started=self._injector.started)

        self._state = RunState.COMPLETED
        logger.info(
            "Run completed: duration=%.1fs, users=%d, ok=%d, ko=%d, cancelled=%d, "
            "p95=%.1fms, failure_rate=%.2f%%",
            total_duration,
            summary.users_started,
            summary.total_ok,
            summary.total_ko,
            summary.total_cancelled,
            summary.latency_p95,
            summary.failure_rate * 100,
        )

        return RunResult(
            simulation_name=sim.name,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=total_duration,
            profile_description=sim.profile.describe(),
            snapshots=snapshots,
            summary=summary,
            user_outcomes=self._collector.user_outcomes,
            cancelled=self._cut_short,
        )

    async def stop(self) -> None:
        """Request shutdown of the run.

        Injection stops immediately and running users are cancelled at their
        next step boundary.
        """
        if self._state is RunState.RUNNING:
            logger.info("Shutdown requested")
            self._request_stop()

    # -- internals ---------------------------------------------------------

    def _request_stop(self) -> None:
        self._state = RunState.STOPPING
        self._cut_short = True
        self._stop_event.set()

    async def _monitor(
        self,
        start_time: float,
        injector_task: asyncio.Task[int],
        snapshots: list[IntervalSnapshot],
    ) -> None:
        """Tick until the run is over, flushing a snapshot every tick."""
        sim = self.simulation
        tick = 0
        while True:
            tick += 1
            next_tick = start_time + tick * self._tick_interval
            if sim.max_duration is not None:
                next_tick = min(next_tick, start_time + sim.max_duration)
            delay = next_tick - time.monotonic()
            if delay > 0:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)

            elapsed = time.monotonic() - start_time

            if injector_task.done() and injector_task.exception() is not None:
                raise injector_task.exception()  # type: ignore[misc]

            self._update_throttle(elapsed)

            snapshot = self._collector.flush(
                elapsed_seconds=elapsed,
                active_users=self.active_user_count,
                started_users=self._injector.started,
            )
            snapshots.append(snapshot)
            if self._on_snapshot is not None:
                self._on_snapshot(snapshot)

            logger.debug(
                "Tick %.1fs: active=%d, started=%d, rps=%.1f, p95=%.1fms, errors=%d",
                elapsed,
                snapshot.active_users,
                snapshot.started_users,
                snapshot.requests_per_second,
                snapshot.latency_p95,
                snapshot.total_errors,
            )

            if self._stop_event.is_set():
                return
            if sim.max_duration is not None and elapsed >= sim.max_duration:
                logger.info("Max duration of %.1fs reached, cancelling users", sim.max_duration)
                self._request_stop()
                return
            if injector_task.done() and not self._user_tasks:
                return

    def _update_throttle(self, elapsed: float) -> None:
        schedule = self.simulation.throttle
        if schedule is None or self._throttle is None or self._interpreter is None:
            return
        rate = schedule.rate_at(elapsed)
        if rate is None:
            if self._interpreter.throttle is not None:
                logger.info("Throttle schedule finished, requests are no longer throttled")
            self._interpreter.throttle = None
            return
        self._throttle.update_rate(max(rate, _MIN_THROTTLE_RPS))

    def _spawn_user(self) -> None:
        """Start one virtual user without awaiting it."""
        if self._interpreter is None:
            msg = "Cannot spawn users before the run has started"
            raise EngineError(msg)
        user_id = self._next_user_id
        self._next_user_id += 1

        rng = user_random(self.simulation.seed, user_id)
        scenario = self.simulation.dispatcher.pick(rng)
        user = VirtualUser(
            user_id,
            scenario,
            self._interpreter,
            rng,
            on_finish=self._collector.record_user,
        )
        task = asyncio.create_task(user.run(), name=f"virtual-user-{user_id}")
        self._user_tasks[user_id] = task
        task.add_done_callback(lambda _t, uid=user_id: self._user_tasks.pop(uid, None))

    def _install_signal_handlers(self) -> None:
        """Install SIGINT and SIGTERM handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def _signal_handler() -> None:
            logger.info("Signal received, initiating graceful shutdown")
            self._request_stop()

        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, _signal_handler)
            loop.add_signal_handler(signal.SIGTERM, _signal_handler)
        else:
            signal.signal(signal.SIGINT, lambda _s, _f: _signal_handler())
            signal.signal(signal.SIGTERM, lambda _s, _f: _signal_handler())

    def _remove_signal_handlers(self) -> None:
        """Remove custom signal handlers, restoring defaults."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
