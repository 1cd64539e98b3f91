"""Virtual user lifecycle and shutdown helpers."""

from __future__ import annotations

import asyncio
import random
import time
from typing import TYPE_CHECKING

from loadweave._internal.errors import BoundReached, StepError, UserCancelled
from loadweave._internal.logging import get_logger, get_user_logger
from loadweave.dsl.scenario import During, Iterations
from loadweave.dsl.session import Session
from loadweave.engine.interpreter import UserContext
from loadweave.metrics.models import UserOutcome, UserStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadweave.dsl.scenario import ScenarioSpec
    from loadweave.engine.interpreter import ChainInterpreter

logger = get_logger("engine.user")


def user_random(seed: int | None, user_id: int) -> random.Random:
    """Return the private generator for one virtual user.

    With a seed, every user gets a distinct but reproducible stream; without
    one, the generator is seeded from the OS.
    """
    if seed is None:
        return random.Random()  # noqa: S311
    return random.Random(f"{seed}:{user_id}")  # noqa: S311


class VirtualUser:
    """One simulated client running a scenario until its bound ends it.

    Each pass runs the scenario's chain from the top with the session left
    by the previous pass. A failed pass ends only that pass, unless the
    error is fatal or the scenario sets ``exit_on_failure``.

    Args:
        user_id: Unique identifier of this user within the run.
        scenario: The scenario picked for this user.
        interpreter: Shared chain interpreter.
        rng: This user's private random generator.
        on_finish: Receives the user's outcome when it ends, however it ends.
    """

    def __init__(
        self,
        user_id: int,
        scenario: ScenarioSpec,
        interpreter: ChainInterpreter,
        rng: random.Random,
        on_finish: Callable[[UserOutcome], None] | None = None,
    ) -> None:
        self.user_id = user_id
        self.scenario = scenario
        self._interpreter = interpreter
        self._rng = rng
        self._on_finish = on_finish
        self._log = get_user_logger("engine.user", user_id, scenario.name)

    async def run(self) -> UserOutcome:
        """Run passes until the bound, a fatal error or cancellation ends the user.

        Returns:
            The user's outcome.
        """
        scenario = self.scenario
        bound = scenario.bound
        deadline = time.monotonic() + bound.seconds if isinstance(bound, During) else None
        context = UserContext(self.user_id, scenario.name, deadline, self._log)
        session = Session.initial(self.user_id, scenario.name, self._rng)

        status = UserStatus.COMPLETED
        passes = 0
        failed_passes = 0
        error: str | None = None

        self._log.debug("Started (%s)", bound.describe())
        try:
            while True:
                # A chain with steps reports cancellation itself, at its first
                # step boundary; an empty chain has no boundary to do it.
                if self._interpreter.cancelled and not scenario.chain.steps:
                    status = UserStatus.CANCELLED
                    break
                if isinstance(bound, Iterations) and passes >= bound.count:
                    break
                if deadline is not None and time.monotonic() >= deadline:
                    break

                passes += 1
                try:
                    session = await self._interpreter.run(scenario.chain, session, context)
                except StepError as exc:
                    failed_passes += 1
                    if exc.session is not None:
                        session = exc.session
                    if exc.fatal or scenario.exit_on_failure:
                        status = UserStatus.FAILED
                        error = f"{type(exc).__name__}: {exc}"
                        self._log.debug("Stopped after failure: %s", error)
                        break
                # Let other users run between passes of a step-less chain
                await asyncio.sleep(0)
        except BoundReached:
            pass
        except UserCancelled:
            status = UserStatus.CANCELLED
        except asyncio.CancelledError:
            status = UserStatus.CANCELLED
            raise
        except Exception as exc:
            status = UserStatus.FAILED
            error = f"{type(exc).__name__}: {exc}"
            self._log.warning("Crashed: %s", error, exc_info=True)
        finally:
            outcome = UserOutcome(
                user_id=self.user_id,
                scenario=scenario.name,
                status=status,
                passes=passes,
                failed_passes=failed_passes,
                error=error,
            )
            if self._on_finish is not None:
                self._on_finish(outcome)
            self._log.debug("Finished: %s after %d pass(es)", status.value, passes)

        return outcome


async def shutdown_users(
    user_tasks: dict[int, asyncio.Task[UserOutcome]],
    cancel_event: asyncio.Event,
    grace_period: float = 5.0,
) -> None:
    """Cancel every running virtual user.

    Sets the cancel event so users stop at their next step boundary, waits
    up to *grace_period* seconds, then cancels whatever is still running.

    Args:
        user_tasks: Running user tasks keyed by user id.
        cancel_event: Event checked by users at step boundaries.
        grace_period: Seconds to wait for cooperative cancellation.
    """
    cancel_event.set()

    tasks = list(user_tasks.values())
    if tasks:
        _done, pending = await asyncio.wait(tasks, timeout=grace_period)

        for task in pending:
            task.cancel()

        if pending:
            logger.info("Hard-cancelled %d virtual user(s) after %.1fs", len(pending), grace_period)
            await asyncio.wait(pending, timeout=2.0)

    user_tasks.clear()
    logger.debug("All virtual users shut down")
