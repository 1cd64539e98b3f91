"""The single interpreter that gives step variants their behaviour."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loadweave._internal.errors import (
    BoundReached,
    StepError,
    UserCancelled,
)
from loadweave._internal.logging import get_logger
from loadweave.dsl.checks import path_extract, run_checks
from loadweave.dsl.http import RequestSpec
from loadweave.dsl.scenario import pick_weighted
from loadweave.dsl.session import Session
from loadweave.dsl.steps import (
    Call,
    Chain,
    Conditional,
    Feed,
    Pause,
    RandomSwitch,
    Repeat,
    Transform,
)
from loadweave.dsl.template import interpolate, render
from loadweave.metrics.models import Outcome, OutcomeStatus

if TYPE_CHECKING:
    import logging
    from collections.abc import Awaitable, Callable, Mapping

    from loadweave.dsl.checks import Extractor
    from loadweave.dsl.http import Transport
    from loadweave.dsl.steps import Step
    from loadweave.engine.throttle import Throttle

    OutcomeSink = Callable[[Outcome], None]

logger = get_logger("engine.interpreter")


@dataclass
class UserContext:
    """Per-user execution context threaded through the interpreter.

    Attributes:
        user_id: Identifier of the virtual user.
        scenario: Name of the scenario it runs.
        deadline: Monotonic time after which the ``During`` bound stops the
            user at the next step boundary, or None.
        log: Logger tagged with the user's identity.
    """

    user_id: int
    scenario: str
    deadline: float | None = None
    log: logging.Logger | logging.LoggerAdapter = field(default=logger)  # type: ignore[type-arg]


def _error_text(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"


def resolve_url(base_url: str, path: str) -> str:
    """Join *path* onto *base_url* unless it is already absolute."""
    if path.startswith(("http://", "https://")) or not base_url:
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class ChainInterpreter:
    """Executes chains for virtual users.

    Steps run strictly in order and the session returned by one step is the
    input of the next. The first failure skips the remaining steps of every
    enclosing chain and propagates to the caller as a :class:`StepError`.

    Before each step the interpreter checks two boundaries: run cancellation
    (a cancelled outcome is recorded for the step that will not run, then
    :class:`UserCancelled` is raised) and the user's ``During`` deadline
    (:class:`BoundReached` is raised without recording anything).

    Args:
        transport: HTTP collaborator used by ``Call`` steps.
        base_url: Prefix for relative call paths.
        default_headers: Headers sent with every call; call headers win.
        extractor: Extraction collaborator used by body checks.
        record: Sink receiving every step outcome.
        cancel_event: Set by the run controller to cancel every user.
        throttle: Optional request-rate throttle acquired before each call.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        base_url: str = "",
        default_headers: Mapping[str, str] | None = None,
        extractor: Extractor = path_extract,
        record: OutcomeSink | None = None,
        cancel_event: asyncio.Event | None = None,
        throttle: Throttle | None = None,
    ) -> None:
        self._transport = transport
        self._base_url = base_url
        self._default_headers = dict(default_headers or {})
        self._extractor = extractor
        self._record = record or (lambda _outcome: None)
        self._cancel_event = cancel_event
        self.throttle = throttle
        self._handlers: dict[type, Callable[[Any, Session, UserContext], Awaitable[Session]]] = {
            Call: self._call,
            Pause: self._pause,
            Conditional: self._conditional,
            Repeat: self._repeat,
            Feed: self._feed,
            Transform: self._transform,
            RandomSwitch: self._random_switch,
            Chain: self.run,
        }

    @property
    def cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def run(self, chain: Chain, session: Session, user: UserContext) -> Session:
        """Execute *chain* and return the session its last step produced.

        Raises:
            StepError: From the first failing step, with ``session`` set to
                the last session the chain reached.
            UserCancelled: If the run was cancelled between two steps.
            BoundReached: If the user's deadline passed between two steps.
        """
        for step in chain.steps:
            self._check_boundary(step, session, user)
            try:
                session = await self._handlers[type(step)](step, session, user)
            except StepError as exc:
                if exc.session is None:
                    exc.session = session
                raise
        return session

    def _check_boundary(self, step: Step, session: Session, user: UserContext) -> None:
        if self.cancelled:
            self._emit(step.label, OutcomeStatus.CANCELLED, time.monotonic(), user)
            user.log.debug("Cancelled before %r", step.label)
            raise UserCancelled(step.label)
        if user.deadline is not None and time.monotonic() >= user.deadline:
            raise BoundReached(session.scenario)

    def _emit(
        self,
        name: str,
        status: OutcomeStatus,
        started: float,
        user: UserContext,
        *,
        latency_ms: float | None = None,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        self._record(
            Outcome(
                name=name,
                status=status,
                timestamp=started,
                user_id=user.user_id,
                scenario=user.scenario,
                latency_ms=latency_ms,
                status_code=status_code,
                error=error,
            )
        )

    def _guard(self, label: str, user: UserContext, fn: Callable[..., Any], *args: Any) -> Any:
        """Call a user-supplied function; a failure fails the step named *label*."""
        started = time.monotonic()
        try:
            return fn(*args)
        except StepError as exc:
            self._emit(label, OutcomeStatus.KO, started, user, error=_error_text(exc))
            raise
        except Exception as exc:
            error = StepError(_error_text(exc))
            self._emit(label, OutcomeStatus.KO, started, user, error=str(error))
            raise error from exc

    # -- handlers ----------------------------------------------------------

    async def _call(self, step: Call, session: Session, user: UserContext) -> Session:
        started = time.monotonic()
        name = step.name
        sent_at: float | None = None
        status_code: int | None = None
        try:
            name = interpolate(step.name, session)
            headers = {
                key: interpolate(value, session)
                for key, value in {**self._default_headers, **step.headers}.items()
            }
            request = RequestSpec(
                method=step.method,
                url=resolve_url(self._base_url, interpolate(step.path, session)),
                headers=headers,
                body=render(step.body, session),
            )
            if self.throttle is not None:
                await self.throttle.acquire()
            sent_at = time.monotonic()
            response = await self._transport.send_request(request)
            latency_ms = (time.monotonic() - sent_at) * 1000
            status_code = response.status
            session = run_checks(step.checks, response, session, self._extractor)
        except Exception as exc:
            latency = (time.monotonic() - sent_at) * 1000 if sent_at is not None else None
            self._emit(
                name,
                OutcomeStatus.KO,
                started,
                user,
                latency_ms=latency,
                status_code=status_code,
                error=_error_text(exc),
            )
            user.log.debug("%s failed: %s", name, exc)
            if isinstance(exc, StepError):
                raise
            raise StepError(_error_text(exc)) from exc

        self._emit(
            name,
            OutcomeStatus.OK,
            started,
            user,
            latency_ms=latency_ms,
            status_code=status_code,
        )
        return session

    async def _pause(self, step: Pause, session: Session, user: UserContext) -> Session:  # noqa: ARG002
        if step.max_seconds is None or step.max_seconds == step.min_seconds:
            duration = step.min_seconds
        else:
            duration = session.random.uniform(step.min_seconds, step.max_seconds)
        if self._cancel_event is None:
            await asyncio.sleep(duration)
            return session
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=duration)
        except TimeoutError:
            pass
        return session

    async def _conditional(self, step: Conditional, session: Session, user: UserContext) -> Session:
        if self._guard(step.label, user, step.predicate, session):
            return await self.run(step.then, session, user)
        if step.otherwise is not None:
            return await self.run(step.otherwise, session, user)
        return session

    def _repeat_count(self, step: Repeat, session: Session) -> int:
        if isinstance(step.times, str):
            return session.get_int(step.times)
        if callable(step.times):
            return int(step.times(session))
        return step.times

    async def _repeat(self, step: Repeat, session: Session, user: UserContext) -> Session:
        count = self._guard(step.label, user, self._repeat_count, step, session)
        for index in range(max(count, 0)):
            if step.counter is not None:
                session = session.set(step.counter, index)
            session = await self.run(step.body, session, user)
        if step.counter is not None:
            session = session.remove(step.counter)
        return session

    async def _feed(self, step: Feed, session: Session, user: UserContext) -> Session:  # noqa: ARG002
        return session.set_all(step.feeder.next(session.random))

    def _apply_transform(self, step: Transform, session: Session) -> Session:
        result = step.fn(session)
        if not isinstance(result, Session):
            msg = f"Transform {step.name!r} returned {type(result).__name__}, not a Session"
            raise StepError(msg)
        return result

    async def _transform(self, step: Transform, session: Session, user: UserContext) -> Session:
        return self._guard(step.label, user, self._apply_transform, step, session)

    async def _random_switch(self, step: RandomSwitch, session: Session, user: UserContext) -> Session:
        index = pick_weighted([choice.weight for choice in step.choices], session.random)
        return await self.run(step.choices[index].chain, session, user)
