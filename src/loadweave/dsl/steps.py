"""Step variants and immutable step chains.

Scenarios are plain data: a :class:`Chain` is an ordered tuple of steps, and
a chain is itself a step, so journeys compose by embedding one chain in
another. Chains hold no state; the session passed at execution time carries
everything. :class:`loadweave.engine.interpreter.ChainInterpreter` is the
single place that gives these variants their behaviour.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from loadweave._internal.errors import ConfigError, ScenarioError

if TYPE_CHECKING:
    from loadweave.dsl.checks import Check
    from loadweave.dsl.feeder import Feeder
    from loadweave.dsl.session import Session


@dataclass(frozen=True)
class Call:
    """Issue one HTTP request and validate the response.

    Attributes:
        name: Outcome name; may contain ``#{...}`` placeholders.
        method: HTTP method.
        path: Path (appended to the base URL) or absolute URL template.
        headers: Header templates, merged over the run's default headers.
        body: String or JSON-like body template, or None.
        checks: Checks evaluated in order after the response arrives.
    """

    name: str
    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None
    checks: tuple[Check, ...] = ()

    @property
    def label(self) -> str:
        return self.name


@dataclass(frozen=True)
class Pause:
    """Suspend the virtual user for a uniform draw in ``[min_seconds, max_seconds]``."""

    min_seconds: float
    max_seconds: float | None = None

    def __post_init__(self) -> None:
        upper = self.max_seconds if self.max_seconds is not None else self.min_seconds
        if self.min_seconds < 0 or upper < self.min_seconds:
            msg = f"Invalid pause range: ({self.min_seconds}, {self.max_seconds})"
            raise ConfigError(msg)

    @property
    def label(self) -> str:
        return "pause"


@dataclass(frozen=True)
class Conditional:
    """Run *then* when *predicate* holds for the session, else *otherwise*."""

    predicate: Callable[[Session], bool]
    then: Chain
    otherwise: Chain | None = None
    name: str = "if"

    @property
    def label(self) -> str:
        return self.name


@dataclass(frozen=True)
class Repeat:
    """Run *body* a fixed number of times.

    Attributes:
        times: A literal count, a session key holding the count, or a
            function of the session. Evaluated once when the step is entered.
        body: The chain to repeat.
        counter: Session key exposing the 0-based iteration index to *body*;
            removed once the loop finishes.
    """

    times: int | str | Callable[[Session], int]
    body: Chain
    counter: str | None = None
    name: str = "repeat"

    def __post_init__(self) -> None:
        if isinstance(self.times, int) and self.times < 0:
            msg = f"Repeat count must be >= 0, got {self.times}"
            raise ConfigError(msg)

    @property
    def label(self) -> str:
        return self.name


@dataclass(frozen=True)
class Feed:
    """Merge the feeder's next record into the session."""

    feeder: Feeder

    @property
    def label(self) -> str:
        return f"feed {self.feeder.name}"


@dataclass(frozen=True)
class Transform:
    """Apply an arbitrary ``Session -> Session`` function.

    Randomness inside *fn* should come from ``session.random``.
    """

    fn: Callable[[Session], Session]
    name: str = "transform"

    @property
    def label(self) -> str:
        return self.name


@dataclass(frozen=True)
class Choice:
    """One weighted alternative of a :class:`RandomSwitch`."""

    weight: float
    chain: Chain

    def __post_init__(self) -> None:
        if self.weight <= 0:
            msg = f"Choice weight must be positive, got {self.weight}"
            raise ScenarioError(msg)


@dataclass(frozen=True)
class RandomSwitch:
    """Run exactly one of *choices*, picked with probability proportional to weight."""

    choices: tuple[Choice, ...]
    name: str = "random switch"

    def __post_init__(self) -> None:
        if not self.choices:
            msg = "RandomSwitch needs at least one choice"
            raise ScenarioError(msg)

    @property
    def label(self) -> str:
        return self.name


Step = Union["Call", "Pause", "Conditional", "Repeat", "Feed", "Transform", "RandomSwitch", "Chain"]


@dataclass(frozen=True)
class Chain:
    """An immutable, ordered sequence of steps.

    A chain is also a step: embedding one chain inside another executes it
    in place, with the same fail-fast semantics.
    """

    steps: tuple[Step, ...] = ()
    name: str = "chain"

    @property
    def label(self) -> str:
        return self.name

    def __len__(self) -> int:
        return len(self.steps)

    def then(self, *steps: Step) -> Chain:
        """Return a new chain with *steps* appended."""
        return Chain((*self.steps, *steps), self.name)

    def pause(self, min_seconds: float, max_seconds: float | None = None) -> Chain:
        return self.then(Pause(min_seconds, max_seconds))

    def feed(self, feeder: Feeder) -> Chain:
        return self.then(Feed(feeder))


def chain(*steps: Step, name: str = "chain") -> Chain:
    """Build a chain from *steps*."""
    return Chain(tuple(steps), name)


def call(
    name: str,
    method: str,
    path: str,
    *,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    checks: Sequence[Check] = (),
) -> Call:
    """Build a :class:`Call` step."""
    return Call(name, method.upper(), path, dict(headers or {}), body, tuple(checks))


def do_if(
    predicate: Callable[[Session], bool],
    then: Step,
    otherwise: Step | None = None,
) -> Conditional:
    """Build a :class:`Conditional` step; bare steps are wrapped in a chain."""
    return Conditional(predicate, _as_chain(then), None if otherwise is None else _as_chain(otherwise))


def repeat(
    times: int | str | Callable[[Session], int],
    body: Step,
    counter: str | None = None,
) -> Repeat:
    """Build a :class:`Repeat` step; a bare step is wrapped in a chain."""
    return Repeat(times, _as_chain(body), counter)


def random_switch(*choices: tuple[float, Step]) -> RandomSwitch:
    """Build a :class:`RandomSwitch` from ``(weight, step)`` pairs."""
    return RandomSwitch(tuple(Choice(weight, _as_chain(step)) for weight, step in choices))


def _as_chain(step: Step) -> Chain:
    return step if isinstance(step, Chain) else Chain((step,))


def pause(min_seconds: float, max_seconds: float | None = None) -> Pause:
    return Pause(min_seconds, max_seconds)


def feed(feeder: Feeder) -> Feed:
    return Feed(feeder)


def transform(fn: Callable[[Session], Session], name: str = "transform") -> Transform:
    """Build a :class:`Transform` step."""
    return Transform(fn, name)
