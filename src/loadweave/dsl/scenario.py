"""Scenario specifications, bounds, weighted dispatch and simulations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loadweave._internal.errors import ConfigError, ScenarioError
from loadweave.dsl.checks import path_extract

if TYPE_CHECKING:
    import random
    from collections.abc import Sequence

    from loadweave.dsl.checks import Extractor
    from loadweave.dsl.steps import Chain
    from loadweave.engine.throttle import ThrottleSchedule
    from loadweave.injection.base import InjectionProfile


@dataclass(frozen=True)
class Iterations:
    """Run the scenario's chain *count* times in sequence."""

    count: int

    def __post_init__(self) -> None:
        if self.count < 1:
            msg = f"Iterations count must be >= 1, got {self.count}"
            raise ConfigError(msg)

    def describe(self) -> str:
        return f"{self.count} iteration(s)"


@dataclass(frozen=True)
class During:
    """Re-run the scenario's chain until *seconds* of wall-clock time elapse.

    The bound is checked between steps; an in-flight call always completes.
    """

    seconds: float

    def __post_init__(self) -> None:
        if self.seconds <= 0:
            msg = f"During bound must be positive, got {self.seconds}"
            raise ConfigError(msg)

    def describe(self) -> str:
        return f"during {self.seconds}s"


def Once() -> Iterations:  # noqa: N802
    """Bound that runs the chain exactly once."""
    return Iterations(1)


ScenarioBound = Iterations | During


@dataclass(frozen=True)
class ScenarioSpec:
    """A named top-level chain with a bound and a dispatch weight.

    Attributes:
        name: Human-readable scenario name.
        chain: The top-level chain each virtual user runs.
        bound: How long or how often the chain runs per user.
        weight: Relative weight for per-user scenario dispatch.
        exit_on_failure: If True, a failed pass ends the virtual user instead
            of letting the bound start another pass.
    """

    name: str
    chain: Chain
    bound: ScenarioBound = field(default_factory=Once)
    weight: float = 1.0
    exit_on_failure: bool = False

    def __post_init__(self) -> None:
        if self.weight <= 0:
            msg = f"Scenario {self.name!r} weight must be positive, got {self.weight}"
            raise ScenarioError(msg)


def pick_weighted(weights: Sequence[float], rng: random.Random) -> int:
    """Return an index drawn with probability proportional to its weight.

    Weights need not sum to 1. Each draw is independent of prior draws.

    Args:
        weights: Positive weights.
        rng: The calling virtual user's private generator.

    Returns:
        The selected index.
    """
    return rng.choices(range(len(weights)), weights=weights, k=1)[0]


class ScenarioDispatcher:
    """Selects one scenario for each newly injected virtual user.

    Args:
        scenarios: Registered scenarios; names must be unique.

    Raises:
        ScenarioError: If *scenarios* is empty or a name is repeated.
    """

    def __init__(self, scenarios: Sequence[ScenarioSpec]) -> None:
        if not scenarios:
            msg = "At least one scenario is required"
            raise ScenarioError(msg)
        names: set[str] = set()
        for spec in scenarios:
            if spec.name in names:
                msg = f"Scenario {spec.name!r} is already registered"
                raise ScenarioError(msg)
            names.add(spec.name)
        self._scenarios = tuple(scenarios)
        self._weights = [spec.weight for spec in scenarios]

    @property
    def scenarios(self) -> tuple[ScenarioSpec, ...]:
        return self._scenarios

    def pick(self, rng: random.Random) -> ScenarioSpec:
        """Pick a scenario using the user's generator."""
        if len(self._scenarios) == 1:
            return self._scenarios[0]
        return self._scenarios[pick_weighted(self._weights, rng)]

    def __len__(self) -> int:
        return len(self._scenarios)


@dataclass
class Simulation:
    """Everything a run needs: scenarios, arrivals and target.

    Attributes:
        name: Simulation name used in logs and the run summary.
        scenarios: Scenarios dispatched by weight to injected users.
        profile: Injection profile deciding when users start.
        base_url: Base URL prepended to relative call paths.
        default_headers: Headers sent with every call.
        max_duration: Hard cap on the whole run in seconds; users still
            running are cancelled when it elapses. None means no cap.
        throttle: Optional request-rate schedule applied to every call.
        extractor: Extraction collaborator used by body checks.
        seed: Optional seed making per-user randomness reproducible.
    """

    name: str
    scenarios: Sequence[ScenarioSpec]
    profile: InjectionProfile
    base_url: str = ""
    default_headers: dict[str, str] = field(default_factory=dict)
    max_duration: float | None = None
    throttle: ThrottleSchedule | None = None
    extractor: Extractor = path_extract
    seed: int | None = None
    dispatcher: ScenarioDispatcher = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.dispatcher = ScenarioDispatcher(self.scenarios)
        if self.max_duration is not None and self.max_duration <= 0:
            msg = f"max_duration must be positive, got {self.max_duration}"
            raise ConfigError(msg)
