"""Custom exception hierarchy for LoadWeave."""

from __future__ import annotations

from typing import Any


class LoadWeaveError(Exception):
    """Base exception for all LoadWeave errors.

    All custom exceptions in the LoadWeave framework inherit from this class,
    making it easy to catch any LoadWeave-specific error with a single
    except clause.
    """


class ScenarioError(LoadWeaveError):
    """Raised when a scenario or simulation definition is invalid.

    Examples:
        - Two scenarios are registered under the same name.
        - A scenario or random-switch choice has a non-positive weight.
        - A simulation file cannot be loaded or defines no Simulation.
    """


class ConfigError(LoadWeaveError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Required environment variable has an invalid value.
        - An injection profile argument is out of acceptable range.
    """


class EngineError(LoadWeaveError):
    """Raised when the run controller hits an unrecoverable error."""


class FeederExhausted(LoadWeaveError):
    """Raised when a feeder is built from an empty record set.

    Both feeder strategies are non-exhausting once constructed, so this can
    only happen at configuration time and a run must never start with one.
    """


class StepError(LoadWeaveError):
    """Base class for failures raised while executing a step.

    A step error fails the step that raised it and every enclosing chain up
    to the virtual user's top level.

    Attributes:
        fatal: If True, the virtual user stops entirely instead of moving on
            to the next pass of its scenario.
        session: The session the failing chain had reached, attached by the
            chain interpreter so the next pass keeps earlier saves.
    """

    fatal = False
    session: Any = None


class TransportError(StepError):
    """The HTTP collaborator could not deliver a request or read its response."""


class CheckFailure(StepError):
    """A response did not satisfy a declared check.

    Attributes:
        check: Human-readable description of the failing check.
    """

    def __init__(self, check: str, reason: str) -> None:
        super().__init__(f"{check}: {reason}")
        self.check = check
        self.reason = reason


class ExtractionError(StepError):
    """The extraction collaborator found nothing for an expression."""


class UnresolvedPlaceholder(StepError):
    """A ``#{key}`` placeholder referenced a session key that is absent.

    Attributes:
        key: The missing session key.
    """

    def __init__(self, key: str, template: str) -> None:
        super().__init__(f"No session attribute {key!r} for placeholder in {template!r}")
        self.key = key
        self.template = template


class TypeMismatch(StepError):
    """A session value does not have the shape a typed accessor expects."""

    fatal = True

    def __init__(self, key: str, expected: str, actual: object) -> None:
        super().__init__(
            f"Session attribute {key!r} is not a {expected} "
            f"(got {type(actual).__name__}: {actual!r})"
        )
        self.key = key
        self.expected = expected


class MissingAttribute(StepError):
    """A typed session accessor was asked for a key that is absent."""

    fatal = True

    def __init__(self, key: str) -> None:
        super().__init__(f"Session has no attribute {key!r}")
        self.key = key


class UserCancelled(LoadWeaveError):
    """Raised at a step boundary once the run controller has cancelled the run.

    Never recorded as a step failure; the step that did not run is recorded
    as cancelled instead.
    """


class BoundReached(LoadWeaveError):
    """Raised at a step boundary once a scenario's ``During`` bound has elapsed."""
