"""Response checks, value extraction and session correlation.

A :class:`Check` reads one value out of a response (status, a header, or a
body expression handed to the pluggable extractor), optionally converts it,
tests it against an expectation and optionally saves it into the session.
Saving is the only way a value travels from one step to a later one.

Example::

    call(
        "Authenticate User",
        "POST",
        "/api/authenticate",
        body={"username": "admin", "password": "admin"},
        checks=[status().is_(200), body("token").save_as("jwt")],
    )
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Protocol

from loadweave._internal.errors import CheckFailure, ExtractionError
from loadweave.dsl.template import interpolate

if TYPE_CHECKING:
    from loadweave.dsl.http import Response
    from loadweave.dsl.session import Session


class Extractor(Protocol):
    """Extraction collaborator: evaluate *expression* against a parsed body.

    Raises :class:`ExtractionError` when the expression selects nothing.
    """

    def __call__(self, body: Any, expression: str) -> Any: ...


_PATH_TOKEN = re.compile(r"\[(\d+|\*)\]|\.?([^.\[\]]+)")


def path_extract(body: Any, expression: str) -> Any:
    """Default extractor: dotted paths with list indexing and projection.

    Supports ``@`` or ``$`` (the whole body), ``a.b``, ``$.a.b``,
    ``items[0].id`` and ``[*].id`` (collect ``id`` from every element of a
    list).

    Args:
        body: Parsed JSON body (or raw text for non-JSON responses).
        expression: Path expression.

    Returns:
        The selected value.

    Raises:
        ExtractionError: If any segment of the path does not exist.
    """
    expression = expression.strip().removeprefix("$")
    if expression in ("", "@"):
        return body

    values = [body]
    projected = False
    for token in _PATH_TOKEN.finditer(expression):
        index, name = token.groups()
        if index == "*":
            if not all(isinstance(v, list) for v in values):
                msg = f"{expression!r}: projection over a non-list"
                raise ExtractionError(msg)
            values = [item for v in values for item in v]
            projected = True
            continue
        selected = []
        for value in values:
            if index is not None and isinstance(value, list) and int(index) < len(value):
                selected.append(value[int(index)])
            elif name is not None and isinstance(value, Mapping) and name in value:
                selected.append(value[name])
            elif not projected:
                msg = f"{expression!r}: no value at {token.group(0)!r}"
                raise ExtractionError(msg)
        values = selected
    return values if projected else values[0]


# -- sources -----------------------------------------------------------------


@dataclass(frozen=True)
class _Source:
    kind: str
    expression: str = ""

    def describe(self) -> str:
        if self.kind == "status":
            return "status"
        return f"{self.kind}({self.expression!r})"

    def read(self, response: Response, extractor: Extractor) -> Any:
        if self.kind == "status":
            return response.status
        if self.kind == "header":
            value = response.header(self.expression)
            if value is None:
                msg = f"header {self.expression!r} not found"
                raise ExtractionError(msg)
            return value
        try:
            parsed: Any = response.json()
        except ValueError:
            parsed = response.text
        return extractor(parsed, self.expression)


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError(value)
    return int(value)


def _as_list(value: Any) -> list[Any]:
    if not isinstance(value, list | tuple):
        raise TypeError(value)
    return list(value)


def _as_map(value: Any) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(value)
    return dict(value)


_CONVERSIONS: dict[str, Callable[[Any], Any]] = {
    "int": _as_int,
    "list": _as_list,
    "map": _as_map,
}

# Expectation: (kind, operand)
_Expectation = tuple[str, Any]


@dataclass(frozen=True)
class Check:
    """One validation rule applied to a response.

    Built fluently: ``body("id").as_int().is_template("#{productId}")``.
    Each builder method returns a new, immutable check.
    """

    source: _Source
    conversion: str | None = None
    expectation: _Expectation | None = None
    save_key: str | None = None

    # -- builders ----------------------------------------------------------

    def as_int(self) -> Check:
        return replace(self, conversion="int")

    def as_list(self) -> Check:
        return replace(self, conversion="list")

    def as_map(self) -> Check:
        return replace(self, conversion="map")

    def is_(self, expected: Any) -> Check:
        """Expect the value to equal *expected*."""
        return replace(self, expectation=("is", expected))

    def is_template(self, template: str) -> Check:
        """Expect ``str(value)`` to equal *template* rendered against the session."""
        return replace(self, expectation=("is_template", template))

    def in_(self, *allowed: Any) -> Check:
        return replace(self, expectation=("in", tuple(allowed)))

    def exists(self) -> Check:
        return replace(self, expectation=("exists", None))

    def not_exists(self) -> Check:
        """Expect the extractor to find nothing."""
        return replace(self, expectation=("not_exists", None))

    def satisfies(self, predicate: Callable[[Any], bool], label: str = "predicate") -> Check:
        return replace(self, expectation=("satisfies", (predicate, label)))

    def matches(self, predicate: Callable[[Any, Session], bool], label: str = "predicate") -> Check:
        """Expect *predicate(value, session)* to hold, for checks that depend on session values."""
        return replace(self, expectation=("matches", (predicate, label)))

    def save_as(self, key: str) -> Check:
        """Save the extracted value into the session under *key* on success."""
        return replace(self, save_key=key)

    # -- evaluation --------------------------------------------------------

    @property
    def is_status_check(self) -> bool:
        return self.source.kind == "status"

    def describe(self) -> str:
        parts = [self.source.describe()]
        if self.conversion:
            parts.append(f"as_{self.conversion}")
        if self.expectation is not None:
            kind, operand = self.expectation
            if kind in ("satisfies", "matches"):
                operand = operand[1]
            parts.append(f"{kind}({operand!r})" if operand is not None else kind)
        if self.save_key:
            parts.append(f"save_as({self.save_key!r})")
        return ".".join(parts)

    def evaluate(self, response: Response, session: Session, extractor: Extractor) -> Any:
        """Extract, convert and validate the checked value.

        Args:
            response: The response under test.
            session: Session used to render template expectations.
            extractor: Extraction collaborator for body expressions.

        Returns:
            The extracted (and converted) value, or None for ``not_exists``.

        Raises:
            CheckFailure: If the value does not meet the expectation.
            ExtractionError: If the value could not be extracted.
        """
        kind, operand = self.expectation or ("exists", None)

        try:
            value = self.source.read(response, extractor)
        except ExtractionError:
            if kind == "not_exists":
                return None
            raise

        if self.conversion is not None:
            try:
                value = _CONVERSIONS[self.conversion](value)
            except (TypeError, ValueError):
                msg = f"cannot convert {value!r} to {self.conversion}"
                raise CheckFailure(self.describe(), msg) from None

        if kind == "not_exists":
            raise CheckFailure(self.describe(), f"found {value!r}")
        if kind == "is" and value != operand:
            raise CheckFailure(self.describe(), f"expected {operand!r}, got {value!r}")
        if kind == "is_template":
            expected = interpolate(operand, session)
            if str(value) != expected:
                raise CheckFailure(self.describe(), f"expected {expected!r}, got {value!r}")
        if kind == "in" and value not in operand:
            raise CheckFailure(self.describe(), f"{value!r} not in {list(operand)!r}")
        if kind == "satisfies":
            predicate, label = operand
            if not predicate(value):
                raise CheckFailure(self.describe(), f"{value!r} does not satisfy {label}")
        if kind == "matches":
            predicate, label = operand
            if not predicate(value, session):
                raise CheckFailure(self.describe(), f"{value!r} does not match {label}")
        return value

    def apply(self, response: Response, session: Session, extractor: Extractor) -> Session:
        """Evaluate the check and save its value when requested.

        Returns:
            The session, updated with ``save_as`` when declared.
        """
        value = self.evaluate(response, session, extractor)
        if self.save_key is not None:
            return session.set(self.save_key, value)
        return session


def status() -> Check:
    """Check on the response status code."""
    return Check(_Source("status"))


def header(name: str) -> Check:
    """Check on a response header (case-insensitive name)."""
    return Check(_Source("header", name))


def body(expression: str) -> Check:
    """Check on a value selected from the body by the run's extractor."""
    return Check(_Source("body", expression))


# Applied when a call declares no status check of its own.
DEFAULT_STATUS_CHECK = status().satisfies(lambda code: 200 <= code < 400, "2xx/3xx")


def run_checks(
    checks: Sequence[Check],
    response: Response,
    session: Session,
    extractor: Extractor,
) -> Session:
    """Apply *checks* in declaration order, stopping at the first failure.

    A default 2xx/3xx status check runs first when none of *checks* looks at
    the status code.

    Returns:
        The session with every ``save_as`` value written.

    Raises:
        CheckFailure: From the first failing check.
        ExtractionError: If a check could not extract its value.
    """
    if not any(check.is_status_check for check in checks):
        checks = [DEFAULT_STATUS_CHECK, *checks]
    for check in checks:
        session = check.apply(response, session, extractor)
    return session
