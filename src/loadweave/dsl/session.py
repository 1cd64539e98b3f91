"""Per-virtual-user session state."""

from __future__ import annotations

import random
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from loadweave._internal.errors import MissingAttribute, TypeMismatch

# Marker set on every fresh session so authentication runs at most once.
AUTHENTICATED = "authenticated"


class Session:
    """Immutable key/value state owned by exactly one virtual user.

    Every mutation returns a new ``Session`` sharing the same identity and
    random generator; the receiver is left untouched. Chains thread the
    returned session forward, so a user only ever observes its own lineage
    and no two users can reach the same instance.

    Attributes:
        user_id: Identifier of the owning virtual user.
        scenario: Name of the scenario the user is running.
        random: The user's private random generator, used for pauses,
            random switches, random feeders and ``Transform`` functions.
    """

    __slots__ = ("_attributes", "random", "scenario", "user_id")

    def __init__(
        self,
        user_id: int,
        scenario: str,
        rng: random.Random | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> None:
        self.user_id = user_id
        self.scenario = scenario
        self.random = rng if rng is not None else random.Random()  # noqa: S311
        self._attributes: Mapping[str, Any] = MappingProxyType(dict(attributes or {}))

    @classmethod
    def initial(
        cls,
        user_id: int,
        scenario: str,
        rng: random.Random | None = None,
    ) -> Session:
        """Create the session a virtual user starts with.

        Args:
            user_id: Identifier of the owning virtual user.
            scenario: Name of the scenario the user runs.
            rng: The user's private random generator.

        Returns:
            A session holding only ``authenticated = False``.
        """
        return cls(user_id, scenario, rng, {AUTHENTICATED: False})

    @property
    def attributes(self) -> Mapping[str, Any]:
        """Return a read-only view of all attributes."""
        return self._attributes

    def __contains__(self, key: object) -> bool:
        return key in self._attributes

    def __repr__(self) -> str:
        return f"Session(user_id={self.user_id}, scenario={self.scenario!r}, attributes={dict(self._attributes)!r})"

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under *key*, or *default* when absent."""
        return self._attributes.get(key, default)

    def set(self, key: str, value: Any) -> Session:
        """Return a new session with *key* set to *value*."""
        return self._derive({**self._attributes, key: value})

    def set_all(self, values: Mapping[str, Any]) -> Session:
        """Return a new session with every entry of *values* merged in.

        Existing keys with the same name are overwritten.
        """
        return self._derive({**self._attributes, **values})

    def remove(self, key: str) -> Session:
        """Return a new session without *key* (no-op when absent)."""
        if key not in self._attributes:
            return self
        attributes = dict(self._attributes)
        del attributes[key]
        return self._derive(attributes)

    # -- typed accessors ---------------------------------------------------

    def get_str(self, key: str) -> str:
        value = self._require(key)
        if not isinstance(value, str):
            raise TypeMismatch(key, "string", value)
        return value

    def get_int(self, key: str) -> int:
        """Return *key* as an int.

        Numeric strings are accepted because feeder records loaded from CSV
        carry every field as text. Booleans are rejected.

        Raises:
            MissingAttribute: If *key* is absent.
            TypeMismatch: If the value is not an int or numeric string.
        """
        value = self._require(key)
        if isinstance(value, bool):
            raise TypeMismatch(key, "int", value)
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                raise TypeMismatch(key, "int", value) from None
        raise TypeMismatch(key, "int", value)

    def get_float(self, key: str) -> float:
        value = self._require(key)
        if isinstance(value, bool):
            raise TypeMismatch(key, "number", value)
        if isinstance(value, int | float):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                raise TypeMismatch(key, "number", value) from None
        raise TypeMismatch(key, "number", value)

    def get_bool(self, key: str) -> bool:
        value = self._require(key)
        if not isinstance(value, bool):
            raise TypeMismatch(key, "boolean", value)
        return value

    def get_list(self, key: str) -> list[Any]:
        value = self._require(key)
        if not isinstance(value, list | tuple):
            raise TypeMismatch(key, "list", value)
        return list(value)

    def get_map(self, key: str) -> dict[str, Any]:
        value = self._require(key)
        if not isinstance(value, Mapping):
            raise TypeMismatch(key, "map", value)
        return dict(value)

    def _require(self, key: str) -> Any:
        if key not in self._attributes:
            raise MissingAttribute(key)
        return self._attributes[key]

    def _derive(self, attributes: Mapping[str, Any]) -> Session:
        return Session(self.user_id, self.scenario, self.random, attributes)
