"""Tests for the immutable per-user session."""

from __future__ import annotations

import random

import pytest

from loadweave._internal.errors import MissingAttribute, TypeMismatch
from loadweave.dsl.session import AUTHENTICATED, Session


def _session(**attributes: object) -> Session:
    return Session(1, "test", random.Random(0), attributes)


class TestSessionBasics:
    """Get, set and copy-on-write behaviour."""

    def test_initial_session_is_unauthenticated(self) -> None:
        session = Session.initial(3, "scn")
        assert session.get(AUTHENTICATED) is False
        assert session.user_id == 3
        assert session.scenario == "scn"

    def test_set_returns_new_session(self) -> None:
        original = _session()
        updated = original.set("x", 1)
        assert "x" not in original
        assert updated.get("x") == 1

    def test_derived_session_keeps_identity_and_rng(self) -> None:
        original = _session()
        updated = original.set("x", 1)
        assert updated.user_id == original.user_id
        assert updated.random is original.random

    def test_get_default(self) -> None:
        assert _session().get("missing", "fallback") == "fallback"

    def test_set_all_overwrites(self) -> None:
        session = _session(a=1, b=2).set_all({"b": 3, "c": 4})
        assert dict(session.attributes) == {"a": 1, "b": 3, "c": 4}

    def test_remove(self) -> None:
        session = _session(a=1)
        assert "a" not in session.remove("a")
        assert session.remove("missing") is session

    def test_attributes_are_read_only(self) -> None:
        with pytest.raises(TypeError):
            _session(a=1).attributes["a"] = 2  # type: ignore[index]

    def test_sibling_lineages_are_isolated(self) -> None:
        base = _session()
        left = base.set("x", "left")
        right = base.set("x", "right")
        assert left.get("x") == "left"
        assert right.get("x") == "right"


class TestTypedAccessors:
    """Typed accessors raise TypeMismatch on shape disagreement."""

    def test_get_int_accepts_numeric_strings(self) -> None:
        assert _session(n=" 7 ").get_int("n") == 7

    def test_get_int_rejects_bool(self) -> None:
        with pytest.raises(TypeMismatch, match="int"):
            _session(n=True).get_int("n")

    def test_get_int_rejects_text(self) -> None:
        with pytest.raises(TypeMismatch):
            _session(n="seven").get_int("n")

    def test_get_float(self) -> None:
        assert _session(p="24.99").get_float("p") == pytest.approx(24.99)

    def test_get_list_accepts_tuple(self) -> None:
        assert _session(ids=(1, 2)).get_list("ids") == [1, 2]

    def test_get_list_rejects_map(self) -> None:
        with pytest.raises(TypeMismatch, match="list"):
            _session(ids={"a": 1}).get_list("ids")

    def test_get_map(self) -> None:
        assert _session(product={"id": 1}).get_map("product") == {"id": 1}

    def test_get_bool_rejects_string(self) -> None:
        with pytest.raises(TypeMismatch):
            _session(flag="false").get_bool("flag")

    def test_get_str(self) -> None:
        assert _session(s="x").get_str("s") == "x"

    def test_missing_key(self) -> None:
        with pytest.raises(MissingAttribute, match="missing"):
            _session().get_int("missing")

    def test_type_errors_are_fatal(self) -> None:
        assert TypeMismatch.fatal is True
        assert MissingAttribute.fatal is True
