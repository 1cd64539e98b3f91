"""Tests for simulation file loading."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from loadweave._internal.errors import ScenarioError
from loadweave.dsl.loader import load_simulation
from loadweave.dsl.scenario import Simulation

if TYPE_CHECKING:
    from pathlib import Path

_SIMULATION = """
from loadweave import AtOnceUsers, ScenarioSpec, Simulation, call, chain

simulation = Simulation(
    name="loaded",
    scenarios=[ScenarioSpec("s", chain(call("Home", "GET", "/")))],
    profile=AtOnceUsers(1),
)
"""


class TestLoadSimulation:
    """Importing simulation files."""

    def test_loads_first_simulation(self, tmp_path: Path) -> None:
        path = tmp_path / "sim.py"
        path.write_text(_SIMULATION)
        simulation = load_simulation(path)
        assert isinstance(simulation, Simulation)
        assert simulation.name == "loaded"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ScenarioError, match="not found"):
            load_simulation(tmp_path / "missing.py")

    def test_not_python(self, tmp_path: Path) -> None:
        path = tmp_path / "sim.txt"
        path.write_text(_SIMULATION)
        with pytest.raises(ScenarioError, match=r"\.py file"):
            load_simulation(path)

    def test_import_error_wrapped(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.py"
        path.write_text("raise RuntimeError('boom')\n")
        with pytest.raises(ScenarioError, match="boom"):
            load_simulation(path)

    def test_no_simulation(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.py"
        path.write_text("x = 1\n")
        with pytest.raises(ScenarioError, match="No Simulation"):
            load_simulation(path)
