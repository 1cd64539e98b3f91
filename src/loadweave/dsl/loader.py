"""Dynamic simulation file loading via importlib."""

from __future__ import annotations

import importlib.util
import sys
from pathlib import Path

from loadweave._internal.errors import ScenarioError
from loadweave.dsl.scenario import Simulation


def load_simulation(file_path: str | Path) -> Simulation:
    """Load a simulation from a Python file.

    Imports the file with ``importlib`` and scans the module globals for
    :class:`Simulation` instances. Simulation files typically read their run
    parameters with :func:`loadweave.load_config` at import time.

    Args:
        file_path: Path to the Python simulation file.

    Returns:
        The first ``Simulation`` found in the module.

    Raises:
        ScenarioError: If the file does not exist, cannot be imported, or
            defines no ``Simulation``.
    """
    path = Path(file_path)

    if not path.exists():
        msg = f"Simulation file not found: {path}"
        raise ScenarioError(msg)

    if path.suffix != ".py":
        msg = f"Simulation file must be a .py file, got: {path}"
        raise ScenarioError(msg)

    module_name = f"loadweave_simulation_{path.stem}"

    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        msg = f"Could not create module spec for: {path}"
        raise ScenarioError(msg)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module

    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        msg = f"Failed to import simulation file {path}: {exc}"
        raise ScenarioError(msg) from exc

    simulations = [obj for obj in vars(module).values() if isinstance(obj, Simulation)]

    if not simulations:
        sys.modules.pop(module_name, None)
        msg = f"No Simulation found in {path}. Define one at module level."
        raise ScenarioError(msg)

    return simulations[0]
