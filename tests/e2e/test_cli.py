"""End-to-end tests for the LoadWeave CLI."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from loadweave import __version__
from loadweave.cli.app import app

runner = CliRunner()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_simulation(tmp_path: Path, sync_demo_server: str) -> Path:
    """Create a temporary simulation file pointing at the demo store."""
    code = f'''\
from loadweave import AtOnceUsers, Iterations, ScenarioSpec, Simulation, body, call, chain, pause

browse = chain(
    call("List Categories", "GET", "/api/category", checks=[body("[1].name").is_("For Her")]),
    pause(0.01, 0.02),
    call("Get Product", "GET", "/api/product/17", checks=[body("id").as_int().is_(17)]),
)

simulation = Simulation(
    name="CLI Simulation",
    scenarios=[ScenarioSpec("browse", browse, bound=Iterations(2))],
    profile=AtOnceUsers(2),
    base_url="{sync_demo_server}",
)
'''
    path = tmp_path / "cli_simulation.py"
    path.write_text(code)
    return path


@pytest.fixture
def error_simulation(tmp_path: Path, sync_demo_server: str) -> Path:
    """Simulation whose only call always answers 500."""
    code = f'''\
from loadweave import AtOnceUsers, ScenarioSpec, Simulation, call, chain

simulation = Simulation(
    name="Error Simulation",
    scenarios=[ScenarioSpec("errors", chain(call("Error Endpoint", "GET", "/error?status=500")))],
    profile=AtOnceUsers(2),
    base_url="{sync_demo_server}",
)
'''
    path = tmp_path / "error_simulation.py"
    path.write_text(code)
    return path


# ---------------------------------------------------------------------------
# Tests: version and help
# ---------------------------------------------------------------------------


def test_version_flag():
    """--version prints version and exits 0."""
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_version_short_flag():
    """-V also prints version."""
    result = runner.invoke(app, ["-V"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_output():
    """--help shows usage information."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "loadweave" in result.output.lower()


def test_run_help():
    """loadweave run --help shows run options."""
    result = runner.invoke(app, ["run", "--help"])
    assert result.exit_code == 0
    assert "--users" in result.output
    assert "--ramp-duration" in result.output
    assert "--max-duration" in result.output


# ---------------------------------------------------------------------------
# Tests: loadweave run
# ---------------------------------------------------------------------------


@pytest.mark.slow
def test_run_basic(cli_simulation: Path):
    """loadweave run executes a simulation and exits 0."""
    result = runner.invoke(app, ["run", str(cli_simulation)])
    assert result.exit_code == 0, f"output: {result.output}"
    assert "Run completed" in result.output


@pytest.mark.slow
def test_run_with_ramp_override(cli_simulation: Path):
    """--users and --ramp-duration replace the file's injection profile."""
    result = runner.invoke(
        app,
        ["run", str(cli_simulation), "--users", "3", "--ramp-duration", "0.5", "--seed", "7"],
    )
    assert result.exit_code == 0, f"output: {result.output}"
    assert "Ramp: 3 users over 0.5s" in result.output


@pytest.mark.slow
def test_run_base_url_override(cli_simulation: Path):
    """--base-url pointing at a closed port makes every call fail but the run still ends."""
    result = runner.invoke(
        app,
        ["run", str(cli_simulation), "--base-url", "http://127.0.0.1:1", "--fail-on-error-rate", "0.5"],
    )
    assert result.exit_code == 1
    assert "FAIL" in result.output


def test_run_nonexistent_simulation(tmp_path: Path):
    """loadweave run with a nonexistent file exits non-zero."""
    result = runner.invoke(app, ["run", str(tmp_path / "does_not_exist.py")])
    assert result.exit_code != 0


def test_run_file_without_simulation(tmp_path: Path):
    """A file that defines no Simulation is reported and exits 1."""
    path = tmp_path / "empty.py"
    path.write_text("x = 1\n")
    result = runner.invoke(app, ["run", str(path)])
    assert result.exit_code == 1
    assert "No Simulation" in result.output


# ---------------------------------------------------------------------------
# Tests: --fail-on-error-rate
# ---------------------------------------------------------------------------


@pytest.mark.slow
def test_fail_on_error_rate_triggers(error_simulation: Path):
    """--fail-on-error-rate exits 1 when threshold exceeded."""
    result = runner.invoke(app, ["run", str(error_simulation), "--fail-on-error-rate", "0.01"])
    assert result.exit_code == 1


@pytest.mark.slow
def test_fail_on_error_rate_passes(cli_simulation: Path):
    """--fail-on-error-rate exits 0 when error rate is below threshold."""
    result = runner.invoke(app, ["run", str(cli_simulation), "--fail-on-error-rate", "0.01"])
    assert result.exit_code == 0, f"output: {result.output}"
