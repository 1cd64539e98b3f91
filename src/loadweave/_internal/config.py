"""Run configuration loading for LoadWeave."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loadweave._internal.errors import ConfigError

if TYPE_CHECKING:
    from loadweave._internal.types import Headers


@dataclass(frozen=True)
class RunConfig:
    """Run parameters consumed by simulations and the run controller.

    Attributes:
        users: Total virtual users to inject.
        ramp_duration: Seconds over which injection ramps linearly to ``users``.
        test_duration: Wall-clock bound for scenarios declared with ``During``.
        base_url: Target base URL prepended to every request path.
        default_headers: Headers applied to every request.
        request_timeout: HTTP request timeout in seconds.
        connection_pool_size: Maximum open connections for the HTTP transport.
        seed: Optional seed making per-user randomness reproducible.
    """

    users: int = 5
    ramp_duration: float = 10.0
    test_duration: float = 60.0
    base_url: str = ""
    default_headers: Headers = field(default_factory=dict)
    request_timeout: float = 30.0
    connection_pool_size: int = 100
    seed: int | None = None


def _read_int(name: str, default: str, minimum: int) -> int:
    raw = os.environ.get(name, default)
    try:
        value = int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got: {raw!r}"
        raise ConfigError(msg) from None
    if value < minimum:
        msg = f"{name} must be >= {minimum}, got: {value}"
        raise ConfigError(msg)
    return value


def _read_positive_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        value = float(raw)
    except ValueError:
        msg = f"{name} must be a number, got: {raw!r}"
        raise ConfigError(msg) from None
    if value <= 0:
        msg = f"{name} must be positive, got: {value}"
        raise ConfigError(msg)
    return value


def load_config() -> RunConfig:
    """Load run configuration from environment variables with defaults.

    Environment variables:
        USERS: Total injected virtual users (default: 5).
        RAMP_DURATION: Ramp duration in seconds (default: 10).
        TEST_DURATION: Scenario ``During`` bound in seconds (default: 60).
        LOADWEAVE_BASE_URL: Target base URL.
        LOADWEAVE_TIMEOUT: Request timeout in seconds (default: 30.0).
        LOADWEAVE_POOL_SIZE: Connection pool size (default: 100).
        LOADWEAVE_SEED: Integer seed for per-user randomness.

    Returns:
        Populated RunConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    seed_str = os.environ.get("LOADWEAVE_SEED")
    seed: int | None = None
    if seed_str:
        try:
            seed = int(seed_str)
        except ValueError:
            msg = f"LOADWEAVE_SEED must be an integer, got: {seed_str!r}"
            raise ConfigError(msg) from None

    return RunConfig(
        users=_read_int("USERS", "5", minimum=1),
        ramp_duration=_read_positive_float("RAMP_DURATION", "10"),
        test_duration=_read_positive_float("TEST_DURATION", "60"),
        base_url=os.environ.get("LOADWEAVE_BASE_URL", ""),
        request_timeout=_read_positive_float("LOADWEAVE_TIMEOUT", "30.0"),
        connection_pool_size=_read_int("LOADWEAVE_POOL_SIZE", "100", minimum=1),
        seed=seed,
    )
