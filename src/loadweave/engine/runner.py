"""Blocking entry point that runs a simulation on a fresh event loop."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Any

from loadweave._internal.logging import get_logger, setup_logging
from loadweave.engine.controller import RunController

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from loadweave.dsl.http import Transport
    from loadweave.dsl.scenario import Simulation
    from loadweave.metrics.models import IntervalSnapshot, RunResult

logger = get_logger("engine.runner")


def _event_loop_runner() -> Callable[[Coroutine[Any, Any, RunResult]], RunResult]:
    """Return ``uvloop.run`` when available, else ``asyncio.run``.

    Falls back to the default asyncio event loop on Windows or if uvloop
    is not installed.
    """
    if sys.platform == "win32":
        return asyncio.run

    try:
        import uvloop
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")
        return asyncio.run

    logger.debug("Running on uvloop")
    return uvloop.run


def run_simulation(
    simulation: Simulation,
    *,
    transport: Transport | None = None,
    tick_interval: float = 1.0,
    request_timeout: float = 30.0,
    pool_size: int = 100,
    on_snapshot: Callable[[IntervalSnapshot], None] | None = None,
    log_level: int = logging.INFO,
    json_logs: bool = False,
) -> RunResult:
    """Run *simulation* to completion and return its result.

    This is a blocking call that runs until every virtual user has ended,
    ``max_duration`` elapses, or SIGINT/SIGTERM is received.

    Args:
        simulation: The simulation to run.
        transport: HTTP collaborator; defaults to an AiohttpTransport.
        tick_interval: Seconds between metric snapshots.
        request_timeout: Request timeout of the default transport.
        pool_size: Connection limit of the default transport.
        on_snapshot: Optional callback invoked with each IntervalSnapshot.
        log_level: Logging level.
        json_logs: Emit structured JSON logs.

    Returns:
        The completed RunResult.

    Raises:
        EngineError: If the run fails.
    """
    setup_logging(level=log_level, json_format=json_logs)

    async def _run() -> RunResult:
        controller = RunController(
            simulation,
            transport,
            tick_interval=tick_interval,
            request_timeout=request_timeout,
            pool_size=pool_size,
            on_snapshot=on_snapshot,
        )
        return await controller.run()

    return _event_loop_runner()(_run())
