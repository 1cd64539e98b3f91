"""LoadWeave — declarative HTTP load simulations as Python code."""

from __future__ import annotations

from loadweave._internal.config import RunConfig, load_config
from loadweave.dsl.checks import body, header, path_extract, status
from loadweave.dsl.feeder import CircularFeeder, RandomFeeder, csv_feeder
from loadweave.dsl.http import AiohttpTransport, RequestSpec, Response
from loadweave.dsl.scenario import During, Iterations, Once, ScenarioSpec, Simulation
from loadweave.dsl.session import Session
from loadweave.dsl.steps import (
    Chain,
    call,
    chain,
    do_if,
    feed,
    pause,
    random_switch,
    repeat,
    transform,
)
from loadweave.dsl.template import file_body
from loadweave.engine.controller import RunController
from loadweave.engine.runner import run_simulation
from loadweave.engine.throttle import ThrottleSchedule, hold_for, jump_to_rps, reach_rps
from loadweave.injection import (
    AtOnceUsers,
    CompositeProfile,
    ConstantUsersPerSec,
    InjectionProfile,
    NothingFor,
    RampUsers,
    RampUsersPerSec,
)

__version__ = "0.1.0"

__all__ = [
    "AiohttpTransport",
    "AtOnceUsers",
    "Chain",
    "CircularFeeder",
    "CompositeProfile",
    "ConstantUsersPerSec",
    "During",
    "InjectionProfile",
    "Iterations",
    "NothingFor",
    "Once",
    "RampUsers",
    "RampUsersPerSec",
    "RandomFeeder",
    "RequestSpec",
    "Response",
    "RunConfig",
    "RunController",
    "ScenarioSpec",
    "Session",
    "Simulation",
    "ThrottleSchedule",
    "body",
    "call",
    "chain",
    "csv_feeder",
    "do_if",
    "feed",
    "file_body",
    "header",
    "hold_for",
    "jump_to_rps",
    "load_config",
    "path_extract",
    "pause",
    "random_switch",
    "reach_rps",
    "repeat",
    "run_simulation",
    "status",
    "transform",
]
