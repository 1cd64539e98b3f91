"""Injection profiles for LoadWeave.

An injection profile decides how many virtual users have been started after
a given amount of time.  All profiles implement :class:`InjectionProfile`
and can be chained with :class:`CompositeProfile`.
"""

from __future__ import annotations

from loadweave.injection.base import InjectionProfile
from loadweave.injection.composite import CompositeProfile
from loadweave.injection.constant import AtOnceUsers, ConstantUsersPerSec, NothingFor
from loadweave.injection.ramp import RampUsers, RampUsersPerSec

__all__ = [
    "AtOnceUsers",
    "CompositeProfile",
    "ConstantUsersPerSec",
    "InjectionProfile",
    "NothingFor",
    "RampUsers",
    "RampUsersPerSec",
]
