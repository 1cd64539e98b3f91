"""Shared type aliases for LoadWeave."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

# HTTP headers dictionary.
Headers = dict[str, str]

# One feeder record: field name -> value.
Record = Mapping[str, Any]
