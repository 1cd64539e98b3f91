"""``#{key}`` placeholder interpolation against session values."""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loadweave._internal.errors import ConfigError, UnresolvedPlaceholder

if TYPE_CHECKING:
    from loadweave.dsl.session import Session

# #{key}, #{key.field}, #{key[0].field}
_PLACEHOLDER = re.compile(r"#\{\s*([\w\-]+(?:\.[\w\-]+|\[\d+\])*)\s*\}")
_PATH_PART = re.compile(r"\[(\d+)\]|\.?([\w\-]+)")

_MISSING = object()


def _lookup(path: str, session: Session, template: str) -> Any:
    parts = list(_PATH_PART.finditer(path))
    key = parts[0].group(2)
    value = session.get(key, _MISSING)
    if value is _MISSING:
        raise UnresolvedPlaceholder(key, template)

    for part in parts[1:]:
        index, name = part.groups()
        if index is not None and isinstance(value, list | tuple) and int(index) < len(value):
            value = value[int(index)]
        elif name is not None and isinstance(value, Mapping) and name in value:
            value = value[name]
        else:
            raise UnresolvedPlaceholder(path, template)
    return value


def interpolate(template: str, session: Session) -> str:
    """Substitute every ``#{...}`` placeholder with its session value.

    Args:
        template: Text containing zero or more placeholders.
        session: Session to resolve placeholders against.

    Returns:
        The rendered string. Values are inserted with ``str()``.

    Raises:
        UnresolvedPlaceholder: If a referenced key or path is absent.
    """
    if "#{" not in template:
        return template
    return _PLACEHOLDER.sub(lambda m: str(_lookup(m.group(1), session, template)), template)


def render(value: Any, session: Session) -> Any:
    """Recursively interpolate strings inside dicts and lists.

    A string made of exactly one placeholder renders to the raw session
    value, so JSON bodies keep numbers, booleans and nested structures.

    Args:
        value: A string, mapping, list or scalar body template.
        session: Session to resolve placeholders against.

    Returns:
        The rendered value.
    """
    if isinstance(value, str):
        whole = _PLACEHOLDER.fullmatch(value)
        if whole is not None:
            return _lookup(whole.group(1), session, value)
        return interpolate(value, session)
    if isinstance(value, Mapping):
        return {interpolate(str(k), session): render(v, session) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [render(item, session) for item in value]
    return value


def file_body(path: str | Path) -> str:
    """Read a body template file once, at configuration time.

    Args:
        path: Path to a text file containing ``#{...}`` placeholders.

    Returns:
        The raw template text.

    Raises:
        ConfigError: If the file does not exist.
    """
    body_path = Path(path)
    if not body_path.is_file():
        msg = f"Body template not found: {body_path}"
        raise ConfigError(msg)
    return body_path.read_text(encoding="utf-8")
