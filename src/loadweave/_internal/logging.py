"""Structured logging setup for LoadWeave."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

# LogRecord attributes copied into JSON output when a virtual user logs.
_USER_FIELDS = ("user_id", "scenario")


class _JsonFormatter(logging.Formatter):
    """Structured JSON log formatter.

    Emits one-line JSON objects with keys: timestamp, level, logger, message,
    plus ``user_id`` and ``scenario`` for records logged through a
    :class:`UserLogger`.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A single-line JSON string.
        """
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _USER_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


class UserLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that tags every record with a virtual user's identity.

    The text formatter prefixes messages with ``[user N/scenario]``; the JSON
    formatter emits the identity as separate keys.
    """

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        extra = dict(self.extra or {})
        kwargs["extra"] = {**extra, **kwargs.get("extra", {})}
        return f"[user {extra.get('user_id')}/{extra.get('scenario')}] {msg}", kwargs


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the root LoadWeave logger.

    Sets up a stderr handler on the ``loadweave`` logger namespace. Calling
    it again only updates the level of the existing handlers.

    Args:
        level: Logging level (e.g., ``logging.DEBUG``). Defaults to INFO.
        json_format: If True, emit structured JSON logs. If False, emit
            human-readable logs.

    Returns:
        The configured ``loadweave`` root logger.
    """
    logger = logging.getLogger("loadweave")
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Avoid duplicate output through the root logger
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``loadweave`` namespace.

    Args:
        name: Logger name, appended to ``loadweave.`` prefix.
            Example: ``get_logger("engine.user")`` returns
            ``logging.getLogger("loadweave.engine.user")``.

    Returns:
        A configured child logger.
    """
    return logging.getLogger(f"loadweave.{name}")


def get_user_logger(name: str, user_id: int, scenario: str) -> UserLogger:
    """Return a :class:`UserLogger` bound to one virtual user.

    Args:
        name: Logger name under the ``loadweave`` namespace.
        user_id: Identifier of the virtual user.
        scenario: Name of the scenario the user runs.

    Returns:
        An adapter that tags records with the user's identity.
    """
    return UserLogger(get_logger(name), {"user_id": user_id, "scenario": scenario})
