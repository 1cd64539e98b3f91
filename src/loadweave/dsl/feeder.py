"""Feeders supplying per-iteration input records to virtual users."""

from __future__ import annotations

import csv
import random
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from loadweave._internal.errors import ConfigError, FeederExhausted
from loadweave._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from loadweave._internal.types import Record

logger = get_logger("dsl.feeder")


class Feeder(ABC):
    """Abstract source of records, shared by every virtual user of a run.

    Implementations must be safe to call concurrently: each ``next()`` call
    returns one complete, immutable record.

    Args:
        records: The backing record set. Copied and frozen at construction.
        name: Label used in logs and step outcomes.

    Raises:
        FeederExhausted: If *records* is empty.
    """

    strategy: str = ""

    def __init__(self, records: Iterable[Mapping[str, Any]], name: str = "feeder") -> None:
        frozen = tuple(MappingProxyType(dict(record)) for record in records)
        if not frozen:
            msg = f"Feeder {name!r} has no records"
            raise FeederExhausted(msg)
        self._records: tuple[Record, ...] = frozen
        self.name = name

    @property
    def records(self) -> tuple[Record, ...]:
        """Return the backing records in their original order."""
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, records={len(self._records)})"

    @abstractmethod
    def next(self, rng: random.Random | None = None) -> Record:
        """Return the next record.

        Args:
            rng: The calling virtual user's private generator. Strategies that
                need randomness use it so users never contend on a shared one.

        Returns:
            An immutable mapping of field name to value.
        """


class RandomFeeder(Feeder):
    """Uniformly sample one record per call, with replacement."""

    strategy = "random"

    def __init__(
        self,
        records: Iterable[Mapping[str, Any]],
        name: str = "feeder",
        *,
        seed: int | None = None,
    ) -> None:
        super().__init__(records, name)
        self._rng = random.Random(seed)  # noqa: S311
        self._lock = threading.Lock()

    def next(self, rng: random.Random | None = None) -> Record:
        if rng is not None:
            return self._records[rng.randrange(len(self._records))]
        with self._lock:
            index = self._rng.randrange(len(self._records))
        return self._records[index]


class CircularFeeder(Feeder):
    """Return records in a fixed round-robin order, wrapping after the last.

    The cursor is shared by every caller and advanced under a lock, so
    concurrent calls never receive the same index unless the record set has
    a single entry.
    """

    strategy = "circular"

    def __init__(self, records: Iterable[Mapping[str, Any]], name: str = "feeder") -> None:
        super().__init__(records, name)
        self._cursor = 0
        self._lock = threading.Lock()

    def next(self, rng: random.Random | None = None) -> Record:  # noqa: ARG002
        with self._lock:
            index = self._cursor
            self._cursor = (index + 1) % len(self._records)
        return self._records[index]


_STRATEGIES: dict[str, type[Feeder]] = {
    RandomFeeder.strategy: RandomFeeder,
    CircularFeeder.strategy: CircularFeeder,
}


def csv_records(path: str | Path) -> list[dict[str, str]]:
    """Load every row of a header-row CSV file as a record.

    Args:
        path: Path to the CSV file.

    Returns:
        List of records keyed by the header row.

    Raises:
        ConfigError: If the file does not exist.
    """
    csv_path = Path(path)
    if not csv_path.is_file():
        msg = f"Feeder file not found: {csv_path}"
        raise ConfigError(msg)
    with csv_path.open(newline="", encoding="utf-8") as fh:
        rows = [dict(row) for row in csv.DictReader(fh)]
    logger.debug("Loaded %d records from %s", len(rows), csv_path)
    return rows


def csv_feeder(path: str | Path, strategy: str = "random") -> Feeder:
    """Build a feeder over the rows of a CSV file.

    Args:
        path: Path to the CSV file.
        strategy: ``"random"`` or ``"circular"``.

    Returns:
        A feeder named after the file stem.

    Raises:
        ConfigError: If the file is missing or the strategy is unknown.
        FeederExhausted: If the file has no data rows.
    """
    feeder_cls = _STRATEGIES.get(strategy)
    if feeder_cls is None:
        msg = f"Unknown feeder strategy: {strategy!r}. Choose from: {', '.join(_STRATEGIES)}"
        raise ConfigError(msg)
    return feeder_cls(csv_records(path), name=Path(path).stem)
