"""Tests for random and circular feeders."""

from __future__ import annotations

import random
import threading
from collections import Counter
from typing import TYPE_CHECKING

import pytest

from loadweave._internal.errors import ConfigError, FeederExhausted
from loadweave.dsl.feeder import CircularFeeder, RandomFeeder, csv_feeder, csv_records

if TYPE_CHECKING:
    from pathlib import Path

RECORDS = [{"index": i} for i in range(5)]


class TestFeederConstruction:
    """Tests shared by both strategies."""

    @pytest.mark.parametrize("feeder_cls", [RandomFeeder, CircularFeeder])
    def test_empty_records_raise(self, feeder_cls: type) -> None:
        with pytest.raises(FeederExhausted, match="no records"):
            feeder_cls([])

    def test_records_are_immutable(self) -> None:
        feeder = CircularFeeder([{"a": 1}])
        record = feeder.next()
        with pytest.raises(TypeError):
            record["a"] = 2  # type: ignore[index]

    def test_source_mutation_does_not_leak(self) -> None:
        source = [{"a": 1}]
        feeder = CircularFeeder(source)
        source[0]["a"] = 99
        assert feeder.next()["a"] == 1

    def test_len(self) -> None:
        assert len(RandomFeeder(RECORDS)) == 5


class TestCircularFeeder:
    """Circular order and cursor atomicity."""

    def test_sequence_wraps(self) -> None:
        feeder = CircularFeeder(RECORDS)
        indices = [feeder.next()["index"] for _ in range(12)]
        assert indices == [0, 1, 2, 3, 4, 0, 1, 2, 3, 4, 0, 1]

    def test_ignores_rng(self) -> None:
        feeder = CircularFeeder(RECORDS)
        assert [feeder.next(random.Random(1))["index"] for _ in range(3)] == [0, 1, 2]

    def test_concurrent_calls_hand_out_each_index_evenly(self) -> None:
        feeder = CircularFeeder(RECORDS)
        results: list[int] = []
        lock = threading.Lock()

        def _worker() -> None:
            local = [feeder.next()["index"] for _ in range(200)]
            with lock:
                results.extend(local)

        threads = [threading.Thread(target=_worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        counts = Counter(results)
        assert len(results) == 1600
        assert all(counts[i] == 320 for i in range(5))


class TestRandomFeeder:
    """Uniform sampling with replacement."""

    def test_distribution_is_roughly_uniform(self) -> None:
        feeder = RandomFeeder(RECORDS, seed=42)
        counts = Counter(feeder.next()["index"] for _ in range(10_000))
        for i in range(5):
            assert 1700 < counts[i] < 2300

    def test_uses_caller_generator(self) -> None:
        feeder = RandomFeeder(RECORDS)
        assert feeder.next(random.Random(7)) == feeder.next(random.Random(7))

    def test_seeded_feeder_is_reproducible(self) -> None:
        a = RandomFeeder(RECORDS, seed=3)
        b = RandomFeeder(RECORDS, seed=3)
        assert [a.next()["index"] for _ in range(20)] == [b.next()["index"] for _ in range(20)]


class TestCsvFeeder:
    """Loading feeders from CSV files."""

    def test_loads_rows_as_records(self, tmp_path: Path) -> None:
        path = tmp_path / "categories.csv"
        path.write_text("categoryId,categoryName\n1,For Him\n2,For Her\n")
        assert csv_records(path) == [
            {"categoryId": "1", "categoryName": "For Him"},
            {"categoryId": "2", "categoryName": "For Her"},
        ]

    def test_strategy_selects_class(self, tmp_path: Path) -> None:
        path = tmp_path / "products.csv"
        path.write_text("productId\n1\n2\n")
        feeder = csv_feeder(path, strategy="circular")
        assert isinstance(feeder, CircularFeeder)
        assert feeder.name == "products"

    def test_unknown_strategy(self, tmp_path: Path) -> None:
        path = tmp_path / "x.csv"
        path.write_text("a\n1\n")
        with pytest.raises(ConfigError, match="Unknown feeder strategy"):
            csv_feeder(path, strategy="queue")

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            csv_feeder(tmp_path / "missing.csv")

    def test_header_only_file_is_exhausted(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.csv"
        path.write_text("a,b\n")
        with pytest.raises(FeederExhausted):
            csv_feeder(path)
