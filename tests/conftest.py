"""Shared pytest fixtures."""

from __future__ import annotations

from typing import Callable, Iterator

import pytest

from datastore.readings_table import ReadingTable


@pytest.fixture
def table() -> ReadingTable:
    return ReadingTable(name="test")


@pytest.fixture
def fixed_clock() -> Callable[[], float]:
    return lambda: 1_700_000_000.0


@pytest.fixture
def sequential_ids() -> Callable[[], int]:
    counter: Iterator[int] = iter(range(1, 10_000))
    return lambda: next(counter)
