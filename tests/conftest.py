import asyncio
import datetime
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

import pytest

from idbbrowser.models.values import BlobValue
from idbbrowser.storage.memory_engine import MemoryEngine
from idbbrowser.utils.clock_utils import ManualClock

T = TypeVar("T")

ORIGIN = "https://example.com"


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


class RecordingObserver:
    """Collects the change notifications of a row store."""

    def __init__(self) -> None:
        self.events: list[tuple[str, int, int]] = []

    def row_count_changed(self, index: int, delta: int) -> None:
        self.events.append(("count", index, delta))

    def invalidate_range(self, start: int, end: int) -> None:
        self.events.append(("invalidate", start, end))

    def of_kind(self, kind: str) -> list[tuple[int, int]]:
        return [(a, b) for k, a, b in self.events if k == kind]


def populate_library(engine: MemoryEngine) -> None:
    """A database with an in-line keyed store, an out-of-line store and indexes."""
    database = engine.create_database(ORIGIN, "library", version=3)

    books = database.create_object_store("books", key_path="isbn")
    books.create_index("by_author", "author")
    books.create_index("by_title", "title", unique=True)
    books.create_index("by_tag", "tags", multi_entry=True)
    books.put({"isbn": 3, "title": "Gamma", "author": "Carol", "tags": ["c", "a"]})
    books.put({"isbn": 1, "title": "Alpha", "author": "Bob", "tags": ["a"]})
    books.put({"isbn": 2, "title": "Beta", "author": "Alice", "tags": []})

    notes = database.create_object_store("notes", auto_increment=True)
    notes.put("first note")
    notes.put({"text": "second", "created": datetime.datetime(2020, 1, 2, 3, 4, 5)})
    notes.put(BlobValue(size=2048, type="image/png"))

    engine.create_database(ORIGIN, "empty", version=1)


@pytest.fixture
def engine() -> MemoryEngine:
    engine = MemoryEngine()
    populate_library(engine)
    return engine


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def numbers_engine() -> Callable[[int], MemoryEngine]:
    """Factory for an engine holding one store with n numbered records."""

    def make(count: int) -> MemoryEngine:
        engine = MemoryEngine()
        database = engine.create_database(ORIGIN, "numbers")
        store = database.create_object_store("items", key_path="id")
        for i in range(count):
            store.put({"id": i, "label": f"item {i}"})
        return engine

    return make
