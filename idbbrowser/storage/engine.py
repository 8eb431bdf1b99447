"""
Interface of the database engine the browser reads from.

The browser never implements storage itself. Any engine that provides these
protocols (connections, read-only transactions, object stores, indexes and
forward cursors) can be browsed. Every engine failure is reported as an
EngineError carrying the name of the failed condition.
"""

from collections.abc import Sequence
from typing import Protocol

from idbbrowser.models.metadata import KeyPath
from idbbrowser.models.values import Key, StructuredValue

READONLY = "readonly"


class EngineError(Exception):
    """A named failure reported by the database engine."""

    def __init__(self, name: str, message: str = ""):
        self.name = name
        self.message = message or name
        super().__init__(f"{name}: {self.message}")


class Cursor(Protocol):
    """A forward cursor positioned on one record."""

    @property
    def key(self) -> Key: ...

    @property
    def primary_key(self) -> Key: ...

    @property
    def value(self) -> StructuredValue: ...

    async def continue_(self) -> bool:
        """Move to the next record, returning False once the cursor is exhausted."""
        ...


class RecordSource(Protocol):
    """Anything that can be counted and walked with a cursor."""

    @property
    def name(self) -> str: ...

    @property
    def key_path(self) -> KeyPath: ...

    async def count(self) -> int: ...

    async def open_cursor(self) -> Cursor | None:
        """Open a cursor on the first record, or return None when empty."""
        ...


class IndexSource(RecordSource, Protocol):
    """A secondary index over an object store."""

    @property
    def unique(self) -> bool: ...

    @property
    def multi_entry(self) -> bool: ...


class ObjectStoreSource(RecordSource, Protocol):
    """An object store as seen inside a transaction."""

    @property
    def auto_increment(self) -> bool: ...

    @property
    def index_names(self) -> Sequence[str]: ...

    def index(self, name: str) -> IndexSource: ...


class Transaction(Protocol):
    """A transaction spanning one or more object stores."""

    @property
    def object_store_names(self) -> Sequence[str]: ...

    def object_store(self, name: str) -> ObjectStoreSource: ...


class Connection(Protocol):
    """An open database."""

    @property
    def name(self) -> str: ...

    @property
    def version(self) -> int: ...

    @property
    def object_store_names(self) -> Sequence[str]: ...

    def transaction(self, names: Sequence[str], mode: str = READONLY) -> Transaction: ...

    def close(self) -> None: ...


class DatabaseEngine(Protocol):
    """Opens databases by origin and name."""

    async def open(self, origin: str, name: str, version: int | None = None) -> Connection: ...
