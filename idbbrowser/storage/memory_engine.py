"""
In-memory database engine.

MemoryEngine implements the engine protocols without any storage backend. It
orders keys the way IndexedDB does (numbers < dates < strings < binary <
arrays), derives index entries from key paths, and can inject delays and named
failures at every asynchronous step, which is what the browser's race and
error tests rely on. It can also be populated from a JSON fixture so the HTTP
host has something to browse.
"""

import asyncio
import datetime
import json
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from idbbrowser.models.metadata import KeyPath
from idbbrowser.models.values import Key, StructuredValue
from idbbrowser.storage.engine import READONLY, EngineError
from idbbrowser.utils.logging_utils import get_logger

logger = get_logger(__name__)

# Operations that can be made to fail with fail_on()
OPERATIONS = ("open", "transaction", "count", "cursor", "continue")

_NUMBER, _DATE, _STRING, _BINARY, _ARRAY = range(1, 6)


def key_sort_value(key: Key) -> tuple[Any, ...]:
    """
    Return a tuple that sorts keys in IndexedDB order.

    Raises:
        EngineError: DataError if the value is not a valid key
    """
    if key is None:
        return (0,)
    if isinstance(key, bool):
        raise EngineError("DataError", f"{key!r} is not a valid key")
    if isinstance(key, int | float):
        if key != key:
            raise EngineError("DataError", "NaN is not a valid key")
        return (_NUMBER, float(key))
    if isinstance(key, datetime.datetime):
        if key.tzinfo is None:
            key = key.replace(tzinfo=datetime.timezone.utc)
        return (_DATE, key.timestamp())
    if isinstance(key, str):
        return (_STRING, key)
    if isinstance(key, bytes | bytearray):
        return (_BINARY, bytes(key))
    if isinstance(key, list | tuple):
        return (_ARRAY, tuple(key_sort_value(item) for item in key))
    raise EngineError("DataError", f"{type(key).__name__} is not a valid key")


def extract_key(value: StructuredValue, key_path: KeyPath) -> tuple[bool, Key]:
    """
    Evaluate a key path against a record value.

    Returns:
        (found, key); found is False when any step of the path is missing
    """
    if key_path is None:
        return False, None
    if isinstance(key_path, str):
        current = value
        if key_path == "":
            return True, current
        for part in key_path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            elif part == "length" and isinstance(current, str | list):
                current = len(current)
            else:
                return False, None
        return True, current

    keys = []
    for path in key_path:
        found, key = extract_key(value, path)
        if not found:
            return False, None
        keys.append(key)
    return True, keys


def _is_valid_key(key: Key) -> bool:
    try:
        key_sort_value(key)
    except EngineError:
        return False
    return True


class MemoryIndex:
    """Index definition; entries are derived from the store on demand."""

    def __init__(
        self,
        store: "MemoryObjectStore",
        name: str,
        key_path: KeyPath,
        unique: bool = False,
        multi_entry: bool = False,
    ) -> None:
        self.store = store
        self.name = name
        self.key_path = key_path
        self.unique = unique
        self.multi_entry = multi_entry

    def index_keys(self, value: StructuredValue) -> list[Key]:
        """Return the index keys a record value contributes."""
        found, key = extract_key(value, self.key_path)
        if not found:
            return []
        if self.multi_entry and isinstance(key, list):
            keys: list[Key] = []
            seen: set[tuple[Any, ...]] = set()
            for item in key:
                if item is None or not _is_valid_key(item):
                    continue
                sort_value = key_sort_value(item)
                if sort_value not in seen:
                    seen.add(sort_value)
                    keys.append(item)
            return keys
        if key is None or not _is_valid_key(key):
            return []
        return [key]

    def entries(self) -> list[tuple[Key, Key, StructuredValue]]:
        """All (index key, primary key, value) entries in cursor order."""
        entries = []
        for primary_key, value in self.store.records():
            for index_key in self.index_keys(value):
                entries.append((index_key, primary_key, value))
        entries.sort(key=lambda e: (key_sort_value(e[0]), key_sort_value(e[1])))
        return entries


class MemoryObjectStore:
    """Records of one object store, kept sorted by primary key."""

    def __init__(
        self, name: str, key_path: KeyPath = None, auto_increment: bool = False
    ) -> None:
        self.name = name
        self.key_path = key_path
        self.auto_increment = auto_increment
        self.indexes: dict[str, MemoryIndex] = {}
        self._records: dict[tuple[Any, ...], tuple[Key, StructuredValue]] = {}
        self._next_key = 1

    def create_index(
        self,
        name: str,
        key_path: KeyPath,
        unique: bool = False,
        multi_entry: bool = False,
    ) -> MemoryIndex:
        """Declare an index on this store."""
        if name in self.indexes:
            raise EngineError("ConstraintError", f"Index '{name}' already exists")
        if isinstance(key_path, list):
            key_path = tuple(key_path)
        index = MemoryIndex(self, name, key_path, unique, multi_entry)
        self.indexes[name] = index
        return index

    def put(self, value: StructuredValue, key: Key = None) -> Key:
        """Insert or replace a record, returning its primary key."""
        if self.key_path is not None:
            if key is not None:
                raise EngineError(
                    "DataError", "Explicit key given for a store with a key path"
                )
            found, key = extract_key(value, self.key_path)
            if not found:
                if not self.auto_increment:
                    raise EngineError("DataError", "Record has no value at key path")
                key = self._generate_key()
                if isinstance(self.key_path, str) and isinstance(value, dict):
                    value = {**value, self.key_path: key}
        elif key is None:
            if not self.auto_increment:
                raise EngineError("DataError", "No key given for an out-of-line store")
            key = self._generate_key()

        sort_value = key_sort_value(key)
        if isinstance(key, int | float) and key >= self._next_key:
            self._next_key = int(key) + 1

        for index in self.indexes.values():
            if index.unique:
                self._check_unique(index, sort_value, value)

        self._records[sort_value] = (key, value)
        return key

    def _generate_key(self) -> int:
        key = self._next_key
        self._next_key += 1
        return key

    def _check_unique(
        self, index: MemoryIndex, sort_value: tuple[Any, ...], value: StructuredValue
    ) -> None:
        new_keys = {key_sort_value(k) for k in index.index_keys(value)}
        for existing_sort, (_key, existing) in self._records.items():
            if existing_sort == sort_value:
                continue
            if new_keys & {key_sort_value(k) for k in index.index_keys(existing)}:
                raise EngineError(
                    "ConstraintError", f"Unique index '{index.name}' violated"
                )

    def records(self) -> list[tuple[Key, StructuredValue]]:
        """All (primary key, value) pairs in key order."""
        return [self._records[k] for k in sorted(self._records)]


class MemoryDatabase:
    """A named, versioned database belonging to an origin."""

    def __init__(self, origin: str, name: str, version: int = 1) -> None:
        self.origin = origin
        self.name = name
        self.version = version
        self.object_stores: dict[str, MemoryObjectStore] = {}

    def create_object_store(
        self, name: str, key_path: KeyPath = None, auto_increment: bool = False
    ) -> MemoryObjectStore:
        """Declare an object store."""
        if name in self.object_stores:
            raise EngineError("ConstraintError", f"Object store '{name}' already exists")
        if isinstance(key_path, list):
            key_path = tuple(key_path)
        store = MemoryObjectStore(name, key_path, auto_increment)
        self.object_stores[name] = store
        return store


class MemoryCursor:
    """Forward cursor over a snapshot of entries."""

    def __init__(
        self,
        engine: "MemoryEngine",
        entries: list[tuple[Key, Key, StructuredValue]],
    ) -> None:
        self._engine = engine
        self._entries = entries
        self._position = 0

    @property
    def key(self) -> Key:
        return self._entries[self._position][0]

    @property
    def primary_key(self) -> Key:
        return self._entries[self._position][1]

    @property
    def value(self) -> StructuredValue:
        return self._entries[self._position][2]

    async def continue_(self) -> bool:
        if self._position >= len(self._entries):
            raise EngineError("InvalidStateError", "Cursor is exhausted")
        await self._engine.suspend("continue", self._engine.step_delay)
        self._position += 1
        return self._position < len(self._entries)


class _SourceView(ABC):
    def __init__(self, engine: "MemoryEngine") -> None:
        self._engine = engine

    @abstractmethod
    def _entries(self) -> list[tuple[Key, Key, StructuredValue]]:
        """All (key, primary key, value) entries in cursor order."""

    async def count(self) -> int:
        await self._engine.suspend("count", self._engine.count_delay)
        return len(self._entries())

    async def open_cursor(self) -> MemoryCursor | None:
        await self._engine.suspend("cursor", self._engine.step_delay)
        entries = self._entries()
        if not entries:
            return None
        return MemoryCursor(self._engine, entries)


class MemoryIndexView(_SourceView):
    """An index as seen inside a transaction."""

    def __init__(self, engine: "MemoryEngine", index: MemoryIndex) -> None:
        super().__init__(engine)
        self._index = index

    @property
    def name(self) -> str:
        return self._index.name

    @property
    def key_path(self) -> KeyPath:
        return self._index.key_path

    @property
    def unique(self) -> bool:
        return self._index.unique

    @property
    def multi_entry(self) -> bool:
        return self._index.multi_entry

    def _entries(self) -> list[tuple[Key, Key, StructuredValue]]:
        return self._index.entries()


class MemoryObjectStoreView(_SourceView):
    """An object store as seen inside a transaction."""

    def __init__(self, engine: "MemoryEngine", store: MemoryObjectStore) -> None:
        super().__init__(engine)
        self._store = store

    @property
    def name(self) -> str:
        return self._store.name

    @property
    def key_path(self) -> KeyPath:
        return self._store.key_path

    @property
    def auto_increment(self) -> bool:
        return self._store.auto_increment

    @property
    def index_names(self) -> Sequence[str]:
        return sorted(self._store.indexes)

    def index(self, name: str) -> MemoryIndexView:
        if name not in self._store.indexes:
            raise EngineError("NotFoundError", f"No index named '{name}'")
        return MemoryIndexView(self._engine, self._store.indexes[name])

    def _entries(self) -> list[tuple[Key, Key, StructuredValue]]:
        return [(key, key, value) for key, value in self._store.records()]


class MemoryTransaction:
    """Read-only transaction over a fixed set of object stores."""

    def __init__(
        self, engine: "MemoryEngine", database: MemoryDatabase, names: Sequence[str]
    ) -> None:
        self._engine = engine
        self._database = database
        self._names = sorted(names)

    @property
    def object_store_names(self) -> Sequence[str]:
        return list(self._names)

    def object_store(self, name: str) -> MemoryObjectStoreView:
        if name not in self._names:
            raise EngineError("NotFoundError", f"'{name}' is not in this transaction")
        return MemoryObjectStoreView(self._engine, self._database.object_stores[name])


class MemoryConnection:
    """An open handle on a MemoryDatabase."""

    def __init__(self, engine: "MemoryEngine", database: MemoryDatabase) -> None:
        self._engine = engine
        self._database = database
        self.closed = False

    @property
    def name(self) -> str:
        return self._database.name

    @property
    def version(self) -> int:
        return self._database.version

    @property
    def object_store_names(self) -> Sequence[str]:
        return sorted(self._database.object_stores)

    def transaction(
        self, names: Sequence[str], mode: str = READONLY
    ) -> MemoryTransaction:
        if self.closed:
            raise EngineError("InvalidStateError", "Connection is closed")
        if mode != READONLY:
            raise EngineError("InvalidAccessError", f"Unsupported mode '{mode}'")
        self._engine.check_failure("transaction")
        if isinstance(names, str):
            names = [names]
        for name in names:
            if name not in self._database.object_stores:
                raise EngineError("NotFoundError", f"No object store named '{name}'")
        return MemoryTransaction(self._engine, self._database, names)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._engine.open_connections -= 1


class MemoryEngine:
    """
    Engine holding databases in memory.

    Args:
        open_delay: Seconds every open() waits before resolving
        step_delay: Seconds every cursor open or step waits
        count_delay: Seconds every count() waits
    """

    def __init__(
        self,
        open_delay: float = 0.0,
        step_delay: float = 0.0,
        count_delay: float = 0.0,
    ) -> None:
        self.open_delay = open_delay
        self.step_delay = step_delay
        self.count_delay = count_delay
        self.open_delays: dict[tuple[str, str], float] = {}
        self.open_connections = 0
        self._databases: dict[tuple[str, str], MemoryDatabase] = {}
        self._failures: dict[str, str] = {}

    def create_database(self, origin: str, name: str, version: int = 1) -> MemoryDatabase:
        """Create an empty database."""
        database = MemoryDatabase(origin, name, version)
        self._databases[(origin, name)] = database
        return database

    def databases(self) -> list[tuple[str, str]]:
        """All (origin, name) pairs, sorted."""
        return sorted(self._databases)

    def fail_on(self, operation: str, error_name: str = "UnknownError") -> None:
        """Make every later call of an operation fail with a named error."""
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation '{operation}'")
        self._failures[operation] = error_name

    def clear_failures(self) -> None:
        self._failures.clear()

    def check_failure(self, operation: str) -> None:
        error_name = self._failures.get(operation)
        if error_name is not None:
            raise EngineError(error_name, f"Injected failure in {operation}")

    async def suspend(self, operation: str, delay: float) -> None:
        """Yield to the event loop, then fail if the operation is marked failing."""
        await asyncio.sleep(delay)
        self.check_failure(operation)

    async def open(
        self, origin: str, name: str, version: int | None = None
    ) -> MemoryConnection:
        delay = self.open_delays.get((origin, name), self.open_delay)
        await self.suspend("open", delay)

        database = self._databases.get((origin, name))
        if database is None:
            raise EngineError("NotFoundError", f"No database '{name}' for {origin}")
        if version is not None and version < database.version:
            raise EngineError(
                "VersionError",
                f"Requested version {version} is lower than {database.version}",
            )

        self.open_connections += 1
        return MemoryConnection(self, database)

    @classmethod
    def from_fixture(cls, data: dict[str, Any]) -> "MemoryEngine":
        """
        Build an engine from a fixture mapping.

        The fixture format is:
            {"databases": [{"origin": ..., "name": ..., "version": 1,
              "objectStores": [{"name": ..., "keyPath": ..., "autoIncrement": false,
                "indexes": [{"name": ..., "keyPath": ..., "unique": false,
                             "multiEntry": false}],
                "records": [{"key": ..., "value": ...}]}]}]}
        "key" is only given for stores without a key path.
        """
        engine = cls()
        for db_data in data.get("databases", []):
            database = engine.create_database(
                db_data["origin"], db_data["name"], int(db_data.get("version", 1))
            )
            for store_data in db_data.get("objectStores", []):
                store = database.create_object_store(
                    store_data["name"],
                    key_path=store_data.get("keyPath"),
                    auto_increment=bool(store_data.get("autoIncrement", False)),
                )
                for index_data in store_data.get("indexes", []):
                    store.create_index(
                        index_data["name"],
                        index_data["keyPath"],
                        unique=bool(index_data.get("unique", False)),
                        multi_entry=bool(index_data.get("multiEntry", False)),
                    )
                for record in store_data.get("records", []):
                    store.put(record["value"], record.get("key"))
        logger.debug(f"Loaded {len(engine._databases)} databases from fixture")
        return engine

    @classmethod
    def from_json_file(cls, path: str | Path) -> "MemoryEngine":
        """Build an engine from a JSON fixture file."""
        with open(path, encoding="utf-8") as f:
            return cls.from_fixture(json.load(f))
