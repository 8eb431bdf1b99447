"""
Schema snapshots of browsed databases.

build() reads the object stores and indexes of an open connection into an
immutable DatabaseMetadata. SchemaCatalog caches those snapshots per
(origin, name) for the lifetime of a browsing session; entries are only
dropped through evict() or clear().
"""

from collections.abc import Iterator

from idbbrowser.models.metadata import DatabaseMetadata, IndexMetadata, ObjectStoreMetadata
from idbbrowser.storage.engine import READONLY, Connection, DatabaseEngine, EngineError
from idbbrowser.utils.errors_utils import DatabaseConnectionError, SchemaEnumerationError
from idbbrowser.utils.logging_utils import get_logger

logger = get_logger(__name__)


def build(origin: str, connection: Connection) -> DatabaseMetadata:
    """
    Read the schema of an open database.

    The connection is neither kept nor closed; that stays with the caller.

    Raises:
        SchemaEnumerationError: If any object store or index cannot be read
    """
    try:
        names = list(connection.object_store_names)
        if not names:
            return DatabaseMetadata(
                origin=origin, name=connection.name, version=connection.version
            )

        transaction = connection.transaction(names, READONLY)
        object_stores = []
        for store_name in transaction.object_store_names:
            store = transaction.object_store(store_name)
            indexes = []
            for index_name in store.index_names:
                index = store.index(index_name)
                indexes.append(
                    IndexMetadata(
                        name=index.name,
                        key_path=index.key_path,
                        unique=index.unique,
                        multi_entry=index.multi_entry,
                    )
                )
            object_stores.append(
                ObjectStoreMetadata(
                    name=store.name,
                    key_path=store.key_path,
                    auto_increment=store.auto_increment,
                    indexes=tuple(indexes),
                )
            )

        return DatabaseMetadata(
            origin=origin,
            name=connection.name,
            version=connection.version,
            object_stores=tuple(object_stores),
        )
    except EngineError as e:
        raise SchemaEnumerationError(
            f"Failed to read schema of {connection.name} for {origin}: {e.message}",
            cause_name=e.name,
        ) from e


class SchemaCatalog:
    """Cache of schema snapshots keyed by (origin, name)."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], DatabaseMetadata] = {}

    def get(self, origin: str, name: str) -> DatabaseMetadata | None:
        return self._entries.get((origin, name))

    def put(self, metadata: DatabaseMetadata) -> None:
        self._entries[(metadata.origin, metadata.name)] = metadata

    def evict(self, origin: str, name: str | None = None) -> int:
        """Drop one database, or every database of an origin when name is None."""
        if name is not None:
            return 1 if self._entries.pop((origin, name), None) is not None else 0
        keys = [key for key in self._entries if key[0] == origin]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[DatabaseMetadata]:
        return iter(list(self._entries.values()))

    async def load(
        self, engine: DatabaseEngine, origin: str, name: str
    ) -> DatabaseMetadata:
        """
        Open a database, snapshot its schema and cache it.

        Raises:
            DatabaseConnectionError: If the database cannot be opened
            SchemaEnumerationError: If its schema cannot be read
        """
        try:
            connection = await engine.open(origin, name)
        except EngineError as e:
            raise DatabaseConnectionError(
                f"Failed to open {name} for {origin}: {e.message}", cause_name=e.name
            ) from e

        try:
            metadata = build(origin, connection)
        finally:
            connection.close()

        self.put(metadata)
        logger.info(
            f"Cached schema of {name} for {origin}: "
            f"{len(metadata.object_stores)} object stores"
        )
        return metadata
