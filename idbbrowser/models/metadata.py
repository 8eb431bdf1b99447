"""
Immutable schema snapshots of a database, its object stores and their indexes.

The three record types form a tagged variant distinguished by their "kind"
field. Code that needs per-kind behavior matches on the type instead of
calling methods on the records.
"""

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

KeyPath = str | tuple[str, ...] | None

# Separator used when rendering a navigation path as one line of text
PATH_SEPARATOR = "   »   "


class IndexMetadata(BaseModel):
    """Schema of a single index."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["index"] = "index"
    name: str
    key_path: KeyPath = None
    unique: bool = False
    multi_entry: bool = False


class ObjectStoreMetadata(BaseModel):
    """Schema of an object store and its indexes, in declaration order."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["object_store"] = "object_store"
    name: str
    key_path: KeyPath = None
    auto_increment: bool = False
    indexes: tuple[IndexMetadata, ...] = ()

    def get_index_metadata(self, name: str) -> IndexMetadata | None:
        """Return the index with exactly this name, or None."""
        for index in self.indexes:
            if index.name == name:
                return index
        return None


class DatabaseMetadata(BaseModel):
    """
    Snapshot of a database schema.

    The snapshot is never refreshed; when the schema changes on disk the
    caller has to build a new one.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["database"] = "database"
    origin: str
    name: str
    version: int
    object_stores: tuple[ObjectStoreMetadata, ...] = ()

    def get_object_store_metadata(self, name: str) -> ObjectStoreMetadata | None:
        """Return the object store with exactly this name, or None."""
        for object_store in self.object_stores:
            if object_store.name == name:
                return object_store
        return None


MetadataNode = DatabaseMetadata | ObjectStoreMetadata | IndexMetadata


class DataTarget(BaseModel):
    """Navigation key of something whose records can be loaded."""

    model_config = ConfigDict(frozen=True)

    origin: str
    database: str
    object_store: str
    index: str | None = Field(default=None)

    @property
    def is_index(self) -> bool:
        return self.index is not None

    def describe(self) -> str:
        """Render the target as "origin  »  database  »  store [»  index]"."""
        parts = [self.origin, self.database, self.object_store]
        if self.index is not None:
            parts.append(self.index)
        return PATH_SEPARATOR.join(parts)


def format_key_path(key_path: KeyPath) -> str | None:
    """Key paths that are not a plain string are shown as JSON."""
    if key_path is None or isinstance(key_path, str):
        return key_path
    return f"JSON: {json.dumps(list(key_path))}"


def describe(node: MetadataNode) -> dict[str, Any]:
    """Return the properties shown in the metadata panel for a schema node."""
    match node:
        case DatabaseMetadata():
            return {
                "type": "IDBDatabase",
                "version": node.version,
            }
        case ObjectStoreMetadata():
            return {
                "type": "IDBObjectStore",
                "keyPath": format_key_path(node.key_path),
                "autoIncrement": node.auto_increment,
            }
        case IndexMetadata():
            return {
                "type": "IDBIndex",
                "keyPath": format_key_path(node.key_path),
                "unique": node.unique,
                "multiEntry": node.multi_entry,
            }
        case _:
            raise TypeError(f"Not a metadata node: {type(node).__name__}")
