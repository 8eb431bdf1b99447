"""
Structured values that engines hand to the browser besides plain Python data.

Keys are None, numbers, strings, datetimes or lists of keys. Record values may
additionally contain UNDEFINED, bytes, BlobValue and nested dicts/lists.
"""

import datetime
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field


class _Undefined:
    """Singleton standing for a JavaScript-style undefined value."""

    _instance: "_Undefined | None" = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Final = _Undefined()


class BlobValue(BaseModel):
    """Summary of a binary blob or file stored in a record."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    size: int = Field(ge=0)
    content_type: str = Field(default="", alias="type")
    name: str | None = None
    last_modified: datetime.datetime | None = Field(default=None, alias="lastModified")

    @property
    def is_file(self) -> bool:
        """Files carry a name, plain blobs do not."""
        return self.name is not None


# Type aliases used across the package
Key = Any
StructuredValue = Any
