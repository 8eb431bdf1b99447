"""
Display text for keys and record values.

The conversion is one way and lossy: it exists only to fill grid cells. Large
binary values are summarized instead of dumped and long strings are cut.
"""

import datetime
import json
import math
from typing import Any

from idbbrowser.models.values import UNDEFINED, BlobValue, Key, StructuredValue

MAX_STRING_LENGTH = 100


def key_to_display_text(key: Key) -> str:
    """Render a primary or index key."""
    return to_display_text(key)


def value_to_display_text(value: StructuredValue) -> str:
    """Render a record value."""
    return to_display_text(value)


def to_display_text(value: Any) -> str:
    """
    Render any structured value as grid text.

    Examples:
        42 -> '42'
        "abc" -> '"abc"'
        [1, "a"] -> '[1,"a"]'
        None -> 'null'
    """
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    # bool before numbers, bool is an int subclass
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, int | float):
        return format_number(value)
    if isinstance(value, str):
        return format_string(value)
    if isinstance(value, datetime.date):
        return format_date(value)
    if isinstance(value, BlobValue):
        return format_blob(value)
    if isinstance(value, bytes | bytearray | memoryview):
        return f"[Binary size={len(value)}]"
    if isinstance(value, list | tuple | dict):
        return json.dumps(
            _to_json_compatible(value),
            ensure_ascii=False,
            separators=(",", ":"),
        )
    return f"[{type(value).__name__}]"


def format_number(value: int | float) -> str:
    """Numbers render as their shortest decimal literal, integral floats without ".0"."""
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def format_string(value: str) -> str:
    """Quote a string, truncating it past MAX_STRING_LENGTH characters."""
    if len(value) <= MAX_STRING_LENGTH:
        return json.dumps(value, ensure_ascii=False)
    truncated = json.dumps(value[:MAX_STRING_LENGTH], ensure_ascii=False)
    return f"{truncated}... ({len(value)} characters)"


def format_date(value: datetime.date) -> str:
    """Dates render as a bracketed localized string."""
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return f"[{value.strftime('%c')}]"
    return f"[{value.strftime('%x')}]"


def format_blob(value: BlobValue) -> str:
    """Summarize a blob or file instead of showing its bytes."""
    if value.is_file:
        text = f"[File name={value.name}, size={value.size}, type={value.content_type}"
        if value.last_modified is not None:
            text += f", lastModified={format_date(value.last_modified)[1:-1]}"
        return text + "]"
    return f"[Blob size={value.size}, type={value.content_type}]"


def _to_json_compatible(value: Any) -> Any:
    """Replace values JSON cannot hold with their display text."""
    if value is None or isinstance(value, bool | str):
        return value
    if isinstance(value, int | float):
        if isinstance(value, float) and not math.isfinite(value):
            return format_number(value)
        return value
    if isinstance(value, list | tuple):
        return [_to_json_compatible(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _to_json_compatible(v) for k, v in value.items()}
    return to_display_text(value)
