"""
Configuration loading for the IndexedDB browser.

Values come from three layers, later ones winning:
built-in defaults, an optional TOML file named by the IDBBROWSER_CONFIG
environment variable, and IDBBROWSER_<SECTION>_<KEY> environment variables.
Keys are addressed with dotted paths such as "row_store.flush_delay".
"""

import copy
import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

ENV_PREFIX = "IDBBROWSER_"
CONFIG_FILE_ENV = "IDBBROWSER_CONFIG"

_MISSING = object()

DEFAULTS: dict[str, Any] = {
    "logging": {
        "level": "INFO",
    },
    "row_store": {
        # Debounce window for coalescing row invalidations, in seconds
        "flush_delay": 0.1,
    },
    "browser": {
        "abort_superseded_loads": True,
    },
    "profile": {
        "directory": "",
        "storage_roots": [
            "storage/default",
            "storage/persistent",
            "storage/permanent",
            "indexedDB",
        ],
    },
    "origin": {
        # None means "use the platform default" (drive letters on Windows)
        "drive_letters": None,
    },
    "engine": {
        "fixture_file": "",
    },
}


class Config:
    """Nested configuration mapping with dotted-key access."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(DEFAULTS)
        if data:
            _deep_merge(self._data, data)

    @classmethod
    def load(cls, path: str | Path | None = None) -> "Config":
        """Build a configuration from defaults, an optional TOML file and the environment."""
        config = cls()

        if path is None:
            path = os.environ.get(CONFIG_FILE_ENV) or None

        if path is not None:
            with open(path, "rb") as f:
                _deep_merge(config._data, tomllib.load(f))

        config._apply_environment(os.environ)
        return config

    def _apply_environment(self, environ: Any) -> None:
        """Override known keys from IDBBROWSER_<SECTION>_<KEY> variables."""
        for section, values in self._data.items():
            if not isinstance(values, dict):
                continue
            for key, current in values.items():
                env_key = f"{ENV_PREFIX}{section}_{key}".upper()
                if env_key in environ:
                    values[key] = _coerce(environ[env_key], current)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value at a dotted key, or default when it is missing."""
        value = self._lookup(key)
        return default if value is _MISSING else value

    def __getitem__(self, key: str) -> Any:
        value = self._lookup(key)
        if value is _MISSING:
            raise KeyError(key)
        return value

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._lookup(key) is not _MISSING

    def as_dict(self) -> dict[str, Any]:
        """Return a copy of the full configuration tree."""
        return copy.deepcopy(self._data)

    def _lookup(self, key: str) -> Any:
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return _MISSING
            node = node[part]
        return node


def _deep_merge(target: dict[str, Any], source: dict[str, Any]) -> None:
    """Recursively merge source into target in place."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = value


def _coerce(raw: str, current: Any) -> Any:
    """Convert an environment string to the type of the value it overrides."""
    raw = raw.strip()
    if isinstance(current, bool) or current is None:
        lowered = raw.lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        if current is None and lowered in ("", "none", "auto"):
            return None
        return raw
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, list):
        # Accept either a JSON array or a comma separated list
        if raw.startswith("[") and raw.endswith("]"):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed]
            except json.JSONDecodeError:
                pass
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Return the process-wide configuration, loading it on first use."""
    return Config.load()
