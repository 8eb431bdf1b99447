"""
Discovery of the databases stored in a browser profile.

Each storage root of a profile holds one directory per origin, named with the
origin's filesystem-safe encoding. Inside, an "idb" directory holds one SQLite
file per database, whose logical name is stored in a one-row "database" table.
"""

import os
from itertools import groupby
from pathlib import Path

import aiosqlite
from pydantic import BaseModel, ConfigDict

from idbbrowser.utils.config_utils import get_config
from idbbrowser.utils.logging_utils import get_logger
from idbbrowser.utils.origin_codec import decode_label

logger = get_logger(__name__)

DATA_DIRECTORY = "idb"
DATABASE_FILE_SUFFIX = ".sqlite"
NAME_QUERY = "SELECT name FROM database LIMIT 1"


class ProfileDatabase(BaseModel):
    """A database file found in a profile."""

    model_config = ConfigDict(frozen=True)

    origin: str
    name: str
    path: Path
    directory: str  # Encoded origin directory name as found on disk


class OriginGroup(BaseModel):
    """All databases of one origin, for the navigation tree."""

    origin: str
    databases: list[ProfileDatabase]


async def read_database_name(path: str | Path) -> str | None:
    """
    Read the logical name stored in a database file.

    Returns:
        The name, or None when the file has no name row
    """
    # Read-only so that browsing never creates or modifies files
    uri = f"{Path(path).resolve().as_uri()}?mode=ro"
    async with aiosqlite.connect(uri, uri=True) as db:
        async with db.execute(NAME_QUERY) as cursor:
            row = await cursor.fetchone()
    if row is None or row[0] is None:
        return None
    return str(row[0])


def _candidate_files(origin_dir: Path) -> list[Path]:
    data_dir = origin_dir / DATA_DIRECTORY
    if not data_dir.is_dir():
        return []
    return sorted(
        entry
        for entry in data_dir.iterdir()
        if entry.is_file() and entry.suffix == DATABASE_FILE_SUFFIX
    )


async def scan_storage_root(
    storage_root: str | Path, drive_letters: bool | None = None
) -> list[ProfileDatabase]:
    """
    Find every database under one storage root.

    Unreadable files are skipped with a warning and an undecodable origin
    directory is labelled with its raw name, so one bad entry never stops
    the scan.
    """
    root = Path(storage_root)
    if not root.is_dir():
        logger.debug(f"Storage root not present: {root}")
        return []

    found: list[ProfileDatabase] = []
    for origin_dir in sorted(root.iterdir()):
        if not origin_dir.is_dir():
            continue

        origin = decode_label(origin_dir.name, drive_letters)
        for path in _candidate_files(origin_dir):
            try:
                name = await read_database_name(path)
            except (aiosqlite.Error, OSError) as e:
                logger.warning(f"Skipping unreadable database file {path}: {e}")
                continue
            if name is None:
                logger.warning(f"Skipping database file without a name: {path}")
                continue
            found.append(
                ProfileDatabase(
                    origin=origin, name=name, path=path, directory=origin_dir.name
                )
            )

    return found


async def scan_profile(
    profile_dir: str | Path | None = None,
    storage_roots: list[str] | None = None,
    drive_letters: bool | None = None,
) -> list[ProfileDatabase]:
    """
    Find every database in a profile, sorted by origin and name.

    Args:
        profile_dir: Profile directory, defaults to "profile.directory"
        storage_roots: Roots relative to the profile, defaults to "profile.storage_roots"
        drive_letters: Passed to the origin decoder
    """
    config = get_config()
    if profile_dir is None:
        profile_dir = config.get("profile.directory", "")
    if not profile_dir:
        logger.warning("No profile directory configured")
        return []
    if storage_roots is None:
        storage_roots = list(config.get("profile.storage_roots", []))

    found: list[ProfileDatabase] = []
    for storage_root in storage_roots:
        found.extend(
            await scan_storage_root(os.path.join(profile_dir, storage_root), drive_letters)
        )

    found.sort(key=lambda entry: (entry.origin, entry.name, str(entry.path)))
    logger.info(f"Found {len(found)} databases in profile {profile_dir}")
    return found


def group_by_origin(databases: list[ProfileDatabase]) -> list[OriginGroup]:
    """Group consecutive entries of the same origin, keeping their order."""
    return [
        OriginGroup(origin=origin, databases=list(entries))
        for origin, entries in groupby(databases, key=lambda entry: entry.origin)
    ]
