"""
Decoding of filesystem-safe origin directory names.

Browsers store each origin's databases in a directory whose name is the origin
with unsafe characters (":", "/") replaced by "+", e.g.
"https+++example.com+443" for "https://example.com:443". This module recovers
a readable origin from such a name. The mapping is lossy: an all-digit host
component is indistinguishable from a port, so results are best effort.
"""

import os

from idbbrowser.utils.config_utils import get_config
from idbbrowser.utils.errors_utils import DecodeError
from idbbrowser.utils.logging_utils import get_logger

logger = get_logger(__name__)

SEPARATOR = "+"
FILE_SCHEME = "file"


def decode(encoded: str, drive_letters: bool | None = None) -> str:
    """
    Decode an encoded origin directory name into its logical origin.

    Args:
        encoded: The on-disk directory name
        drive_letters: Whether file origins start with a drive letter. Defaults
            to the "origin.drive_letters" setting, or the platform when unset.

    Returns:
        The decoded origin, e.g. "https://example.com:443"

    Raises:
        DecodeError: If the name is empty or has no host after its scheme

    Examples:
        "https+++example.com+443" -> "https://example.com:443"
        "1007+t+https+++app.example" -> "1007+t+https://app.example"
        "chrome" -> "chrome"
    """
    if not encoded:
        raise DecodeError("Encoded origin is empty")

    parts = encoded.split(SEPARATOR)
    if len(parts) == 1:
        # Opaque or non-standard origin, nothing to decode
        return encoded

    prefix = ""
    if parts[0].isdigit():
        # Application-scoped origin: "<appId>+<inBrowser>+<origin>"
        prefix = f"{parts[0]}{SEPARATOR}{parts[1]}{SEPARATOR}"
        parts = parts[2:]

    parts = [part for part in parts if part]
    if not parts:
        raise DecodeError(f"Encoded origin '{encoded}' has no origin after its prefix")

    if parts[0] == FILE_SCHEME:
        return prefix + _decode_file_origin(parts[1:], _use_drive_letters(drive_letters))

    scheme, hosts = parts[0], parts[1:]
    if not hosts:
        raise DecodeError(f"Encoded origin '{encoded}' has no host")

    port = None
    if len(hosts) > 1 and hosts[-1].isdigit():
        port = hosts.pop()

    origin = f"{scheme}://{''.join(hosts)}"
    if port is not None:
        origin += f":{port}"
    return prefix + origin


def decode_label(encoded: str, drive_letters: bool | None = None) -> str:
    """Decode an origin for display, falling back to the raw name when malformed."""
    try:
        return decode(encoded, drive_letters)
    except DecodeError as e:
        logger.debug(f"Using raw directory name as origin label: {e.message}")
        return encoded


def _decode_file_origin(parts: list[str], drive_letters: bool) -> str:
    origin = f"{FILE_SCHEME}://"
    if drive_letters and parts:
        origin += f"{parts[0]}:/"
        parts = parts[1:]
    return origin + "/".join(parts)


def _use_drive_letters(drive_letters: bool | None) -> bool:
    if drive_letters is not None:
        return drive_letters
    configured = get_config().get("origin.drive_letters")
    if configured is not None:
        return bool(configured)
    return os.name == "nt"
