"""
Arbitration between overlapping asynchronous loads.

Every load begins by taking a serial number on its channel. Only the most
recently issued serial of a channel is current; anything older is stale and
its results must be dropped, whatever order the underlying operations finish
in. The arbiter does not abort work, it only tells callers whether their
results still matter.
"""

from dataclasses import dataclass
from enum import Enum

from idbbrowser.utils.errors_utils import StaleResultError


class Channel(Enum):
    """Independent request streams; a new request only supersedes its own channel."""

    metadata = "metadata"
    data = "data"


def _as_channel(channel: "Channel | str") -> Channel:
    if isinstance(channel, Channel):
        return channel
    try:
        return Channel(channel)
    except ValueError:
        raise ValueError(f"Unknown channel '{channel}'") from None


class RequestArbiter:
    """Per-channel monotonic serial numbers."""

    def __init__(self) -> None:
        self._serials: dict[Channel, int] = {channel: 0 for channel in Channel}

    def begin(self, channel: Channel | str) -> int:
        """Start a request on a channel, superseding the previous one."""
        key = _as_channel(channel)
        self._serials[key] += 1
        return self._serials[key]

    def is_current(self, channel: Channel | str, serial: int) -> bool:
        """True only for the latest serial issued on the channel."""
        return self._serials[_as_channel(channel)] == serial

    def cancel(self, channel: Channel | str) -> None:
        """Invalidate outstanding work on a channel without starting new work."""
        self._serials[_as_channel(channel)] += 1

    def current_serial(self, channel: Channel | str) -> int:
        return self._serials[_as_channel(channel)]

    def open_session(self, channel: Channel | str) -> "LoadSession":
        """begin() wrapped in a LoadSession that can check its own currency."""
        key = _as_channel(channel)
        return LoadSession(self, key, self.begin(key))


@dataclass(frozen=True)
class LoadSession:
    """One request on a channel, identified by its serial."""

    arbiter: RequestArbiter
    channel: Channel
    serial: int

    @property
    def is_current(self) -> bool:
        return self.arbiter.is_current(self.channel, self.serial)

    def ensure_current(self) -> None:
        """
        Raise when a newer request has superseded this one.

        Raises:
            StaleResultError: If the session is no longer current
        """
        if not self.is_current:
            raise StaleResultError(
                f"{self.channel.value} request {self.serial} superseded by "
                f"{self.arbiter.current_serial(self.channel)}"
            )
