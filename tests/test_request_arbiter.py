"""Tests for per-channel request arbitration."""

import asyncio
import random

import pytest

from idbbrowser.services.request_arbiter import Channel, RequestArbiter
from idbbrowser.utils.errors_utils import StaleResultError

from .conftest import run


class TestSerials:
    def test_serials_increase_per_channel(self):
        arbiter = RequestArbiter()
        assert arbiter.begin(Channel.metadata) == 1
        assert arbiter.begin(Channel.metadata) == 2
        assert arbiter.begin(Channel.data) == 1

    def test_only_latest_serial_is_current(self):
        arbiter = RequestArbiter()
        first = arbiter.begin("data")
        second = arbiter.begin("data")
        assert not arbiter.is_current("data", first)
        assert arbiter.is_current("data", second)

    def test_channels_are_independent(self):
        arbiter = RequestArbiter()
        metadata = arbiter.begin(Channel.metadata)
        arbiter.begin(Channel.data)
        arbiter.begin(Channel.data)
        assert arbiter.is_current(Channel.metadata, metadata)

    def test_cancel_makes_everything_stale(self):
        arbiter = RequestArbiter()
        serial = arbiter.begin(Channel.data)
        arbiter.cancel(Channel.data)
        assert not arbiter.is_current(Channel.data, serial)
        assert arbiter.begin(Channel.data) == serial + 2

    def test_unknown_channel_is_rejected(self):
        with pytest.raises(ValueError):
            RequestArbiter().begin("images")


class TestLoadSession:
    def test_session_tracks_currency(self):
        arbiter = RequestArbiter()
        session = arbiter.open_session(Channel.metadata)
        assert session.is_current
        session.ensure_current()

        arbiter.begin(Channel.metadata)
        assert not session.is_current
        with pytest.raises(StaleResultError):
            session.ensure_current()


def test_latest_request_wins_whatever_the_completion_order():
    """N overlapping requests finishing in random order: only the last applies."""
    arbiter = RequestArbiter()
    applied: list[int] = []

    async def request(serial: int, delay: float) -> None:
        await asyncio.sleep(delay)
        if arbiter.is_current(Channel.data, serial):
            applied.append(serial)

    async def main() -> int:
        rng = random.Random(7)
        tasks = []
        last = 0
        for _ in range(20):
            last = arbiter.begin(Channel.data)
            tasks.append(request(last, rng.uniform(0, 0.02)))
        await asyncio.gather(*tasks)
        return last

    last = run(main())
    assert applied == [last]
