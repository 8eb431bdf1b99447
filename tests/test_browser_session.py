"""Tests for navigation, metadata loads and data loads of a browsing session."""

import asyncio

import pytest

from idbbrowser.models.metadata import DataTarget
from idbbrowser.models.rows import RowState
from idbbrowser.services.browser_session import BrowserSession
from idbbrowser.services.request_arbiter import Channel
from idbbrowser.utils.errors_utils import DatabaseConnectionError, QueryError

from .conftest import ORIGIN, run

ITEMS = DataTarget(origin=ORIGIN, database="numbers", object_store="items")
BOOKS = DataTarget(origin=ORIGIN, database="library", object_store="books")


def make_session(engine, **kwargs) -> tuple[BrowserSession, list[tuple[Channel, bool]]]:
    kwargs.setdefault("flush_delay", 0)
    kwargs.setdefault("abort_superseded_loads", True)
    session = BrowserSession(engine, **kwargs)
    transitions: list[tuple[Channel, bool]] = []
    session.add_load_listener(lambda channel, loading: transitions.append((channel, loading)))
    return session, transitions


async def wait_for_row_count(session: BrowserSession) -> None:
    while session.rows.row_count == 0:
        await asyncio.sleep(0)


class TestSelectDatabase:
    def test_loads_and_caches_schema(self, engine):
        session, transitions = make_session(engine)

        metadata = run(session.select_database(ORIGIN, "library"))
        assert metadata.name == "library"
        assert transitions == [(Channel.metadata, True), (Channel.metadata, False)]

        engine.fail_on("open")
        assert run(session.select_database(ORIGIN, "library")) is metadata

    def test_failure_is_raised(self, engine):
        session, transitions = make_session(engine)
        with pytest.raises(DatabaseConnectionError):
            run(session.select_database(ORIGIN, "missing"))
        assert not session.is_loading(Channel.metadata)
        assert transitions[-1] == (Channel.metadata, False)

    def test_newer_selection_wins(self, engine):
        session, transitions = make_session(engine)
        engine.open_delays[(ORIGIN, "library")] = 0.05

        async def main():
            slow = asyncio.create_task(session.select_database(ORIGIN, "library"))
            await asyncio.sleep(0)
            fast = await session.select_database(ORIGIN, "empty")
            return await slow, fast

        slow, fast = run(main())

        assert slow is None
        assert fast.name == "empty"
        assert transitions == [(Channel.metadata, True), (Channel.metadata, False)]
        # The superseded snapshot is still valid and stays cached
        assert (ORIGIN, "library") in session.catalog

    def test_cached_selection_also_supersedes(self, engine):
        session, _ = make_session(engine)
        run(session.select_database(ORIGIN, "empty"))
        engine.open_delays[(ORIGIN, "library")] = 0.05

        async def main():
            slow = asyncio.create_task(session.select_database(ORIGIN, "library"))
            await asyncio.sleep(0)
            cached = await session.select_database(ORIGIN, "empty")
            return await slow, cached

        slow, cached = run(main())
        assert slow is None
        assert cached.name == "empty"
        assert not session.is_loading("metadata")


class TestSelect:
    def test_describe_each_kind(self, engine):
        session, _ = make_session(engine)

        assert run(session.select(ORIGIN, "library")) == {
            "type": "IDBDatabase",
            "version": 3,
        }
        assert run(session.select(ORIGIN, "library", "notes")) == {
            "type": "IDBObjectStore",
            "keyPath": None,
            "autoIncrement": True,
        }
        assert run(session.select(ORIGIN, "library", "books", "by_tag")) == {
            "type": "IDBIndex",
            "keyPath": "tags",
            "unique": False,
            "multiEntry": True,
        }

    def test_missing_items_describe_as_none(self, engine):
        session, _ = make_session(engine)
        assert run(session.select(ORIGIN, "library", "missing")) is None
        assert run(session.select(ORIGIN, "library", "books", "missing")) is None

    def test_resolve_does_not_load(self, engine):
        session, _ = make_session(engine)
        assert session.resolve(ORIGIN, "library") is None
        run(session.select_database(ORIGIN, "library"))
        assert session.resolve(ORIGIN, "library", "books").key_path == "isbn"

    def test_reset_forgets_schemas(self, engine):
        session, _ = make_session(engine)
        run(session.select_database(ORIGIN, "library"))
        session.reset()
        assert session.resolve(ORIGIN, "library") is None


class TestLoadData:
    def test_load_streams_every_row(self, engine, observer):
        session, transitions = make_session(engine, observer=observer)

        async def main():
            handle = session.load_data(BOOKS)
            assert session.is_loading(Channel.data)
            return await handle.wait()

        result = run(main())

        assert result.completed
        assert session.rows.row_count == 3
        assert session.rows.read(2).record.key == "3"
        assert not session.is_loading(Channel.data)
        assert transitions == [(Channel.data, True), (Channel.data, False)]
        assert ("count", 0, 3) in observer.events
        assert engine.open_connections == 0

    def test_new_load_replaces_row_store(self, numbers_engine):
        engine = numbers_engine(30)
        engine.step_delay = 0.001
        session, transitions = make_session(engine)

        async def main():
            first = session.load_data(ITEMS)
            await wait_for_row_count(session)
            first_rows = session.rows
            second = session.load_data(BOOKS)
            return first, first_rows, await first.wait(), await second.wait()

        engine.create_database(ORIGIN, "library")
        books = engine._databases[(ORIGIN, "library")].create_object_store(
            "books", key_path="isbn"
        )
        books.put({"isbn": 1})

        first, first_rows, first_result, second_result = run(main())

        # The superseded task was cancelled
        assert first_result is None
        assert not first.is_current
        assert second_result.completed
        assert session.rows is not first_rows
        assert session.rows.row_count == 1
        assert first_rows.row_count == 0
        assert transitions == [(Channel.data, True), (Channel.data, False)]
        assert engine.open_connections == 0

    def test_stale_load_finishing_later_is_ignored(self, engine):
        session, _ = make_session(engine, abort_superseded_loads=False)
        engine.open_delays[(ORIGIN, "library")] = 0.05
        engine.create_database(ORIGIN, "numbers").create_object_store(
            "items", key_path="id"
        ).put({"id": 7})

        async def main():
            slow = session.load_data(BOOKS)
            fast = session.load_data(ITEMS)
            fast_result = await fast.wait()
            return await slow.wait(), fast_result

        slow_result, fast_result = run(main())

        assert slow_result.stale
        assert slow_result.rows_streamed == 0
        assert fast_result.completed
        assert session.rows.row_count == 1
        assert session.rows.read(0).record.key == "7"
        assert not session.is_loading(Channel.data)

    def test_cancel_marks_missing_rows_canceled(self, numbers_engine):
        engine = numbers_engine(20)
        engine.step_delay = 0.01
        session, transitions = make_session(engine)

        async def main():
            handle = session.load_data(ITEMS)
            await wait_for_row_count(session)
            handle.cancel()
            return await handle.wait()

        result = run(main())

        assert result is None
        rows = session.rows
        assert rows.is_canceled
        assert rows.row_count == 20
        assert rows.materialized_count < 20
        assert rows.read(19).state is RowState.canceled
        assert not session.is_loading(Channel.data)
        assert transitions == [(Channel.data, True), (Channel.data, False)]
        assert session.data_status()["canceled"]
        assert engine.open_connections == 0

    def test_cancelling_a_superseded_handle_leaves_current_load_alone(self, numbers_engine):
        engine = numbers_engine(5)
        session, _ = make_session(engine, abort_superseded_loads=False)

        async def main():
            old = session.load_data(ITEMS)
            new = session.load_data(ITEMS)
            old.cancel()
            return await old.wait(), await new.wait()

        old_result, new_result = run(main())

        assert old_result is None
        assert new_result.completed
        assert not session.rows.is_canceled
        assert session.rows.materialized_count == 5

    def test_failure_is_recorded(self, engine):
        session, transitions = make_session(engine)
        engine.fail_on("count", "UnknownError")

        async def main():
            handle = session.load_data(BOOKS)
            with pytest.raises(QueryError):
                await handle.wait()

        run(main())

        status = session.data_status()
        assert isinstance(session.last_error, QueryError)
        assert status["error"] == session.last_error.message
        assert not status["loading"]
        assert transitions[-1] == (Channel.data, False)
        assert engine.open_connections == 0

    def test_data_status(self, engine):
        session, _ = make_session(engine)
        assert session.data_status()["serial"] is None

        async def main():
            await session.load_data(BOOKS).wait()

        run(main())

        assert session.data_status() == {
            "serial": 1,
            "target": BOOKS.describe(),
            "loading": False,
            "row_count": 3,
            "materialized_count": 3,
            "canceled": False,
            "error": None,
        }

    def test_aclose_stops_running_load(self, numbers_engine):
        engine = numbers_engine(50)
        engine.step_delay = 0.01
        session, _ = make_session(engine)

        async def main():
            handle = session.load_data(ITEMS)
            await wait_for_row_count(session)
            await session.aclose()
            return handle

        handle = run(main())
        assert handle.done
        assert handle.task.cancelled()
        assert engine.open_connections == 0

    def test_remove_load_listener(self, engine):
        session, transitions = make_session(engine)
        events = []

        def listener(channel, loading):
            events.append(loading)

        session.add_load_listener(listener)
        session.remove_load_listener(listener)
        run(session.select_database(ORIGIN, "library"))
        assert events == []
        assert len(transitions) == 2


class TestSupersededFailures:
    def test_failed_stale_selection_is_dropped(self, engine):
        session, transitions = make_session(engine)
        engine.open_delays[(ORIGIN, "missing")] = 0.05

        async def main():
            slow = asyncio.create_task(session.select_database(ORIGIN, "missing"))
            await asyncio.sleep(0)
            fast = await session.select_database(ORIGIN, "empty")
            return await slow, fast

        slow, fast = run(main())

        assert slow is None
        assert fast.name == "empty"
        assert not session.is_loading(Channel.metadata)
        assert transitions == [(Channel.metadata, True), (Channel.metadata, False)]

    def test_failed_stale_data_load_leaves_no_error(self, engine):
        session, _ = make_session(engine, abort_superseded_loads=False)
        engine.open_delays[(ORIGIN, "missing")] = 0.05
        missing = DataTarget(origin=ORIGIN, database="missing", object_store="books")

        async def main():
            slow = session.load_data(missing)
            fast = session.load_data(BOOKS)
            fast_result = await fast.wait()
            return await slow.wait(), fast_result

        slow_result, fast_result = run(main())

        assert slow_result.stale
        assert fast_result.completed
        assert session.last_error is None
        assert session.data_status()["error"] is None


def test_cancel_after_completion_keeps_rows(engine):
    session, transitions = make_session(engine)

    async def main():
        handle = session.load_data(BOOKS)
        await handle.wait()
        handle.cancel()
        session.cancel_data_load()

    run(main())

    status = session.data_status()
    assert status["canceled"] is False
    assert status["materialized_count"] == 3
    assert transitions == [(Channel.data, True), (Channel.data, False)]
