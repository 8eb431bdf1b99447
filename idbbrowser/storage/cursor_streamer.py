"""
Streaming of records from an object store or index into a LazyRowStore.

A load opens the database, then starts a count query and a forward cursor
without waiting for either. The count declares the grid size, the cursor
appends rows one step at a time. Before every mutation the load checks that
its session is still current; a superseded load stops quietly and only
releases its connection, leaving rows that were already appended in place.
"""

import asyncio
from dataclasses import dataclass

from idbbrowser.models.metadata import DataTarget
from idbbrowser.models.rows import RowRecord
from idbbrowser.services.request_arbiter import LoadSession
from idbbrowser.storage.engine import (
    READONLY,
    Connection,
    Cursor,
    DatabaseEngine,
    EngineError,
    RecordSource,
)
from idbbrowser.storage.row_store import LazyRowStore
from idbbrowser.utils.display_utils import key_to_display_text, value_to_display_text
from idbbrowser.utils.errors_utils import DatabaseConnectionError, QueryError
from idbbrowser.utils.logging_utils import get_logger

logger = get_logger(__name__)


@dataclass
class StreamResult:
    """Outcome of one streaming run."""

    serial: int
    declared_count: int | None = None
    rows_streamed: int = 0
    completed: bool = False
    stale: bool = False


def format_record(cursor: Cursor, from_index: bool) -> RowRecord:
    """Turn the cursor's current position into grid text."""
    return RowRecord(
        key=key_to_display_text(cursor.key),
        primary_key=key_to_display_text(cursor.primary_key) if from_index else None,
        value=value_to_display_text(cursor.value),
    )


class CursorStreamer:
    """Drives count and cursor requests for one data load at a time."""

    def __init__(self, engine: DatabaseEngine) -> None:
        self._engine = engine

    async def stream(
        self, target: DataTarget, store: LazyRowStore, session: LoadSession
    ) -> StreamResult:
        """
        Count and stream every record of a target into a row store.

        Args:
            target: The object store or index to read
            store: Row store owned by this load
            session: The data-channel session the load runs under

        Returns:
            What the run achieved; stale is set when a newer load took over,
            in which case failures are dropped instead of raised

        Raises:
            DatabaseConnectionError: If the database cannot be opened
            QueryError: If the source cannot be opened, counted or walked
        """
        result = StreamResult(serial=session.serial)

        try:
            connection = await self._engine.open(target.origin, target.database)
        except EngineError as e:
            if _drop_if_stale(session, result, e):
                return result
            raise DatabaseConnectionError(
                f"Failed to open {target.database} for {target.origin}: {e.message}",
                cause_name=e.name,
            ) from e

        try:
            if not session.is_current:
                logger.debug(f"Data load {session.serial} superseded while opening")
                result.stale = True
                return result

            source = self._open_source(connection, target)
            await self._run(source, target.is_index, store, session, result)
        finally:
            connection.close()

        if result.completed:
            logger.info(
                f"Loaded {result.rows_streamed} rows from {target.describe()} "
                f"(declared {result.declared_count})"
            )
        return result

    def _open_source(self, connection: Connection, target: DataTarget) -> RecordSource:
        try:
            transaction = connection.transaction([target.object_store], READONLY)
            store = transaction.object_store(target.object_store)
            if target.index is not None:
                return store.index(target.index)
            return store
        except EngineError as e:
            raise QueryError(
                f"Failed to open {target.describe()}: {e.message}", cause_name=e.name
            ) from e

    async def _run(
        self,
        source: RecordSource,
        from_index: bool,
        store: LazyRowStore,
        session: LoadSession,
        result: StreamResult,
    ) -> None:
        # Neither request waits for the other
        count_task = asyncio.create_task(self._count(source, store, session, result))
        cursor_task = asyncio.create_task(
            self._walk(source, from_index, store, session, result)
        )
        tasks = (count_task, cursor_task)

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _count(
        self,
        source: RecordSource,
        store: LazyRowStore,
        session: LoadSession,
        result: StreamResult,
    ) -> None:
        try:
            count = await source.count()
        except EngineError as e:
            if _drop_if_stale(session, result, e):
                return
            raise QueryError(
                f"Failed to count {source.name}: {e.message}", cause_name=e.name
            ) from e

        if not session.is_current:
            logger.debug(f"Dropping stale count for data load {session.serial}")
            result.stale = True
            return

        store.set_row_count(count)
        result.declared_count = count

    async def _walk(
        self,
        source: RecordSource,
        from_index: bool,
        store: LazyRowStore,
        session: LoadSession,
        result: StreamResult,
    ) -> None:
        try:
            cursor = await source.open_cursor()
            while True:
                if not session.is_current:
                    logger.debug(
                        f"Data load {session.serial} superseded after "
                        f"{result.rows_streamed} rows"
                    )
                    result.stale = True
                    return

                if cursor is None:
                    store.invalidate_now()
                    result.completed = True
                    return

                store.append(format_record(cursor, from_index))
                result.rows_streamed += 1

                if not await cursor.continue_():
                    cursor = None
        except EngineError as e:
            if _drop_if_stale(session, result, e):
                return
            raise QueryError(
                f"Failed to read {source.name}: {e.message}", cause_name=e.name
            ) from e


def _drop_if_stale(session: LoadSession, result: StreamResult, error: Exception) -> bool:
    """Mark a failed step of a superseded load as stale instead of raising."""
    if session.is_current:
        return False
    logger.debug(f"Ignoring failure of superseded data load {session.serial}: {error}")
    result.stale = True
    return True
