"""
The browsing session: navigation, metadata loads and data loads.

A BrowserSession owns the schema catalog, the request arbiter and the row
store of the current data load. Selecting a database loads its schema on the
metadata channel; loading an object store or index streams its records on the
data channel. A newer request on a channel supersedes the older one: its
results are ignored and, unless disabled, its task is cancelled too.
"""

import asyncio
from collections.abc import Callable
from typing import Any

from idbbrowser.models.metadata import DatabaseMetadata, DataTarget, MetadataNode, describe
from idbbrowser.services.request_arbiter import Channel, LoadSession, RequestArbiter
from idbbrowser.storage.cursor_streamer import CursorStreamer, StreamResult
from idbbrowser.storage.engine import DatabaseEngine
from idbbrowser.storage.row_store import LazyRowStore, RowStoreObserver
from idbbrowser.storage.schema_catalog import SchemaCatalog
from idbbrowser.utils.clock_utils import Clock
from idbbrowser.utils.config_utils import get_config
from idbbrowser.utils.errors_utils import BrowserError
from idbbrowser.utils.logging_utils import get_logger

logger = get_logger(__name__)

LoadListener = Callable[[Channel, bool], None]


class LoadHandle:
    """A running data load that can be awaited or cancelled."""

    def __init__(
        self,
        owner: "BrowserSession",
        session: LoadSession,
        target: DataTarget,
        store: LazyRowStore,
        task: "asyncio.Task[StreamResult]",
    ) -> None:
        self._owner = owner
        self.session = session
        self.target = target
        self.store = store
        self.task = task

    @property
    def serial(self) -> int:
        return self.session.serial

    @property
    def done(self) -> bool:
        return self.task.done()

    @property
    def is_current(self) -> bool:
        return self.session.is_current

    def cancel(self) -> None:
        """Stop this load; when it is the current one, the row tail reads as canceled."""
        self._owner.cancel_data_load(self)

    async def wait(self) -> StreamResult | None:
        """
        Wait for the load to finish.

        Returns:
            The stream result, or None if the load was cancelled

        Raises:
            BrowserError: If the load failed
        """
        try:
            return await asyncio.shield(self.task)
        except asyncio.CancelledError:
            if self.task.cancelled():
                return None
            raise


class BrowserSession:
    """State of one browsing window."""

    def __init__(
        self,
        engine: DatabaseEngine,
        observer: RowStoreObserver | None = None,
        clock: Clock | None = None,
        flush_delay: float | None = None,
        abort_superseded_loads: bool | None = None,
    ) -> None:
        self.engine = engine
        self.catalog = SchemaCatalog()
        self.arbiter = RequestArbiter()
        self.last_error: BrowserError | None = None

        self._observer = observer
        self._clock = clock
        self._flush_delay = flush_delay
        if abort_superseded_loads is None:
            abort_superseded_loads = bool(
                get_config().get("browser.abort_superseded_loads", True)
            )
        self.abort_superseded_loads = abort_superseded_loads

        self._streamer = CursorStreamer(engine)
        self._rows = self._new_row_store()
        self._data_handle: LoadHandle | None = None
        self._loading: dict[Channel, bool] = {channel: False for channel in Channel}
        self._listeners: list[LoadListener] = []

    # Metadata channel

    async def select_database(self, origin: str, name: str) -> DatabaseMetadata | None:
        """
        Select a database, loading its schema unless it is cached.

        Returns:
            The schema, or None when a newer selection superseded this one

        Raises:
            DatabaseConnectionError: If the database cannot be opened
            SchemaEnumerationError: If its schema cannot be read
        """
        session = self.arbiter.open_session(Channel.metadata)

        cached = self.catalog.get(origin, name)
        if cached is not None:
            self._set_loading(session, False)
            return cached

        self._set_loading(session, True)
        try:
            # The snapshot is cached even when stale; it is still correct data
            metadata = await self.catalog.load(self.engine, origin, name)
        except BrowserError as e:
            if not session.is_current:
                logger.debug(f"Ignoring failed stale schema load of {name}: {e}")
                return None
            logger.error(f"Failed to load schema of {name} for {origin}: {e}")
            raise
        finally:
            self._set_loading(session, False)

        if not session.is_current:
            logger.debug(f"Dropping stale schema of {name} for {origin}")
            return None
        return metadata

    async def select(
        self,
        origin: str,
        name: str,
        object_store: str | None = None,
        index: str | None = None,
    ) -> dict[str, Any] | None:
        """
        Describe a navigation item for the metadata panel.

        Returns:
            The display properties, or None when the item does not exist or
            the selection was superseded
        """
        metadata = await self.select_database(origin, name)
        if metadata is None:
            return None
        node = self.resolve(origin, name, object_store, index)
        return describe(node) if node is not None else None

    def resolve(
        self,
        origin: str,
        name: str,
        object_store: str | None = None,
        index: str | None = None,
    ) -> MetadataNode | None:
        """Look a navigation key up in the catalog without loading anything."""
        metadata = self.catalog.get(origin, name)
        if metadata is None or object_store is None:
            return metadata

        store = metadata.get_object_store_metadata(object_store)
        if store is None or index is None:
            return store
        return store.get_index_metadata(index)

    def reset(self) -> None:
        """Forget every cached schema."""
        self.catalog.clear()

    # Data channel

    @property
    def rows(self) -> LazyRowStore:
        """Row store of the current data load."""
        return self._rows

    @property
    def current_load(self) -> LoadHandle | None:
        return self._data_handle

    def load_data(self, target: DataTarget) -> LoadHandle:
        """
        Start streaming the records of an object store or index.

        Must be called from a running event loop. The previous load is
        superseded and its row store discarded.
        """
        session = self.arbiter.open_session(Channel.data)

        previous = self._data_handle
        if previous is not None and self.abort_superseded_loads:
            previous.task.cancel()

        self._rows.clear()
        self._rows.observer = None
        self._rows = self._new_row_store()
        self.last_error = None

        logger.info(f"Loading {target.describe()} (data load {session.serial})")
        self._set_loading(session, True)

        store = self._rows
        task = asyncio.create_task(self._run_data_load(target, store, session))
        task.add_done_callback(self._on_load_done)

        handle = LoadHandle(self, session, target, store, task)
        self._data_handle = handle
        return handle

    def cancel_data_load(self, handle: LoadHandle | None = None) -> None:
        """Cancel the current data load, or only the given one if it is stale."""
        current = self._data_handle
        if handle is not None and handle is not current:
            handle.task.cancel()
            return
        if current is None or current.done:
            return

        self.arbiter.cancel(Channel.data)
        if self.abort_superseded_loads:
            current.task.cancel()
        current.store.cancel()
        logger.info(f"Canceled data load {current.serial}")
        if self._loading[Channel.data]:
            self._loading[Channel.data] = False
            self._notify(Channel.data, False)

    async def _run_data_load(
        self, target: DataTarget, store: LazyRowStore, session: LoadSession
    ) -> StreamResult:
        try:
            return await self._streamer.stream(target, store, session)
        except BrowserError as e:
            if session.is_current:
                self.last_error = e
                logger.error(f"Failed to load {target.describe()}: {e}")
            raise
        finally:
            self._set_loading(session, False)

    def _on_load_done(self, task: "asyncio.Task[StreamResult]") -> None:
        # Failures are surfaced through last_error and wait(); retrieve them so
        # an unawaited task does not log "exception was never retrieved"
        if not task.cancelled():
            task.exception()

    # Load state

    def is_loading(self, channel: Channel | str) -> bool:
        return self._loading[Channel(channel)]

    def add_load_listener(self, listener: LoadListener) -> None:
        """Register a callback receiving (channel, loading) transitions."""
        self._listeners.append(listener)

    def remove_load_listener(self, listener: LoadListener) -> None:
        self._listeners.remove(listener)

    def data_status(self) -> dict[str, Any]:
        """Summary of the current data load for the presentation layer."""
        handle = self._data_handle
        return {
            "serial": handle.serial if handle else None,
            "target": handle.target.describe() if handle else None,
            "loading": self._loading[Channel.data],
            "row_count": self._rows.row_count,
            "materialized_count": self._rows.materialized_count,
            "canceled": self._rows.is_canceled,
            "error": self.last_error.message if self.last_error else None,
        }

    async def aclose(self) -> None:
        """Cancel the current data load and wait for it to unwind."""
        handle = self._data_handle
        if handle is not None and not handle.done:
            self.arbiter.cancel(Channel.data)
            handle.task.cancel()
            await asyncio.gather(handle.task, return_exceptions=True)

    def _set_loading(self, session: LoadSession, loading: bool) -> None:
        # Only the current request of a channel may change its loading state
        if not session.is_current:
            return
        if self._loading[session.channel] == loading:
            return
        self._loading[session.channel] = loading
        self._notify(session.channel, loading)

    def _notify(self, channel: Channel, loading: bool) -> None:
        for listener in list(self._listeners):
            listener(channel, loading)

    def _new_row_store(self) -> LazyRowStore:
        return LazyRowStore(
            observer=self._observer, clock=self._clock, flush_delay=self._flush_delay
        )
