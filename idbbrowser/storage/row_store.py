"""
Lazily populated row store backing the virtualized data grid.

The store knows how many rows a load will produce (from a count query) long
before the rows themselves arrive. Rows are appended in cursor order; every
index past the appended prefix reads as a "loading" placeholder, or as
"canceled" once the load was canceled. Bursts of appends are coalesced into a
single invalidation of the dirty range by a debounce timer.

If the cursor ends before reaching the declared count (the store changed
during the browse), the remaining rows keep reading as "loading".
"""

from typing import Protocol

from idbbrowser.models.rows import Column, RowRecord, RowState, RowView
from idbbrowser.utils.clock_utils import Clock, LoopClock, TimerHandle
from idbbrowser.utils.config_utils import get_config

DEFAULT_FLUSH_DELAY = 0.1


class RowStoreObserver(Protocol):
    """Receives change notifications, usually the grid widget."""

    def row_count_changed(self, index: int, delta: int) -> None: ...

    def invalidate_range(self, start: int, end: int) -> None:
        """Rows start..end (inclusive) must be redrawn."""
        ...


class LazyRowStore:
    """Row count plus an incrementally filled prefix of materialized rows."""

    def __init__(
        self,
        observer: RowStoreObserver | None = None,
        clock: Clock | None = None,
        flush_delay: float | None = None,
    ) -> None:
        self.observer = observer
        self._clock = clock or LoopClock()
        if flush_delay is None:
            flush_delay = float(
                get_config().get("row_store.flush_delay", DEFAULT_FLUSH_DELAY)
            )
        self.flush_delay = flush_delay

        self._rows: list[RowRecord] = []
        self._row_count = 0
        self._count_declared = False
        self._canceled = False
        self._first_dirty_index = -1
        self._flush_timer: TimerHandle | None = None

    @property
    def row_count(self) -> int:
        return self._row_count

    @property
    def materialized_count(self) -> int:
        return len(self._rows)

    @property
    def is_canceled(self) -> bool:
        return self._canceled

    @property
    def has_pending_flush(self) -> bool:
        return self._flush_timer is not None

    def clear(self) -> None:
        """Drop every row and pending flush, shrinking the grid to nothing."""
        removed = -self._row_count
        self._cancel_timer()
        self._rows = []
        self._row_count = 0
        self._count_declared = False
        self._canceled = False
        self._first_dirty_index = -1
        self._notify_row_count(0, removed)

    def set_row_count(self, count: int) -> None:
        """
        Declare the total number of rows of the current load.

        Raises:
            ValueError: If count is negative
            RuntimeError: If the count was already declared since the last clear()
        """
        if count < 0:
            raise ValueError(f"Row count must not be negative, got {count}")
        if self._count_declared:
            raise RuntimeError("Row count already declared for this load")
        self._count_declared = True
        self._row_count = count
        if count:
            self._notify_row_count(0, count)

    def append(self, row: RowRecord) -> int:
        """Store the next row and schedule a flush, returning the row's index."""
        index = len(self._rows)
        self._rows.append(row)

        if self._flush_timer is None:
            self._first_dirty_index = index
            self._flush_timer = self._clock.call_later(self.flush_delay, self._flush)
        return index

    def invalidate_now(self) -> None:
        """Flush dirty rows immediately instead of waiting for the timer."""
        self._flush()

    def cancel(self) -> None:
        """Mark every row that has not arrived yet as permanently canceled."""
        self._flush()
        self._canceled = True
        first_missing = len(self._rows)
        if first_missing < self._row_count and self.observer is not None:
            self.observer.invalidate_range(first_missing, self._row_count - 1)

    def read(self, index: int) -> RowView:
        """
        Return the row at an index, or a placeholder while it is missing.

        Raises:
            IndexError: If the index is neither materialized nor below the row count
        """
        if 0 <= index < len(self._rows):
            return RowView(
                index=index, state=RowState.materialized, record=self._rows[index]
            )
        if index < 0 or index >= self._row_count:
            raise IndexError(f"Row {index} out of range (row count {self._row_count})")
        state = RowState.canceled if self._canceled else RowState.loading
        return RowView(index=index, state=state)

    def read_range(self, start: int, stop: int) -> list[RowView]:
        """Rows start..stop (exclusive), clamped to the visible range."""
        stop = min(stop, max(self._row_count, len(self._rows)))
        return [self.read(index) for index in range(max(start, 0), stop)]

    def cell_text(self, index: int, column: Column) -> str:
        return self.read(index).cell(column)

    def row_properties(self, index: int) -> str | None:
        return self.read(index).properties

    def _flush(self) -> None:
        self._cancel_timer()
        if self._first_dirty_index != -1:
            start = self._first_dirty_index
            self._first_dirty_index = -1
            if self.observer is not None:
                self.observer.invalidate_range(start, len(self._rows) - 1)

    def _cancel_timer(self) -> None:
        if self._flush_timer is not None:
            self._flush_timer.cancel()
            self._flush_timer = None

    def _notify_row_count(self, index: int, delta: int) -> None:
        if self.observer is not None:
            self.observer.row_count_changed(index, delta)
