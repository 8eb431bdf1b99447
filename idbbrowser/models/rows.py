"""
Row models for the virtualized data grid.

A RowRecord is the display text of one cursor step. A RowView is what the grid
gets back for any index: either a materialized record or a placeholder that is
still loading or has been canceled.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict

LOADING_TEXT = "Loading..."
CANCELED_TEXT = "Canceled"


class Column(Enum):
    """Columns of the data grid; KEY is the primary column."""

    key = "key"
    primary_key = "primaryKey"
    value = "value"


class RowState(Enum):
    """Lifecycle state of a single grid row."""

    materialized = "materialized"
    loading = "loading"
    canceled = "canceled"


class RowRecord(BaseModel):
    """
    Display text for one record.

    primary_key is set only for rows read through an index; rows read from an
    object store leave it as None.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    primary_key: str | None = None
    value: str

    def cell(self, column: Column) -> str:
        """Return the text shown in the given column."""
        match column:
            case Column.key:
                return self.key
            case Column.primary_key:
                return self.primary_key or ""
            case Column.value:
                return self.value


class RowView(BaseModel):
    """A row as seen by the grid: a record or a placeholder."""

    model_config = ConfigDict(frozen=True)

    index: int
    state: RowState
    record: RowRecord | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.state is not RowState.materialized

    @property
    def properties(self) -> str | None:
        """Style properties for the row, "loading" or "canceled" for placeholders."""
        if self.state is RowState.materialized:
            return None
        return self.state.value

    def cell(self, column: Column) -> str:
        """Return the text shown in the given column."""
        if self.record is not None:
            return self.record.cell(column)
        if column is not Column.key:
            return ""
        if self.state is RowState.canceled:
            return CANCELED_TEXT
        return LOADING_TEXT
