"""
Browser routes for the IndexedDB browser API.
Exposes profile discovery, schema navigation and the virtualized data grid.
"""

from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel

from idbbrowser.models.metadata import DataTarget
from idbbrowser.models.rows import Column
from idbbrowser.services.browser_session import BrowserSession
from idbbrowser.services.profile_scanner import group_by_origin, scan_profile
from idbbrowser.services.request_arbiter import Channel
from idbbrowser.utils.errors_utils import (
    BrowserError,
    browser_http_error,
    not_found_error,
)
from idbbrowser.utils.logging_utils import get_logger
from idbbrowser.utils.origin_codec import decode_label

logger = get_logger(__name__)

router = APIRouter(prefix="", tags=["browser"])

# This will be injected from main.py
session: BrowserSession


def init_dependencies(browser_session: BrowserSession) -> None:
    """Initialize dependencies for this router."""
    global session
    session = browser_session


class RowResponse(BaseModel):
    """One grid row as sent to the frontend."""

    index: int
    state: str
    key: str
    primaryKey: str
    value: str


class RowsResponse(BaseModel):
    """A window of grid rows."""

    row_count: int
    materialized_count: int
    rows: list[RowResponse]


@router.get("/profile/", response_model=dict[str, Any])
async def get_profile_databases() -> dict[str, Any]:
    """
    List the databases found in the configured profile, grouped by origin.
    """
    databases = await scan_profile()
    groups = group_by_origin(databases)
    return {
        "origins": [
            {
                "origin": group.origin,
                "databases": [
                    {"name": entry.name, "directory": entry.directory}
                    for entry in group.databases
                ],
            }
            for group in groups
        ],
        "count": len(databases),
    }


@router.get("/metadata/", response_model=dict[str, Any])
async def get_metadata(
    origin: str,
    name: str,
    object_store: str | None = None,
    index: str | None = None,
) -> dict[str, Any]:
    """
    Describe a database, object store or index for the metadata panel.
    Selecting a database also returns its object stores and indexes.
    """
    try:
        properties = await session.select(origin, name, object_store, index)
    except BrowserError as e:
        raise browser_http_error(e)

    if properties is None:
        raise not_found_error(
            message=f"No metadata for {origin} / {name} / {object_store} / {index}",
            user_message="The selected item does not exist.",
        )

    response: dict[str, Any] = {
        "properties": properties,
        "loadable": object_store is not None,
    }
    if object_store is None:
        metadata = session.catalog.get(origin, name)
        if metadata is not None:
            response["object_stores"] = [
                {
                    "name": store.name,
                    "indexes": [index_meta.name for index_meta in store.indexes],
                }
                for store in metadata.object_stores
            ]
    return response


@router.post("/data/load/", response_model=dict[str, Any])
async def load_data(
    target: DataTarget,
    wait: bool = Query(False, description="Wait for the load to finish"),
) -> dict[str, Any]:
    """
    Start loading the records of an object store or index.
    Any load still running is superseded.
    """
    handle = session.load_data(target)

    if wait:
        try:
            await handle.wait()
        except BrowserError as e:
            raise browser_http_error(e)

    return session.data_status()


@router.get("/data/rows/", response_model=RowsResponse)
async def get_rows(
    start: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
) -> RowsResponse:
    """
    Return a window of grid rows; rows that have not arrived are placeholders.
    """
    rows = session.rows
    views = rows.read_range(start, start + limit)
    return RowsResponse(
        row_count=rows.row_count,
        materialized_count=rows.materialized_count,
        rows=[
            RowResponse(
                index=view.index,
                state=view.state.value,
                key=view.cell(Column.key),
                primaryKey=view.cell(Column.primary_key),
                value=view.cell(Column.value),
            )
            for view in views
        ],
    )


@router.get("/data/status/", response_model=dict[str, Any])
async def get_data_status() -> dict[str, Any]:
    """Report the state of the current data load."""
    status = session.data_status()
    status["metadata_loading"] = session.is_loading(Channel.metadata)
    return status


@router.post("/data/cancel/", response_model=dict[str, Any])
async def cancel_data_load() -> dict[str, Any]:
    """Cancel the current data load; missing rows are marked as canceled."""
    session.cancel_data_load()
    return session.data_status()


@router.get("/origins/decode/", response_model=dict[str, str])
async def decode_origin(encoded: str) -> dict[str, str]:
    """Decode an origin directory name, returning it unchanged when malformed."""
    return {"encoded": encoded, "origin": decode_label(encoded)}
