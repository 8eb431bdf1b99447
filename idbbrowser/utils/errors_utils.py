"""
Error taxonomy for the IndexedDB browser.

Failures that end a load (opening a database, enumerating its schema, counting
or walking a cursor) are raised to the caller and never retried. A malformed
encoded origin is recovered by the caller, and stale results are discarded
without ever reaching the user.
"""

from typing import Any

from fastapi import HTTPException, status
from pydantic import BaseModel


# Error type constants shared with the presentation layer
class ErrorTypes:
    """Error type constants for consistent error responses."""

    CONNECTION_FAILED = "connection_failed"
    SCHEMA_ENUMERATION_FAILED = "schema_enumeration_failed"
    QUERY_FAILED = "query_failed"
    DECODE_FAILED = "decode_failed"
    STALE_RESULT = "stale_result"

    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    INTERNAL_ERROR = "internal_error"


class BrowserError(Exception):
    """Base exception for all browsing failures."""

    error_type: str = ErrorTypes.INTERNAL_ERROR
    default_user_message: str = "The database could not be browsed."

    def __init__(
        self,
        message: str,
        user_message: str | None = None,
        cause_name: str | None = None,
    ):
        self.message = message
        self.user_message = user_message or self.default_user_message
        # Name of the engine error condition that triggered this failure, if any
        self.cause_name = cause_name
        super().__init__(message)


class DatabaseConnectionError(BrowserError):
    """Raised when a database cannot be opened."""

    error_type = ErrorTypes.CONNECTION_FAILED
    default_user_message = "The database could not be opened."


class SchemaEnumerationError(BrowserError):
    """Raised when the object stores or indexes of a database cannot be listed."""

    error_type = ErrorTypes.SCHEMA_ENUMERATION_FAILED
    default_user_message = "The database structure could not be read."


class QueryError(BrowserError):
    """Raised when counting or walking the records of a source fails."""

    error_type = ErrorTypes.QUERY_FAILED
    default_user_message = "The records could not be loaded."


class DecodeError(BrowserError):
    """Raised for an encoded origin directory name that cannot be decoded."""

    error_type = ErrorTypes.DECODE_FAILED
    default_user_message = "The origin name could not be decoded."


class StaleResultError(BrowserError):
    """Raised internally when a load has been superseded by a newer one."""

    error_type = ErrorTypes.STALE_RESULT
    default_user_message = "The request was superseded."


class ErrorDetail(BaseModel):
    """Error detail structure for standardized error responses."""

    error: str  # Error type identifier (required)
    message: str  # Detailed technical message (required)
    code: str | None = None  # Engine error condition name


class StandardErrorResponse(BaseModel):
    """Standard error response format returned to the presentation layer."""

    message: str  # User-friendly message
    status: int  # HTTP status code
    details: ErrorDetail


def create_error_response(exc: BrowserError, status_code: int) -> dict[str, Any]:
    """
    Build the standardized error payload for a browsing failure.

    Args:
        exc: The failure to report
        status_code: HTTP status code the payload is sent with

    Returns:
        Dictionary matching StandardErrorResponse
    """
    response = StandardErrorResponse(
        message=exc.user_message,
        status=status_code,
        details=ErrorDetail(
            error=exc.error_type,
            message=exc.message,
            code=exc.cause_name,
        ),
    )
    return response.model_dump(exclude_none=True)


def status_code_for(exc: BrowserError) -> int:
    """HTTP status used to report a browsing failure."""
    if exc.cause_name == "NotFoundError":
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, DecodeError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, DatabaseConnectionError | SchemaEnumerationError | QueryError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def browser_http_error(exc: BrowserError) -> HTTPException:
    """Convert a browsing failure into a standardized HTTPException."""
    status_code = status_code_for(exc)
    return HTTPException(
        status_code=status_code, detail=create_error_response(exc, status_code)
    )


def not_found_error(message: str, user_message: str) -> HTTPException:
    """Create a standardized 404 not found error."""
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "message": user_message,
            "status": status.HTTP_404_NOT_FOUND,
            "details": {"error": ErrorTypes.NOT_FOUND, "message": message},
        },
    )
