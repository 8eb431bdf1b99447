"""
This is the main FastAPI application file, which wires the browsing session
to the database engine and exposes it to the presentation layer.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from starlette.responses import JSONResponse, Response

from idbbrowser.routers import browser_router
from idbbrowser.services.browser_session import BrowserSession
from idbbrowser.storage.engine import DatabaseEngine
from idbbrowser.storage.memory_engine import MemoryEngine
from idbbrowser.utils.config_utils import get_config
from idbbrowser.utils.logging_utils import get_logger, setup_logging

logger = get_logger(__name__)


def build_engine() -> DatabaseEngine:
    """Create the engine named by the configuration."""
    fixture_file = get_config().get("engine.fixture_file", "")
    if fixture_file:
        logger.info(f"Loading databases from fixture {fixture_file}")
        return MemoryEngine.from_json_file(fixture_file)
    logger.warning("No engine fixture configured, browsing an empty engine")
    return MemoryEngine()


def create_app(engine: DatabaseEngine | None = None) -> FastAPI:
    """Build the application around an engine, or the configured one."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Handles application startup and shutdown events."""
        setup_logging()

        session = BrowserSession(engine if engine is not None else build_engine())
        app.state.session = session
        browser_router.init_dependencies(session)
        logger.info("Browser session ready")

        yield

        # Cleanup during shutdown
        await session.aclose()

    app = FastAPI(
        title="IndexedDB Browser API",
        description="API for browsing the schemas and records of IndexedDB databases.",
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Middleware to log incoming requests."""
        try:
            response = await call_next(request)

            logger.info(
                f"[{response.status_code}] {request.method} {request.url.path} - {request.query_params}"
                if request.query_params
                else f"[{response.status_code}] {request.method} {request.url.path}"
            )

            return response
        except Exception as e:
            logger.error(f"Middleware error for {request.method} {request.url.path}: {e}")
            raise

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Catch all unhandled exceptions and return a standardized 500 response."""
        logger.error(
            f"Unhandled exception for {request.method} {request.url}", exc_info=True
        )

        error_response = {
            "message": "An internal server error occurred. Please try again later.",
            "status": 500,
            "details": {
                "error": "internal_error",
                "message": f"Unhandled exception: {str(exc)}",
            },
        }

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response,
        )

    app.include_router(browser_router.router)
    return app


app = create_app()
