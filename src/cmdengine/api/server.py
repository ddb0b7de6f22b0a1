"""
Command Engine REST API Server.

FastAPI application that builds the engine at startup and exposes the
command endpoints under /command.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from cmdengine import __version__
from cmdengine.api.routes import command_router
from cmdengine.bootstrap import Engine, build_engine
from cmdengine.core.config import Settings, get_settings
from cmdengine.engine.stream import drain_background_tasks
from cmdengine.observability.logging import configure_logging
from cmdengine.observability.tracing import init_tracing, shutdown_tracing

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 30.0


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        # JSON and event streams only
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


def create_app(settings: Settings | None = None, engine: Engine | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings (defaults to the engine's, then get_settings())
        engine: Prebuilt engine; when omitted one is built at startup

    Returns:
        Configured application
    """
    if settings is None:
        settings = engine.settings if engine is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting command engine API server")
        settings.log_summary()
        init_tracing(settings)

        owned = engine is None
        app.state.engine = engine if engine is not None else build_engine(settings)

        yield

        logger.info("Shutting down command engine API server")
        # Streams whose clients went away are still running
        await drain_background_tasks(timeout=SHUTDOWN_DRAIN_SECONDS)
        if owned:
            await app.state.engine.aclose()
        else:
            await app.state.engine.audit.flush()
        shutdown_tracing()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Command Engine API",
        description="""
Turns free-text commands into permission-checked actions.

## Identity

Pass the caller via the `X-User-ID` header. Requests without it run as
the configured default user. When API keys are enabled, send `X-API-Key`.

## Streaming

`POST /command/process-stream` answers with `text/event-stream` frames:
`progress` while the command runs, then exactly one `complete` or `error`.
        """,
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key", "X-User-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error"},
        )

    @app.get("/health", tags=["System"])
    async def health():
        return {"status": "ok", "version": __version__}

    app.include_router(command_router, prefix="/command", tags=["Commands"])
    return app


app = create_app()


def main() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json, settings.log_file)
    uvicorn.run(
        "cmdengine.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
