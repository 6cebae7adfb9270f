"""
FastAPI Application Entry Point.

Creates the tts-relay application: logging, API routes, static serving
of cached audio under /tts-cache, and the startup/shutdown hooks that
initialize the provider and run the periodic eviction sweep.

Usage:
    uvicorn tts_relay.main:app --host 0.0.0.0 --port 5000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware

from tts_relay.api.dependencies import get_settings, start_service, stop_service
from tts_relay.api.routes import router, validation_error_response
from tts_relay.core.logging import configure_logging
from tts_relay.tts.storage import URL_PREFIX

# Cached artifacts are immutable; clients may keep them for an hour
STATIC_CACHE_CONTROL = "public, max-age=3600"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the provider and eviction scheduler; stop them on shutdown."""
    start_service()
    try:
        yield
    finally:
        stop_service()


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "code": "REQUEST_INVALID",
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return validation_error_response(errors)


async def _static_headers(request: Request, call_next):
    """Cache-Control and permissive CORS on cached audio responses."""
    response = await call_next(request)
    if request.url.path.startswith(URL_PREFIX + "/"):
        response.headers["Cache-Control"] = STATIC_CACHE_CONTROL
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET"
    return response


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    1. Configures logging (TTS_RELAY_LOG_LEVEL and friends)
    2. Registers the API router and the 400 validation handler
    3. Serves the cache directory at /tts-cache
    4. Initializes the provider and eviction scheduler in the lifespan handler
    """
    configure_logging()

    app = FastAPI(
        title="tts-relay",
        lifespan=lifespan,
        exception_handlers={RequestValidationError: _request_validation_handler},
        middleware=[Middleware(BaseHTTPMiddleware, dispatch=_static_headers)],
    )

    app.include_router(router)

    cache_dir = Path(get_settings().get_service_config().storage.base_dir)
    cache_dir.mkdir(parents=True, exist_ok=True)
    app.mount(URL_PREFIX, StaticFiles(directory=str(cache_dir)), name="tts-cache")

    return app


app = create_app()
