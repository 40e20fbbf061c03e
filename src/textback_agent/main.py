"""FastAPI application: routers, error responses and lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from textback_agent import __version__
from textback_agent.api import appointments, bookings, health, webhooks
from textback_agent.config import get_settings, require_valid_settings
from textback_agent.core.exceptions import TextbackError
from textback_agent.core.log import get_logger, setup_logging
from textback_agent.db.session import close_db, init_db

log = get_logger(__name__)


def _error(status_code: int, error: str, message: str, details: Any = None) -> JSONResponse:
    content: dict[str, Any] = {"error": error, "message": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def textback_exception_handler(request: Request, exc: TextbackError) -> JSONResponse:
    log.info("Request failed", error=exc.error_code, message=exc.message, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    try:
        error = HTTPStatus(exc.status_code).name.lower()
    except ValueError:
        error = "error"
    return _error(exc.status_code, error, str(exc.detail))


def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 with one entry per invalid field, named without the ``body`` prefix."""
    fields = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body") or "request",
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return _error(422, "validation_error", "Request validation failed", fields)


def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        method=request.method,
        path=request.url.path,
    )
    message = str(exc) if get_settings().debug else "An internal error occurred"
    return _error(500, "internal_error", message)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = require_valid_settings()
    setup_logging(
        level=settings.log_level,
        json_output=settings.log_json,
        service_name="textback-agent",
    )
    log.info("Starting Textback Agent", version=__version__, environment=settings.environment)

    await init_db()

    yield

    from textback_agent.integrations.sms import get_sms_gateway, reset_sms_gateway

    await get_sms_gateway().close()
    reset_sms_gateway()
    await close_db()
    log.info("Textback Agent stopped")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Textback Agent",
        description="Missed-call text-back with AI replies and slot booking",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )

    app.add_exception_handler(TextbackError, textback_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(health.router)
    for router in (webhooks.router, bookings.router, appointments.router):
        app.include_router(router, prefix="/api/v1")

    return app


app = create_app()
