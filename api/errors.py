"""Job error → HTTP mapping and FastAPI error handler registration."""
from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .jobs.manager import (
    AlreadyTerminalError,
    ContentionError,
    InvalidProgressError,
    InvalidTransitionError,
    JobNotFoundError,
    UnauthorizedError,
)
from .jobs.runner import JobQueueFullError
from .jobs.store import StoreUnavailableError
from .schemas.envelope import ApiResponse

logger = logging.getLogger(__name__)


# ── Error → HTTP mapping ────────────────────────────────────────────

_EXCEPTION_STATUS = {
    JobNotFoundError: 404,
    UnauthorizedError: 401,
    AlreadyTerminalError: 409,
    InvalidTransitionError: 409,
    InvalidProgressError: 409,
    JobQueueFullError: 429,
    ContentionError: 503,
    StoreUnavailableError: 503,
}


def _make_handler(status_code: int):
    """Create a handler that wraps an exception in ApiResponse."""

    async def _handler(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.warning("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
        resp = ApiResponse.fail(str(exc))
        return JSONResponse(status_code=status_code, content=resp.model_dump())

    return _handler


def register_error_handlers(app: FastAPI) -> None:
    """Register custom exception handlers on the FastAPI app."""
    for exc_cls, status in _EXCEPTION_STATUS.items():
        app.add_exception_handler(exc_cls, _make_handler(status))

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
        resp = ApiResponse.fail(str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=resp.model_dump(), headers=exc.headers)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error: %s\n%s", exc, traceback.format_exc())
        resp = ApiResponse.fail("Internal server error")
        return JSONResponse(status_code=500, content=resp.model_dump())
