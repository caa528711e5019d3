"""Global error handlers: consistent JSON error responses.

Business-rule errors keep their own status and ``code``. Store failures
(connection loss, serialization conflicts) become 503 with ``retryable`` so a
client can distinguish "your request was invalid" from "try again".
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError
from starlette.exceptions import HTTPException as StarletteHTTPException

from overunder.errors import AlreadyClaimedError, WagerError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(WagerError)
    async def wager_error_handler(request: Request, exc: WagerError) -> JSONResponse:
        """Render a business-rule rejection."""
        logger.info(
            "request_rejected",
            path=request.url.path,
            code=exc.code,
            reason=exc.message,
        )
        headers = None
        if isinstance(exc, AlreadyClaimedError):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle request body/query validation errors."""
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "detail": "Validation error",
                "code": "validation_error",
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(DBAPIError)
    async def store_exception_handler(request: Request, exc: DBAPIError) -> JSONResponse:
        """The store is unavailable or the transaction conflicted; nothing was committed."""
        logger.warning(
            "store_failure",
            path=request.url.path,
            method=request.method,
            error=str(exc.orig) if exc.orig is not None else str(exc),
        )
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "detail": "Service temporarily unavailable, please retry",
                "code": "store_unavailable",
                "retryable": True,
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
