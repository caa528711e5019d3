"""Middleware registration."""

from fastapi import FastAPI

from overunder.config import Settings
from overunder.middleware.cors import setup_cors
from overunder.middleware.error_handler import setup_error_handlers
from overunder.middleware.logging import setup_logging
from overunder.middleware.rate_limit import RateLimitMiddleware
from overunder.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers and middleware.

    Starlette runs middleware in reverse-add order, so CORS is added last to
    wrap everything, including 429s from the rate limiter and the JSON bodies
    produced by the business-rule error handlers.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
