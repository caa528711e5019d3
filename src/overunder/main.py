"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from overunder.betting.router import router as propositions_router
from overunder.config import get_settings
from overunder.database import close_db, get_session, init_db
from overunder.grants.router import router as daily_grant_router
from overunder.groups.router import router as groups_router
from overunder.groups.service import ensure_global_group
from overunder.health.router import router as health_router
from overunder.leaderboard.router import router as leaderboard_router
from overunder.middleware import setup_middleware
from overunder.redis_client import close_redis, init_redis
from overunder.stats.router import router as stats_router
from overunder.users.router import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Global group exists before the first request (idempotent)
    try:
        async for db in get_session():
            await ensure_global_group(db)
            await db.commit()
            break
    except SQLAlchemyError:
        logger.warning("Global group bootstrap failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Over/Under API",
        description="Backend API for Over/Under, a social pari-mutuel wagering game",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(users_router)
    app.include_router(stats_router)
    app.include_router(groups_router)
    app.include_router(propositions_router)
    app.include_router(daily_grant_router)
    app.include_router(leaderboard_router)

    return app


app = create_app()
