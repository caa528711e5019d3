"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
import structlog
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.auth.jwt import username_claim, verify_token
from overunder.database import get_session
from overunder.db.models import User
from overunder.users.service import bootstrap_user

logger = structlog.get_logger()

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Verify the bearer token and return the caller's profile.

    The profile is created on first authentication (starting balance, Global
    group membership). Raises 401 on a missing or invalid token.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated", headers={"WWW-Authenticate": "Bearer"})
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        logger.info("token_rejected", reason=str(e))
        raise HTTPException(status_code=401, detail=str(e), headers={"WWW-Authenticate": "Bearer"}) from e

    user, _created = await bootstrap_user(
        db,
        payload["sub"],
        payload.get("email"),
        username_claim(payload),
    )
    return user
