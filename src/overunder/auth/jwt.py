"""
Identity-provider JWT verification.

The provider signs access tokens with a shared HS256 secret. The core only
verifies them; ``create_access_token`` exists for local development and tests.
Claims used: ``sub`` (user id), ``email`` and ``user_metadata.username``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from overunder.config import get_settings


def create_access_token(
    user_id: str,
    email: str | None = None,
    username: str | None = None,
    *,
    expires_in: timedelta | None = None,
) -> str:
    """
    Create an access token shaped like the identity provider's.

    Args:
        user_id: Subject (the provider's user id).
        email: Optional email claim.
        username: Optional display name, carried under ``user_metadata``.
        expires_in: Lifetime; defaults to the configured expiry.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    lifetime = expires_in if expires_in is not None else timedelta(minutes=settings.jwt_access_token_expire_minutes)
    payload: dict[str, Any] = {
        "sub": user_id,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + lifetime,
        "user_metadata": {"username": username} if username else {},
    }
    if email:
        payload["email"] = email
    if settings.jwt_issuer:
        payload["iss"] = settings.jwt_issuer
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or has no subject.
    """
    settings = get_settings()
    options: dict[str, Any] = {"require": ["exp", "sub"]}
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if not isinstance(payload.get("sub"), str) or not payload["sub"]:
        msg = "Token has no subject"
        raise jwt.InvalidTokenError(msg)
    return payload


def username_claim(payload: dict[str, Any]) -> str | None:
    """The optional username the provider stores in user metadata."""
    metadata = payload.get("user_metadata")
    if isinstance(metadata, dict):
        username = metadata.get("username")
        if isinstance(username, str) and username.strip():
            return username.strip()
    return None
