"""User statistics endpoint with content-hash revalidation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from overunder.clock import utcnow
from overunder.config import get_settings
from overunder.database import get_session
from overunder.stats.schemas import UserStatsResponse
from overunder.stats.service import get_user_stats, stats_etag

router = APIRouter(prefix="/api/v1/users", tags=["Stats"])

_settings = get_settings()


def _quoted(etag: str) -> str:
    return f'"{etag}"'


@router.get(
    "/{user_id}/stats",
    response_model=UserStatsResponse,
    responses={304: {"description": "Statistics unchanged since the supplied ETag"}},
)
async def user_stats_endpoint(
    user_id: str,
    response: Response,
    range_days: int = Query(
        _settings.stats_default_range_days, alias="range", ge=1, le=_settings.stats_max_range_days,
    ),
    if_none_match: str | None = Header(default=None),
    db: AsyncSession = Depends(get_session),
):
    """Daily, cumulative, overall and monthly statistics over the last ``range`` days.

    Repeat the request with ``If-None-Match`` to get a bodiless 304 while the
    statistics are unchanged.
    """
    now = utcnow()
    stats = await get_user_stats(db, user_id, range_days, now)
    etag = stats_etag(stats)
    headers = {
        "ETag": _quoted(etag),
        "Cache-Control": f"public, max-age={get_settings().stats_cache_max_age_seconds}",
    }

    if if_none_match is not None:
        presented = {tag.strip().removeprefix("W/").strip('"') for tag in if_none_match.split(",")}
        if etag in presented or "*" in presented:
            return Response(status_code=304, headers=headers)

    response.headers.update(headers)
    return UserStatsResponse(data=stats, generated_at=now)
