"""Integration tests: per-user statistics and ETag revalidation."""

from __future__ import annotations

from datetime import timedelta

import pytest
from httpx import AsyncClient

from overunder.betting.lifecycle import resolve_proposition
from overunder.betting.pool import place_stake
from overunder.clock import utcnow
from tests.factories import global_group, make_proposition, make_user


@pytest.fixture
async def history(db_session):
    """alice wins one proposition and has an open stake on another."""
    now = utcnow()
    start = now - timedelta(hours=4)
    await make_user(db_session, "creator")
    for uid in ("alice", "bob"):
        await make_user(db_session, uid)
    group = await global_group(db_session)

    prop = await make_proposition(
        db_session, "creator", group.id, window_end=now - timedelta(hours=2), created_at=start,
    )
    await place_stake(db_session, prop.id, "alice", "over", 100, start)
    await place_stake(db_session, prop.id, "bob", "under", 100, start)
    await resolve_proposition(db_session, prop.id, "over", "creator", now - timedelta(hours=1))

    open_prop = await make_proposition(db_session, "creator", group.id, window_end=now + timedelta(days=1))
    await place_stake(db_session, open_prop.id, "alice", "under", 40, start)


class TestUserStats:
    @pytest.mark.asyncio
    async def test_stats_body(self, client: AsyncClient, history):
        response = await client.get("/api/v1/users/alice/stats")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        overall = body["data"]["overall_stats"]
        assert overall["total_bets"] == 2
        assert overall["total_wins"] == 1
        assert overall["total_wagered"] == 140
        assert overall["total_winnings"] == 200
        assert overall["net_profit"] == 60
        assert overall["win_rate"] == 50.0
        assert response.headers["cache-control"] == "public, max-age=600"

    @pytest.mark.asyncio
    async def test_etag_revalidation(self, client: AsyncClient, history):
        first = await client.get("/api/v1/users/alice/stats")
        etag = first.headers["etag"]
        assert etag.startswith('"') and etag.endswith('"')

        second = await client.get("/api/v1/users/alice/stats", headers={"If-None-Match": etag})
        assert second.status_code == 304
        assert second.content == b""
        assert second.headers["etag"] == etag

        weak = await client.get("/api/v1/users/alice/stats", headers={"If-None-Match": f"W/{etag}"})
        assert weak.status_code == 304

    @pytest.mark.asyncio
    async def test_stale_etag_returns_body(self, client: AsyncClient, history):
        response = await client.get("/api/v1/users/alice/stats", headers={"If-None-Match": '"stale"'})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_etag_differs_between_users(self, client: AsyncClient, history):
        alice = await client.get("/api/v1/users/alice/stats", params={"range": 30})
        bob = await client.get("/api/v1/users/bob/stats", params={"range": 30})
        assert alice.headers["etag"] != bob.headers["etag"]

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient):
        response = await client.get("/api/v1/users/ghost/stats")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_range(self, client: AsyncClient, history):
        response = await client.get("/api/v1/users/alice/stats", params={"range": 0})
        assert response.status_code == 422
