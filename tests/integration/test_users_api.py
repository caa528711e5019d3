"""Integration tests: profile bootstrap on first authentication."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from overunder.db.models import GroupMember, LedgerEntry
from tests.factories import auth_headers


class TestProfile:
    @pytest.mark.asyncio
    async def test_first_request_creates_profile(self, client: AsyncClient):
        response = await client.get("/api/v1/users/me", headers=auth_headers("alice", "Alice"))
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "alice"
        assert data["username"] == "Alice"
        assert data["email"] == "alice@example.com"
        assert data["balance"] == 1000
        assert data["last_claim_date"] is None
        assert data["daily_grant"]["can_claim"] is True

    @pytest.mark.asyncio
    async def test_default_username(self, client: AsyncClient):
        data = (await client.get("/api/v1/users/me", headers=auth_headers("0123456789abcdef"))).json()
        assert data["username"] == "user_01234567"

    @pytest.mark.asyncio
    async def test_bootstrap_runs_once(self, client: AsyncClient, db_session):
        headers = auth_headers("alice")
        for _ in range(3):
            assert (await client.get("/api/v1/users/me", headers=headers)).status_code == 200

        bonuses = await db_session.scalar(
            select(func.count()).select_from(LedgerEntry).where(
                LedgerEntry.user_id == "alice", LedgerEntry.reason == "signup_bonus",
            )
        )
        memberships = await db_session.scalar(
            select(func.count()).select_from(GroupMember).where(GroupMember.user_id == "alice")
        )
        assert bonuses == 1
        assert memberships == 1

    @pytest.mark.asyncio
    async def test_empty_ledger_and_stakes(self, client: AsyncClient):
        headers = auth_headers("alice")
        stakes = (await client.get("/api/v1/users/me/stakes", headers=headers)).json()
        assert stakes == {"stakes": [], "total": 0}

        ledger = (await client.get("/api/v1/users/me/ledger", headers=headers)).json()
        assert [e["reason"] for e in ledger["entries"]] == ["signup_bonus"]
        assert ledger["entries"][0]["balance_after"] == 1000
