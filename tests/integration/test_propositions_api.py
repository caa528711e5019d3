"""Integration tests: proposition endpoints."""

from __future__ import annotations

from datetime import timedelta

import pytest
from httpx import AsyncClient

from overunder.betting.pool import place_stake
from overunder.clock import utcnow
from tests.factories import auth_headers, global_group, make_proposition, make_user

PROPOSITION = {
    "title": "Rainfall in June",
    "description": "Total millimetres measured at the city station.",
    "target": 82.5,
}


async def _create(client: AsyncClient, group_id: int, user_id: str = "creator", hours: int = 2):
    body = {**PROPOSITION, "group_id": group_id, "window_end": (utcnow() + timedelta(hours=hours)).isoformat()}
    return await client.post("/api/v1/propositions", json=body, headers=auth_headers(user_id))


@pytest.fixture
async def global_id(db_session) -> int:
    return (await global_group(db_session)).id


@pytest.fixture
async def closed_prop(db_session):
    """A proposition whose window ended an hour ago, with three stakes."""
    start = utcnow() - timedelta(hours=3)
    await make_user(db_session, "creator")
    for uid in ("alice", "bob", "carol"):
        await make_user(db_session, uid)
    group = await global_group(db_session)
    prop = await make_proposition(
        db_session, "creator", group.id, window_end=utcnow() - timedelta(hours=1), created_at=start,
    )
    await place_stake(db_session, prop.id, "alice", "over", 300, start)
    await place_stake(db_session, prop.id, "bob", "under", 100, start)
    await place_stake(db_session, prop.id, "carol", "under", 100, start)
    return prop


class TestCreateProposition:
    @pytest.mark.asyncio
    async def test_create_in_global(self, client: AsyncClient, global_id: int):
        response = await _create(client, global_id)
        assert response.status_code == 201
        data = response.json()
        assert data["title"] == PROPOSITION["title"]
        assert data["target"] == 82.5
        assert data["status"] == "open"
        assert data["is_bettable"] is True
        assert data["pool"]["total_pot"] == 0
        assert data["pool"]["over_share"] == 0.5
        assert data["my_stake"] is None

    @pytest.mark.asyncio
    async def test_window_end_must_be_future(self, client: AsyncClient, global_id: int):
        response = await _create(client, global_id, hours=-1)
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_short_title_rejected(self, client: AsyncClient, global_id: int):
        body = {**PROPOSITION, "title": "Hi", "group_id": global_id,
                "window_end": (utcnow() + timedelta(hours=1)).isoformat()}
        response = await client.post("/api/v1/propositions", json=body, headers=auth_headers("creator"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_only_leader_creates_in_group(self, client: AsyncClient):
        group = await client.post("/api/v1/groups", json={"name": "Book Club"}, headers=auth_headers("leader"))
        group_id = group.json()["id"]
        await client.post(f"/api/v1/groups/{group_id}/join", headers=auth_headers("member"))

        assert (await _create(client, group_id, "member")).status_code == 403
        assert (await _create(client, group_id, "leader")).status_code == 201

    @pytest.mark.asyncio
    async def test_unknown_group(self, client: AsyncClient):
        assert (await _create(client, 9999)).status_code == 404

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client: AsyncClient, global_id: int):
        body = {**PROPOSITION, "group_id": global_id, "window_end": (utcnow() + timedelta(hours=1)).isoformat()}
        response = await client.post("/api/v1/propositions", json=body)
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"


class TestStakeEndpoint:
    @pytest.mark.asyncio
    async def test_place_stake(self, client: AsyncClient, global_id: int):
        prop_id = (await _create(client, global_id)).json()["id"]
        response = await client.post(
            f"/api/v1/propositions/{prop_id}/stakes",
            json={"side": "over", "amount": 100},
            headers=auth_headers("alice"),
        )
        assert response.status_code == 201
        data = response.json()
        assert data["balance"] == 900
        assert data["stake"]["side"] == "over"
        assert data["pool"]["total_over"] == 100
        assert data["pool"]["over_share"] == 1.0

    @pytest.mark.asyncio
    async def test_detail_shows_potential_winnings(self, client: AsyncClient, global_id: int):
        prop_id = (await _create(client, global_id)).json()["id"]
        url = f"/api/v1/propositions/{prop_id}/stakes"
        await client.post(url, json={"side": "over", "amount": 100}, headers=auth_headers("alice"))
        await client.post(url, json={"side": "under", "amount": 300}, headers=auth_headers("bob"))

        response = await client.get(f"/api/v1/propositions/{prop_id}", headers=auth_headers("alice"))
        assert response.status_code == 200
        data = response.json()
        assert data["pool"]["total_pot"] == 400
        assert data["pool"]["participants"] == 2
        assert data["pool"]["over_share"] == 0.25
        assert data["my_stake"]["amount"] == 100
        assert data["my_stake"]["potential_winnings"] == 400

    @pytest.mark.asyncio
    async def test_duplicate_stake(self, client: AsyncClient, global_id: int):
        prop_id = (await _create(client, global_id)).json()["id"]
        url = f"/api/v1/propositions/{prop_id}/stakes"
        headers = auth_headers("alice")
        await client.post(url, json={"side": "over", "amount": 100}, headers=headers)
        response = await client.post(url, json={"side": "under", "amount": 100}, headers=headers)
        assert response.status_code == 409
        assert response.json()["code"] == "duplicate_stake"

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, client: AsyncClient, global_id: int):
        prop_id = (await _create(client, global_id)).json()["id"]
        response = await client.post(
            f"/api/v1/propositions/{prop_id}/stakes",
            json={"side": "over", "amount": 1001},
            headers=auth_headers("alice"),
        )
        assert response.status_code == 400
        assert response.json()["code"] == "insufficient_funds"

    @pytest.mark.asyncio
    async def test_invalid_side(self, client: AsyncClient, global_id: int):
        prop_id = (await _create(client, global_id)).json()["id"]
        response = await client.post(
            f"/api/v1/propositions/{prop_id}/stakes",
            json={"side": "sideways", "amount": 10},
            headers=auth_headers("alice"),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_closed_window(self, client: AsyncClient, closed_prop):
        response = await client.post(
            f"/api/v1/propositions/{closed_prop.id}/stakes",
            json={"side": "over", "amount": 10},
            headers=auth_headers("dave"),
        )
        assert response.status_code == 409
        assert response.json()["code"] == "betting_closed"


class TestResolveEndpoint:
    @pytest.mark.asyncio
    async def test_creator_resolves(self, client: AsyncClient, closed_prop):
        response = await client.post(
            f"/api/v1/propositions/{closed_prop.id}/resolve",
            json={"winning_side": "under", "actual_result": 75.0},
            headers=auth_headers("creator"),
        )
        assert response.status_code == 200
        data = response.json()
        assert data["total_paid"] == 500
        assert data["proposition"]["status"] == "resolved"
        assert data["proposition"]["winning_side"] == "under"
        payouts = {line["user_id"]: line["payout"] for line in data["payouts"]}
        assert payouts == {"bob": 250, "carol": 250, "alice": 0}

        me = (await client.get("/api/v1/users/me", headers=auth_headers("bob"))).json()
        assert me["balance"] == 1150

    @pytest.mark.asyncio
    async def test_non_creator_forbidden(self, client: AsyncClient, closed_prop):
        response = await client.post(
            f"/api/v1/propositions/{closed_prop.id}/resolve",
            json={"winning_side": "under"},
            headers=auth_headers("alice"),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_resolve_twice(self, client: AsyncClient, closed_prop):
        url = f"/api/v1/propositions/{closed_prop.id}/resolve"
        headers = auth_headers("creator")
        assert (await client.post(url, json={"winning_side": "over"}, headers=headers)).status_code == 200
        second = await client.post(url, json={"winning_side": "under"}, headers=headers)
        assert second.status_code == 409
        assert second.json()["code"] == "invalid_state"

    @pytest.mark.asyncio
    async def test_resolve_before_window_end(self, client: AsyncClient, global_id: int):
        prop_id = (await _create(client, global_id)).json()["id"]
        response = await client.post(
            f"/api/v1/propositions/{prop_id}/resolve",
            json={"winning_side": "over"},
            headers=auth_headers("creator"),
        )
        assert response.status_code == 409


class TestFeed:
    @pytest.mark.asyncio
    async def test_feed_hides_private_groups(self, client: AsyncClient, global_id: int):
        await _create(client, global_id)
        group = await client.post(
            "/api/v1/groups", json={"name": "Secret Society", "is_private": True}, headers=auth_headers("leader"),
        )
        await _create(client, group.json()["id"], "leader")

        outsider = (await client.get("/api/v1/propositions", headers=auth_headers("outsider"))).json()
        leader = (await client.get("/api/v1/propositions", headers=auth_headers("leader"))).json()
        assert outsider["total"] == 1
        assert leader["total"] == 2

    @pytest.mark.asyncio
    async def test_private_detail_forbidden(self, client: AsyncClient):
        group = await client.post(
            "/api/v1/groups", json={"name": "Secret Society", "is_private": True}, headers=auth_headers("leader"),
        )
        prop_id = (await _create(client, group.json()["id"], "leader")).json()["id"]
        response = await client.get(f"/api/v1/propositions/{prop_id}", headers=auth_headers("outsider"))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_my_stakes_and_ledger(self, client: AsyncClient, closed_prop):
        await client.post(
            f"/api/v1/propositions/{closed_prop.id}/resolve",
            json={"winning_side": "over"},
            headers=auth_headers("creator"),
        )
        headers = auth_headers("alice")
        stakes = (await client.get("/api/v1/users/me/stakes", headers=headers)).json()
        assert stakes["total"] == 1
        item = stakes["stakes"][0]
        assert item["won"] is True
        assert item["payout"] == 500
        assert item["potential_winnings"] == 500
        assert item["proposition"]["status"] == "resolved"

        ledger = (await client.get("/api/v1/users/me/ledger", headers=headers)).json()
        reasons = [e["reason"] for e in ledger["entries"]]
        assert reasons[0] == "payout"
        assert sorted(reasons) == ["payout", "signup_bonus", "stake"]
        assert ledger["entries"][0]["balance_after"] == 1200
