"""Integration tests: resolving propositions and paying out the pool."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from overunder.betting.lifecycle import resolve_proposition
from overunder.betting.pool import place_stake
from overunder.config import get_settings
from overunder.db.models import LedgerEntry, Proposition, Stake, User
from overunder.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from tests.factories import global_group, make_proposition, make_user, open_session


async def _balance(db, user_id: str) -> int:
    return await db.scalar(select(User.balance).where(User.id == user_id))


@pytest.fixture
async def staked_prop(db_session, now):
    """alice 300 over, bob 100 under, carol 100 under; window ends in one hour."""
    await make_user(db_session, "creator")
    for uid in ("alice", "bob", "carol"):
        await make_user(db_session, uid)
    group = await global_group(db_session)
    prop = await make_proposition(db_session, "creator", group.id, window_end=now + timedelta(hours=1))

    await place_stake(db_session, prop.id, "alice", "over", 300, now)
    await place_stake(db_session, prop.id, "bob", "under", 100, now)
    await place_stake(db_session, prop.id, "carol", "under", 100, now)
    return prop


class TestResolve:
    """Resolution rules and payouts."""

    @pytest.mark.asyncio
    async def test_winners_split_pot(self, db_session, staked_prop, now):
        result = await resolve_proposition(db_session, staked_prop.id, "under", "creator", now + timedelta(hours=2))

        assert result.proposition.status == "resolved"
        assert result.proposition.winning_side == "under"
        assert result.total_paid == 500
        assert await _balance(db_session, "alice") == 700
        assert await _balance(db_session, "bob") == 1150
        assert await _balance(db_session, "carol") == 1150

        result = await db_session.execute(
            select(Stake.user_id, Stake.payout).where(Stake.proposition_id == staked_prop.id)
        )
        payouts = {user_id: payout for user_id, payout in result}
        assert payouts == {"alice": 0, "bob": 250, "carol": 250}

        result = await db_session.execute(
            select(LedgerEntry.user_id, LedgerEntry.amount).where(LedgerEntry.reason == "payout")
        )
        entries = [(user_id, amount) for user_id, amount in result]
        assert sorted(entries) == [("bob", 250), ("carol", 250)]

    @pytest.mark.asyncio
    async def test_only_creator_can_resolve(self, db_session, staked_prop, now):
        with pytest.raises(AuthorizationError):
            await resolve_proposition(db_session, staked_prop.id, "under", "alice", now + timedelta(hours=2))

    @pytest.mark.asyncio
    async def test_cannot_resolve_before_window_end(self, db_session, staked_prop, now):
        with pytest.raises(InvalidStateError):
            await resolve_proposition(db_session, staked_prop.id, "under", "creator", now + timedelta(minutes=59))
        status = await db_session.scalar(select(Proposition.status).where(Proposition.id == staked_prop.id))
        assert status == "open"

    @pytest.mark.asyncio
    async def test_resolve_at_window_end(self, db_session, staked_prop, now):
        result = await resolve_proposition(db_session, staked_prop.id, "over", "creator", now + timedelta(hours=1))
        assert result.plan.winners[0].payout == 500

    @pytest.mark.asyncio
    async def test_second_resolution_rejected(self, db_session, staked_prop, now):
        later = now + timedelta(hours=2)
        await resolve_proposition(db_session, staked_prop.id, "under", "creator", later)
        with pytest.raises(InvalidStateError):
            await resolve_proposition(db_session, staked_prop.id, "over", "creator", later)
        assert await _balance(db_session, "alice") == 700
        assert await _balance(db_session, "bob") == 1150

    @pytest.mark.asyncio
    async def test_invalid_side(self, db_session, staked_prop, now):
        with pytest.raises(ValidationError):
            await resolve_proposition(db_session, staked_prop.id, "push", "creator", now + timedelta(hours=2))

    @pytest.mark.asyncio
    async def test_unknown_proposition(self, db_session, now):
        with pytest.raises(NotFoundError):
            await resolve_proposition(db_session, 4242, "over", "creator", now)

    @pytest.mark.asyncio
    async def test_no_winning_stakes_forfeits(self, db_session, staked_prop, now):
        async with open_session() as session:
            # Move bob and carol's stakes onto "over" so nobody backs "under"
            await session.execute(Stake.__table__.update().values(side="over"))
            await session.commit()

        async with open_session() as session:
            result = await resolve_proposition(session, staked_prop.id, "under", "creator", now + timedelta(hours=2))
        assert result.total_paid == 0
        assert result.plan.forfeited == 500
        assert await _balance(db_session, "alice") == 700
        assert await _balance(db_session, "bob") == 900

    @pytest.mark.asyncio
    async def test_no_winning_stakes_refunds_when_configured(self, db_session, staked_prop, now, monkeypatch):
        monkeypatch.setenv("OU_REFUND_WHEN_NO_WINNERS", "true")
        get_settings.cache_clear()
        async with open_session() as session:
            await session.execute(Stake.__table__.update().values(side="over"))
            await session.commit()

        async with open_session() as session:
            result = await resolve_proposition(session, staked_prop.id, "under", "creator", now + timedelta(hours=2))
        assert result.plan.refunded
        assert await _balance(db_session, "alice") == 1000
        assert await _balance(db_session, "bob") == 1000
        refunds = await db_session.scalar(select(LedgerEntry.amount).where(
            LedgerEntry.user_id == "alice", LedgerEntry.reason == "refund",
        ))
        assert refunds == 300


class TestConcurrentResolution:
    @pytest.mark.asyncio
    async def test_concurrent_resolutions_pay_once(self, db_session, staked_prop, now):
        later = now + timedelta(hours=2)

        async def attempt(side: str):
            async with open_session() as session:
                return await resolve_proposition(session, staked_prop.id, side, "creator", later)

        results = await asyncio.gather(attempt("under"), attempt("over"), return_exceptions=True)
        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]

        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidStateError)

        total = sum([await _balance(db_session, uid) for uid in ("alice", "bob", "carol")])
        assert total == 3000
