"""Leaderboard worker tests: the scheduled job and its arq registration."""

from __future__ import annotations

import pytest

from overunder.leaderboard.worker import rebuild_leaderboard_job
from overunder.workers.settings import WorkerSettings


@pytest.mark.asyncio
async def test_job_rebuilds_empty_board(database):
    assert await rebuild_leaderboard_job({}) == 0


def test_job_is_scheduled_daily():
    assert rebuild_leaderboard_job in WorkerSettings.functions
    [job] = WorkerSettings.cron_jobs
    assert job.coroutine is rebuild_leaderboard_job
    assert job.hour == {0}
    assert job.minute == {0}
    assert job.run_at_startup is False
