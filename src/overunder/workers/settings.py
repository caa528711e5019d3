"""arq worker settings module.

Import path for arq CLI: arq overunder.workers.settings.WorkerSettings
"""

from __future__ import annotations

from arq import cron
from arq.connections import RedisSettings

from overunder.config import get_settings
from overunder.leaderboard.worker import leaderboard_shutdown, leaderboard_startup, rebuild_leaderboard_job

_settings = get_settings()


class WorkerSettings:
    """arq worker settings for scheduled jobs."""

    functions = [rebuild_leaderboard_job]
    cron_jobs = [
        cron(
            rebuild_leaderboard_job,
            hour={_settings.leaderboard_rebuild_hour},
            minute={_settings.leaderboard_rebuild_minute},
            second=0,
            run_at_startup=False,
        ),
    ]
    on_startup = leaderboard_startup
    on_shutdown = leaderboard_shutdown
    redis_settings = RedisSettings.from_dsn(_settings.arq_redis_url)
    max_jobs = 2
    job_timeout = 300
    allow_abort_jobs = True


__all__ = ["WorkerSettings"]
