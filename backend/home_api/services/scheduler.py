from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]

from home_api.settings import Settings

REFRESH_JOB_ID = "refresh_investment_balance"
logger = logging.getLogger(__name__)


def build_refresh_scheduler(
	settings: Settings,
	job: Callable[[], Awaitable[None]],
) -> AsyncIOScheduler:
	"""Run the balance refresh on the configured market-hours cron schedule."""
	zone = settings.zone()
	scheduler = AsyncIOScheduler(timezone=zone)
	scheduler.add_job(
		job,
		CronTrigger.from_crontab(settings.refresh_cron, timezone=zone),
		id=REFRESH_JOB_ID,
		name="Investment balance refresh",
		replace_existing=True,
		max_instances=1,
		coalesce=True,
	)
	return scheduler


def log_next_run(scheduler: AsyncIOScheduler) -> None:
	job = scheduler.get_job(REFRESH_JOB_ID)
	next_run = getattr(job, "next_run_time", None) if job is not None else None
	logger.info("Started job to update Questrade balance. Next run on %s.", next_run)
