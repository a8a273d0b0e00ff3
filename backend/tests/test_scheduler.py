from datetime import datetime
from zoneinfo import ZoneInfo

from home_api.services.scheduler import REFRESH_JOB_ID, build_refresh_scheduler
from home_api.settings import Settings

EDMONTON = ZoneInfo("America/Edmonton")


async def _noop() -> None:
	return None


def _refresh_trigger(settings: Settings):
	scheduler = build_refresh_scheduler(settings, _noop)
	job = scheduler.get_job(REFRESH_JOB_ID)
	assert job is not None
	return job


def test_refresh_job_is_registered_once_without_overlap() -> None:
	job = _refresh_trigger(Settings(_env_file=None))

	assert job.max_instances == 1
	assert job.coalesce is True


def test_refresh_runs_every_five_minutes_during_market_hours() -> None:
	trigger = _refresh_trigger(Settings(_env_file=None)).trigger

	morning = trigger.get_next_fire_time(None, datetime(2026, 3, 2, 7, 2, tzinfo=EDMONTON))
	afternoon = trigger.get_next_fire_time(None, datetime(2026, 3, 2, 16, 57, tzinfo=EDMONTON))

	assert morning == datetime(2026, 3, 2, 7, 5, tzinfo=EDMONTON)
	assert afternoon == datetime(2026, 3, 3, 7, 0, tzinfo=EDMONTON)


def test_refresh_schedule_follows_configured_cron() -> None:
	settings = Settings(_env_file=None, refresh_cron="0 9 * * *", timezone="UTC")
	trigger = _refresh_trigger(settings).trigger

	next_fire = trigger.get_next_fire_time(None, datetime(2026, 3, 2, 10, 0, tzinfo=ZoneInfo("UTC")))

	assert next_fire == datetime(2026, 3, 3, 9, 0, tzinfo=ZoneInfo("UTC"))
