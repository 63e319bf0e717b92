from __future__ import annotations

import asyncio
import signal
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from fpl_sync.collector.api_client import FPLClient
from fpl_sync.jobs.sync import run_sync
from fpl_sync.utils.config import ScheduleConfig, Settings, load_settings
from fpl_sync.utils.db import Store
from fpl_sync.utils.logging import get_logger, setup_logging


logger = get_logger(component="scheduler")

JOB_ID = "fpl_league_sync"


def _scheduler_tz(schedule: ScheduleConfig) -> ZoneInfo:
    """Only affects when the cron fires; stored timestamps stay UTC."""
    try:
        return ZoneInfo(schedule.timezone)
    except Exception:
        logger.warning("invalid_scheduler_timezone_fallback_utc", tz_name=schedule.timezone)
        return ZoneInfo("UTC")


def build_runner(*, settings: Settings, client: FPLClient, store: Store) -> Callable[[], Awaitable[None]]:
    async def _run() -> None:
        logger.info("job_started", job_id=JOB_ID)
        try:
            summary = await run_sync(settings=settings, client=client, store=store)
        except Exception as e:
            # Next tick tries again; the scheduler itself keeps running.
            logger.exception("job_failed", job_id=JOB_ID, err=str(e))
            return
        logger.info(
            "job_complete",
            job_id=JOB_ID,
            period=summary.period,
            managers=summary.managers_processed,
            duration_ms=summary.duration_ms,
        )

    return _run


def build_scheduler(*, settings: Settings, runner: Callable[[], Awaitable[None]]) -> AsyncIOScheduler:
    tz = _scheduler_tz(settings.schedule)
    scheduler = AsyncIOScheduler(timezone=tz)
    trigger = CronTrigger.from_crontab(settings.schedule.cron, timezone=tz)
    scheduler.add_job(
        runner,
        trigger=trigger,
        id=JOB_ID,
        name=JOB_ID,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info("job_scheduled", job_id=JOB_ID, trigger=str(trigger))
    return scheduler


async def amain() -> int:
    setup_logging()
    settings = load_settings()
    if not settings.schedule.enabled:
        logger.warning("scheduler_disabled", hint="set schedule.enabled: true in the config file")
        return 0

    store = Store.from_settings(settings)
    client = FPLClient.from_config(settings.upstream)
    scheduler = build_scheduler(settings=settings, runner=build_runner(settings=settings, client=client, store=store))

    stop_event = asyncio.Event()

    def _stop(*_args: Any) -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop)
        except NotImplementedError:
            signal.signal(sig, lambda *_: _stop())

    try:
        scheduler.start()
        logger.info("scheduler_started")
        await stop_event.wait()
    finally:
        scheduler.shutdown(wait=False)
        await client.aclose()
        store.close()
        logger.info("scheduler_stopped")

    return 0


def main() -> int:
    return asyncio.run(amain())


if __name__ == "__main__":
    raise SystemExit(main())
