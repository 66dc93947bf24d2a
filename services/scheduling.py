"""Background jobs: event polling and the reminder sweep on APScheduler."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from services.dispatcher import EventDispatcher
from services.reminders import ReminderScheduler

logger = logging.getLogger(__name__)

POLL_JOB_ID = "poll-events"
REMINDER_JOB_ID = "reminders"


def build_scheduler(
    dispatcher: EventDispatcher,
    reminders: ReminderScheduler,
    poll_interval: float,
    reminder_interval: float,
) -> AsyncIOScheduler:
    """Create a scheduler with the polling and reminder jobs registered.

    Both jobs run once immediately after ``start()`` and then every interval.
    A job never overlaps with itself; missed runs collapse into one.
    """
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    now = datetime.now(timezone.utc)
    for job_id, func, interval in (
        (POLL_JOB_ID, dispatcher.tick, poll_interval),
        (REMINDER_JOB_ID, reminders.tick, reminder_interval),
    ):
        scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=interval, timezone=timezone.utc),
            id=job_id,
            name=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=now,
        )
        logger.info("Scheduled %s every %ss", job_id, interval)
    return scheduler
