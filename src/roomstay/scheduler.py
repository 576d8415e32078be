"""APScheduler setup for periodic tasks."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from roomstay.config import settings

logger = logging.getLogger(__name__)


def create_scheduler() -> BackgroundScheduler:
    """Create and configure the background scheduler."""
    from roomstay.modules.bookings import BookingManager
    from roomstay.modules.notifications import BookingNotifier

    scheduler = BackgroundScheduler()
    sched_config = settings.get("scheduler", {})

    bookings = BookingManager()
    notifier = BookingNotifier(scheduler)

    # Wire up event handlers
    notifier.setup_event_handlers()

    # Cancel bookings whose payment window elapsed (every 5 min by default)
    scheduler.add_job(
        bookings.expire_overdue_bookings,
        "interval",
        minutes=sched_config.get("expiry_sweep_interval", 5),
        id="expire_overdue_bookings",
        name="Expire Overdue Bookings",
        max_instances=1,
        coalesce=True,
    )

    # Close out finished stays (daily)
    scheduler.add_job(
        bookings.complete_past_bookings,
        "cron",
        hour=sched_config.get("completion_hour", 2),
        minute=0,
        id="complete_past_bookings",
        name="Complete Past Bookings",
    )

    # Check-in reminders for stays starting today or tomorrow (daily)
    scheduler.add_job(
        notifier.send_checkin_reminders,
        "cron",
        hour=sched_config.get("reminder_hour", 8),
        minute=0,
        id="checkin_reminders",
        name="Check-in Reminders",
    )

    logger.info("Scheduler configured with %d jobs", len(scheduler.get_jobs()))
    return scheduler
