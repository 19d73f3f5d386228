import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime

from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler

from config import SCHEDULER_TIMEZONE
from notifier import TASK_DUE_REMINDER, broker, envelope, user_channel

logger = logging.getLogger(__name__)


class ReminderScheduler(ABC):
    """Delayed delivery of a reminder payload."""

    @abstractmethod
    def schedule(self, deliver_at: datetime, payload: dict) -> str:
        """Queue ``payload`` for delivery at ``deliver_at`` (naive UTC), return the job id."""


class APSchedulerReminders(ReminderScheduler):
    """
    Reminder queue backed by APScheduler.

    Jobs live in the application database (SQLAlchemyJobStore), so reminders
    survive a restart. ``misfire_grace_time=None`` makes a reminder whose time
    passed while the process was down fire as soon as the scheduler is back.
    """

    def __init__(self, engine):
        self.scheduler = BackgroundScheduler(
            jobstores={"default": SQLAlchemyJobStore(engine=engine)},
            timezone=SCHEDULER_TIMEZONE,
            job_defaults={"misfire_grace_time": None, "coalesce": True},
        )

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Reminder scheduler started")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reminder scheduler stopped")

    def schedule(self, deliver_at: datetime, payload: dict) -> str:
        # Every reminder gets its own job; editing a task never replaces an earlier one
        job = self.scheduler.add_job(
            "reminders:deliver_reminder",
            "date",
            run_date=deliver_at,
            args=[payload],
            id=f"reminder_{payload['task_id']}_{uuid.uuid4().hex}",
        )
        return job.id


def deliver_reminder(payload: dict) -> int:
    """Job body: push the reminder onto the assignee's private channel."""
    topic = user_channel(payload["user_id"])
    logger.info(
        "Reminder: task %s (%r) is due on %s, notifying user %s",
        payload["task_id"], payload["title"], payload["due_date"], payload["user_id"],
    )
    try:
        return broker.publish(topic, envelope(TASK_DUE_REMINDER, topic, payload))
    except Exception as e:
        logger.error(f"Error delivering reminder for task {payload['task_id']}: {e}", exc_info=True)
        return 0
