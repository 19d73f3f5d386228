"""
Live task-change events.

``ChannelBroker`` is a small in-process pub/sub: topics are plain strings
(``tasks.user.{id}``), subscribers are WebSocket connections waiting on an
asyncio queue. Publishing happens from worker threads (sync FastAPI routes,
the reminder scheduler), so delivery goes through ``call_soon_threadsafe``.

``Notifier`` turns a task mutation into one ``TaskUpdated`` message per
distinct participant and hands due-date reminders to a ``ReminderScheduler``.
"""

import asyncio
import logging
import threading
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional

from schemas import TaskChangeEvent, TaskReminder

logger = logging.getLogger(__name__)

TASK_UPDATED = "TaskUpdated"
TASK_DUE_REMINDER = "TaskDueReminder"
ACTIONS = ("created", "updated", "deleted")
REMINDER_LEAD_TIME = timedelta(days=1)


def user_channel(user_id: int) -> str:
    return f"tasks.user.{user_id}"


def recipients(task) -> List[int]:
    """Distinct, non-null participant ids: owner first, then assignee."""
    ids = []
    for user_id in (task.owner_id, task.assigned_to_id):
        if user_id and user_id not in ids:
            ids.append(user_id)
    return ids


class Subscription:
    def __init__(self, topic: str, loop: asyncio.AbstractEventLoop):
        self.topic = topic
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, message: dict):
        self._loop.call_soon_threadsafe(self._queue.put_nowait, message)

    async def get(self) -> dict:
        return await self._queue.get()


class ChannelBroker:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Subscription]] = defaultdict(list)

    def subscribe(self, topic: str) -> Subscription:
        """Register the running event loop's caller on ``topic``."""
        subscription = Subscription(topic, asyncio.get_running_loop())
        with self._lock:
            self._subscribers[topic].append(subscription)
        logger.debug("Subscribed to %s", topic)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        with self._lock:
            subs = self._subscribers.get(subscription.topic, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscribers.pop(subscription.topic, None)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    def publish(self, topic: str, message: dict) -> int:
        """Deliver ``message`` to every current subscriber of ``topic``.

        Returns:
            int: number of subscribers the message was handed to.
        """
        with self._lock:
            subs = list(self._subscribers.get(topic, []))
        delivered = 0
        for subscription in subs:
            try:
                subscription.deliver(message)
                delivered += 1
            except RuntimeError:
                # Event loop of a dead connection is already closed
                logger.warning("Dropping stale subscriber on %s", topic)
                self.unsubscribe(subscription)
        return delivered


def envelope(event: str, topic: str, data: dict) -> dict:
    return {"event": event, "channel": topic, "data": data}


class Notifier:
    def __init__(self, broker: ChannelBroker, reminders=None):
        self.broker = broker
        self.reminders = reminders

    def task_changed(self, task, action: str) -> int:
        """Fan a ``TaskUpdated`` event out to the owner and assignee channels."""
        if action not in ACTIONS:
            raise ValueError(f"unknown action {action!r}")

        event = TaskChangeEvent(
            id=task.id,
            title=task.title,
            status=getattr(task.status, "value", task.status),
            action=action,
        ).model_dump()

        delivered = 0
        for user_id in recipients(task):
            topic = user_channel(user_id)
            try:
                delivered += self.broker.publish(topic, envelope(TASK_UPDATED, topic, event))
            except Exception:
                logger.exception("Failed to publish %s for task %s on %s", action, task.id, topic)
        logger.info("Task %s %s, event delivered to %s subscriber(s)", task.id, action, delivered)
        return delivered

    def schedule_due_reminder(self, task) -> Optional[str]:
        """Queue a reminder for the assignee one day before the due date.

        Never raises: a reminder that cannot be queued must not undo the
        mutation that asked for it.
        """
        if self.reminders is None or task.due_date is None or task.assigned_to_id is None:
            return None

        deliver_at = task.due_date - REMINDER_LEAD_TIME
        payload = TaskReminder(
            task_id=task.id,
            user_id=task.assigned_to_id,
            title=task.title,
            due_date=task.due_date.isoformat(),
        ).model_dump()
        try:
            job_id = self.reminders.schedule(deliver_at, payload)
        except Exception:
            logger.error("Could not schedule reminder for task %s", task.id, exc_info=True)
            return None
        logger.info("Reminder for task %s scheduled at %s (job %s)", task.id, deliver_at, job_id)
        return job_id


# Process-wide broker shared by the HTTP routes, the WebSocket channel and reminder jobs
broker = ChannelBroker()
