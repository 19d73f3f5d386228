from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from reminders import ReminderScheduler


@dataclass
class ScheduledReminder:
    deliver_at: datetime
    payload: dict


@dataclass
class FakeReminders(ReminderScheduler):
    """
    In-memory reminder queue for tests.

    Records every ``schedule`` call; with ``fail`` set it raises instead,
    the way a broken job store would.
    """

    scheduled: List[ScheduledReminder] = field(default_factory=list)
    fail: bool = False

    def schedule(self, deliver_at: datetime, payload: dict) -> str:
        if self.fail:
            raise RuntimeError("job store unavailable")
        self.scheduled.append(ScheduledReminder(deliver_at=deliver_at, payload=payload))
        return f"fake-{len(self.scheduled)}"


@dataclass
class RecordingBroker:
    """Broker stand-in that keeps (topic, message) pairs; ``broken`` topics raise."""

    published: List[Tuple[str, dict]] = field(default_factory=list)
    broken: Optional[set] = None

    def publish(self, topic: str, message: dict) -> int:
        if self.broken and topic in self.broken:
            raise ConnectionError(f"{topic} unreachable")
        self.published.append((topic, message))
        return 1

    def topics(self) -> List[str]:
        return [topic for topic, _ in self.published]
