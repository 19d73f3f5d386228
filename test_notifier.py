import asyncio
import threading
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine

import reminders as reminders_module
from fakes import FakeReminders, RecordingBroker
from notifier import ChannelBroker, Notifier, recipients, user_channel
from reminders import APSchedulerReminders, ReminderScheduler, deliver_reminder


def _task(**fields):
    values = {"id": 1, "title": "Write report", "status": "pending", "owner_id": 1, "assigned_to_id": None, "due_date": None}
    values.update(fields)
    return SimpleNamespace(**values)


def test_user_channel_name():
    assert user_channel(12) == "tasks.user.12"


@pytest.mark.parametrize("owner_id,assignee_id,expected", [
    (1, None, [1]),
    (1, 1, [1]),
    (1, 2, [1, 2]),
])
def test_recipients_are_distinct_and_non_null(owner_id, assignee_id, expected):
    assert recipients(_task(owner_id=owner_id, assigned_to_id=assignee_id)) == expected


def test_task_changed_fans_out_once_per_participant():
    broker = RecordingBroker()
    Notifier(broker).task_changed(_task(owner_id=1, assigned_to_id=2), "updated")

    assert broker.topics() == ["tasks.user.1", "tasks.user.2"]
    topic, message = broker.published[0]
    assert message == {
        "event": "TaskUpdated",
        "channel": topic,
        "data": {"id": 1, "title": "Write report", "status": "pending", "action": "updated"},
    }


def test_task_changed_same_owner_and_assignee_delivers_once():
    broker = RecordingBroker()
    Notifier(broker).task_changed(_task(owner_id=3, assigned_to_id=3), "created")
    assert broker.topics() == ["tasks.user.3"]


def test_task_changed_keeps_going_when_one_channel_fails(caplog):
    broker = RecordingBroker(broken={"tasks.user.1"})
    Notifier(broker).task_changed(_task(owner_id=1, assigned_to_id=2), "deleted")

    assert broker.topics() == ["tasks.user.2"]
    assert "Failed to publish deleted" in caplog.text


def test_task_changed_rejects_unknown_action():
    with pytest.raises(ValueError):
        Notifier(RecordingBroker()).task_changed(_task(), "archived")


def test_reminder_goes_to_assignee_one_day_early():
    fake = FakeReminders()
    due = datetime(2031, 1, 15, 8, 30)

    job_id = Notifier(RecordingBroker(), fake).schedule_due_reminder(_task(owner_id=1, assigned_to_id=5, due_date=due))

    assert job_id == "fake-1"
    assert fake.scheduled[0].deliver_at == datetime(2031, 1, 14, 8, 30)
    assert fake.scheduled[0].payload == {
        "task_id": 1,
        "user_id": 5,
        "title": "Write report",
        "due_date": "2031-01-15T08:30:00",
    }


@pytest.mark.parametrize("fields", [
    {"assigned_to_id": None, "due_date": datetime(2031, 1, 1)},
    {"assigned_to_id": 2, "due_date": None},
])
def test_no_reminder_without_due_date_and_assignee(fields):
    fake = FakeReminders()
    assert Notifier(RecordingBroker(), fake).schedule_due_reminder(_task(**fields)) is None
    assert fake.scheduled == []


def test_reminder_failure_is_logged_not_raised(caplog):
    fake = FakeReminders(fail=True)
    result = Notifier(RecordingBroker(), fake).schedule_due_reminder(
        _task(assigned_to_id=2, due_date=datetime(2031, 1, 1))
    )
    assert result is None
    assert "Could not schedule reminder for task 1" in caplog.text


# --- ChannelBroker ---

def test_broker_delivers_published_messages_across_threads_in_order():
    broker = ChannelBroker()

    async def scenario():
        subscription = broker.subscribe("tasks.user.1")

        def publish_all():
            for n in range(5):
                broker.publish("tasks.user.1", {"n": n})

        worker = threading.Thread(target=publish_all)
        worker.start()
        worker.join()
        return [await asyncio.wait_for(subscription.get(), timeout=1) for _ in range(5)]

    assert asyncio.run(scenario()) == [{"n": n} for n in range(5)]


def test_broker_only_reaches_subscribers_of_the_topic():
    broker = ChannelBroker()

    async def scenario():
        mine = broker.subscribe("tasks.user.1")
        broker.subscribe("tasks.user.2")
        assert broker.publish("tasks.user.1", {"hello": 1}) == 1
        assert broker.publish("tasks.user.9", {"nobody": 1}) == 0
        broker.unsubscribe(mine)
        assert broker.subscriber_count("tasks.user.1") == 0
        assert broker.subscriber_count("tasks.user.2") == 1

    asyncio.run(scenario())


# --- reminders ---

def test_deliver_reminder_publishes_on_assignee_channel(monkeypatch):
    broker = RecordingBroker()
    monkeypatch.setattr(reminders_module, "broker", broker)

    deliver_reminder({"task_id": 4, "user_id": 9, "title": "Pay rent", "due_date": "2031-02-01T00:00:00"})

    assert broker.topics() == ["tasks.user.9"]
    assert broker.published[0][1]["event"] == "TaskDueReminder"
    assert broker.published[0][1]["data"]["title"] == "Pay rent"


def test_apscheduler_reminders_add_one_date_job_per_call():
    queue = APSchedulerReminders(create_engine("sqlite://"))
    deliver_at = datetime(2031, 6, 1, 12, 0)
    payload = {"task_id": 3, "user_id": 2, "title": "x", "due_date": "2031-06-02T12:00:00"}

    first = queue.schedule(deliver_at, payload)
    second = queue.schedule(deliver_at + timedelta(hours=1), payload)

    assert first != second
    assert first.startswith("reminder_3_")
    jobs = {job.id: job for job in queue.scheduler.get_jobs()}
    assert set(jobs) == {first, second}
    assert jobs[first].trigger.run_date.replace(tzinfo=None) == deliver_at
    assert list(jobs[first].args) == [payload]


def test_reminder_scheduler_requires_schedule():
    class Incomplete(ReminderScheduler):
        pass

    with pytest.raises(TypeError):
        Incomplete()
