from __future__ import annotations

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
import requests

from energy_trends.errors import NotificationDeliveryError
from energy_trends.goal_crossing import GoalCrossingDirection, detect_crossing
from energy_trends.models import ProjectionSnapshot, ResolvedEntry
from energy_trends.notifications import (
    LoggingNotificationScheduler,
    NotificationScheduler,
    ProjectionNotifier,
    WebhookNotificationScheduler,
    format_body,
    format_title,
)

NOW = datetime(2024, 1, 20, 15, 40)


def make_entry(today_total: float, as_of: datetime = NOW, authorized: bool = True) -> ResolvedEntry:
    # Average burns 503 more after 15:40
    return ResolvedEntry(
        as_of=as_of,
        authorized=authorized,
        today_total=today_total,
        average_at_as_of=510.0,
        projected_total=1013.0,
        goal=900.0,
    )


class FailingScheduler(NotificationScheduler):
    async def schedule_notification(self, event):
        raise NotificationDeliveryError("channel closed")


@pytest.fixture
def scheduler() -> LoggingNotificationScheduler:
    return LoggingNotificationScheduler()


@pytest.fixture
def notifier(memory_store, scheduler) -> ProjectionNotifier:
    return ProjectionNotifier(memory_store, scheduler)


def test_titles_and_bodies():
    up = detect_crossing(800.0, 1053.4, 900.0, detected_at=NOW)
    down = detect_crossing(1000.0, 850.0, 900.0, detected_at=NOW)

    assert format_title(up) == "On Track!"
    assert format_body(up) == "You're now projected to reach your goal! Projected: 1053 cal / Goal: 900 cal"
    assert format_title(down) == "Falling Behind"
    assert format_body(down) == "Your pace has slowed. Projected: 850 cal / Goal: 900 cal"


@pytest.mark.asyncio
async def test_first_entry_only_records_baseline(notifier, memory_store, scheduler):
    event = await notifier.handle(make_entry(550.0))

    assert event is None
    assert scheduler.delivered == []
    assert memory_store.read_projection() == ProjectionSnapshot(1053.0, NOW)


@pytest.mark.asyncio
async def test_crossing_above_goal_notifies(notifier, memory_store, scheduler):
    memory_store.save_projection(ProjectionSnapshot(850.0, NOW - timedelta(minutes=15)))

    event = await notifier.handle(make_entry(550.0))

    assert event.direction is GoalCrossingDirection.BELOW_TO_ABOVE
    assert scheduler.delivered[0]["title"] == "On Track!"
    assert memory_store.read_projection().projected_total == 1053.0


@pytest.mark.asyncio
async def test_crossing_below_goal_notifies(notifier, memory_store, scheduler):
    memory_store.save_projection(ProjectionSnapshot(1053.0, NOW - timedelta(minutes=15)))

    event = await notifier.handle(make_entry(300.0))

    assert event.direction is GoalCrossingDirection.ABOVE_TO_BELOW
    assert scheduler.delivered[0]["title"] == "Falling Behind"


@pytest.mark.asyncio
async def test_previous_day_projection_is_not_compared(notifier, memory_store, scheduler):
    memory_store.save_projection(ProjectionSnapshot(100.0, NOW - timedelta(days=1)))

    event = await notifier.handle(make_entry(550.0))

    assert event is None
    assert scheduler.delivered == []


@pytest.mark.asyncio
async def test_unauthorized_entry_is_skipped(notifier, memory_store):
    memory_store.save_projection(ProjectionSnapshot(850.0, NOW))

    assert await notifier.handle(ResolvedEntry.unauthorized(NOW)) is None
    assert memory_store.read_projection().projected_total == 850.0


@pytest.mark.asyncio
async def test_delivery_failure_is_logged_and_state_persisted(memory_store, caplog):
    notifier = ProjectionNotifier(memory_store, FailingScheduler())
    memory_store.save_projection(ProjectionSnapshot(850.0, NOW - timedelta(minutes=15)))

    event = await notifier.handle(make_entry(550.0))

    assert event is not None
    assert "Failed to schedule notification" in caplog.text
    assert memory_store.read_projection().projected_total == 1053.0


def test_clear_for_new_day(notifier, memory_store):
    memory_store.save_projection(ProjectionSnapshot(850.0, NOW))

    notifier.clear_for_new_day()

    assert memory_store.read_projection() is None


@pytest.mark.asyncio
async def test_webhook_posts_payload():
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=204, text="")
    scheduler = WebhookNotificationScheduler("https://hooks.example/energy", session=session)
    event = detect_crossing(850.0, 1053.0, 900.0, detected_at=NOW)

    await scheduler.schedule_notification(event)

    _, kwargs = session.post.call_args
    assert session.post.call_args[0][0] == "https://hooks.example/energy"
    assert kwargs["json"]["title"] == "On Track!"
    assert kwargs["json"]["event"]["direction"] == "below_to_above"


@pytest.mark.asyncio
async def test_webhook_errors_become_delivery_errors():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")
    scheduler = WebhookNotificationScheduler("https://hooks.example/energy", session=session)
    event = detect_crossing(850.0, 1053.0, 900.0, detected_at=NOW)

    with pytest.raises(NotificationDeliveryError):
        await scheduler.schedule_notification(event)


@pytest.mark.asyncio
async def test_webhook_http_error_status():
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=500, text="boom")
    scheduler = WebhookNotificationScheduler("https://hooks.example/energy", session=session)
    event = detect_crossing(850.0, 1053.0, 900.0, detected_at=NOW)

    with pytest.raises(NotificationDeliveryError):
        await scheduler.schedule_notification(event)
