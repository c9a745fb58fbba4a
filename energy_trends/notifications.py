"""
Projection Notifications
Turns goal crossings of the projected end-of-day total into user notifications
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from .cache_store import LayeredCacheStore
from .errors import NotificationDeliveryError
from .goal_crossing import GoalCrossingDirection, GoalCrossingEvent, detect_crossing
from .models import ProjectionSnapshot, ResolvedEntry

logger = logging.getLogger(__name__)

NOTIFICATION_ID = "projection-goal-crossing"
NOTIFICATION_CATEGORY = "GOAL_CROSSING"


def format_title(event: GoalCrossingEvent) -> str:
    if event.direction is GoalCrossingDirection.BELOW_TO_ABOVE:
        return "On Track!"
    return "Falling Behind"


def format_body(event: GoalCrossingEvent) -> str:
    projected = int(event.projected_total)
    goal = int(event.goal)
    if event.direction is GoalCrossingDirection.BELOW_TO_ABOVE:
        return f"You're now projected to reach your goal! Projected: {projected} cal / Goal: {goal} cal"
    return f"Your pace has slowed. Projected: {projected} cal / Goal: {goal} cal"


def notification_payload(event: GoalCrossingEvent) -> Dict[str, Any]:
    return {
        "id": NOTIFICATION_ID,
        "category": NOTIFICATION_CATEGORY,
        "title": format_title(event),
        "body": format_body(event),
        "event": event.to_dict(),
    }


class NotificationScheduler(ABC):
    """Delivery channel for goal-crossing notifications"""

    @abstractmethod
    async def schedule_notification(self, event: GoalCrossingEvent) -> None:
        """Deliver ``event`` immediately, replacing any earlier crossing notice"""


class LoggingNotificationScheduler(NotificationScheduler):
    """Writes notifications to the log and remembers them for inspection"""

    def __init__(self):
        self.delivered = []

    async def schedule_notification(self, event: GoalCrossingEvent) -> None:
        payload = notification_payload(event)
        self.delivered.append(payload)
        logger.info(f"Notification: {payload['title']} - {payload['body']}")


class WebhookNotificationScheduler(NotificationScheduler):
    """POSTs notifications as JSON to a webhook"""

    def __init__(self, url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, payload: Dict[str, Any]) -> None:
        response = self.session.post(self.url, json=payload, timeout=self.timeout)
        if response.status_code >= 400:
            raise NotificationDeliveryError(
                f"Webhook returned {response.status_code}: {response.text[:200]}"
            )

    async def schedule_notification(self, event: GoalCrossingEvent) -> None:
        payload = notification_payload(event)
        try:
            await asyncio.to_thread(self._post, payload)
        except requests.RequestException as e:
            raise NotificationDeliveryError(f"Webhook delivery failed: {e}") from e
        logger.info(f"Scheduled goal crossing notification: {event.direction.value}")


def scheduler_from_settings(settings) -> NotificationScheduler:
    if settings.notify_webhook_url:
        return WebhookNotificationScheduler(settings.notify_webhook_url)
    return LoggingNotificationScheduler()


class ProjectionNotifier:
    """Compares each entry's projection with the last one and notifies on goal crossings"""

    def __init__(self, store: LayeredCacheStore, scheduler: NotificationScheduler):
        self.store = store
        self.scheduler = scheduler

    def clear_for_new_day(self) -> None:
        self.store.clear_projection()
        logger.info("Cleared projection state, new day baseline")

    async def handle(self, entry: ResolvedEntry) -> Optional[GoalCrossingEvent]:
        """
        Detect a goal crossing for ``entry`` and deliver it

        Args:
            entry: Freshly resolved entry

        Returns:
            The delivered (or attempted) event, None when nothing crossed
        """
        if not entry.authorized:
            return None

        current = entry.projected_end_of_day
        previous_snapshot = self.store.load_projection(entry.as_of)
        previous = previous_snapshot.projected_total if previous_snapshot is not None else None

        event = detect_crossing(previous, current, entry.goal, detected_at=entry.as_of)
        if event is not None:
            try:
                await self.scheduler.schedule_notification(event)
            except NotificationDeliveryError as e:
                logger.error(f"Failed to schedule notification: {e}")

        self.store.save_projection(ProjectionSnapshot(projected_total=current, observed_at=entry.as_of))
        return event
