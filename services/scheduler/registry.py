from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from shared.contracts.enums import ReminderState
from shared.contracts.models import ScheduledReminder

from .errors import ReminderRegistryError
from .platform import Clock, NotificationPlatform, PlatformNotification, utc_now


logger = logging.getLogger(__name__)


class ReminderRegistry:
    """Prescription-aware view over the platform's notification store.

    The store cannot be queried by prescription, so every scoped operation
    lists everything and filters on the payload.
    """

    def __init__(self, platform: NotificationPlatform, clock: Clock = utc_now) -> None:
        self.platform = platform
        self.clock = clock

    def list_all(self, now: Optional[datetime] = None) -> List[ScheduledReminder]:
        now = now or self.clock()
        reminders = [self._to_reminder(item, now) for item in self.platform.list_scheduled()]
        reminders.sort(key=lambda reminder: reminder.remaining_seconds)
        return reminders

    def count(self) -> int:
        return len(self.platform.list_scheduled())

    def cancel(self, notification_id: str) -> None:
        self.platform.cancel(notification_id)
        logger.info("Cancelled reminder %s", notification_id)

    def cancel_by_prescription(self, prescription_id: str) -> List[str]:
        cancelled: List[str] = []
        for item in self.platform.list_scheduled():
            if item.data.get("prescription_id") != prescription_id:
                continue
            try:
                self.platform.cancel(item.id)
            except Exception:
                logger.exception("Could not cancel reminder %s of prescription %s", item.id, prescription_id)
                continue
            cancelled.append(item.id)

        logger.info("Cancelled %d reminders for prescription %s", len(cancelled), prescription_id)
        return cancelled

    def cancel_all(self) -> int:
        """Clear every reminder or raise with whatever is still registered."""
        before = [item.id for item in self.platform.list_scheduled()]
        try:
            self.platform.cancel_all()
        except Exception as exc:
            remaining = [item.id for item in self.platform.list_scheduled()]
            logger.error("Clearing all reminders failed, %d still scheduled", len(remaining))
            raise ReminderRegistryError(f"could not clear reminders: {exc}", remaining=remaining) from exc

        remaining = [item.id for item in self.platform.list_scheduled()]
        if remaining:
            logger.error("Clearing all reminders left %d behind", len(remaining))
            raise ReminderRegistryError("reminders survived a clear-all", remaining=remaining)

        logger.info("Cancelled all %d scheduled reminders", len(before))
        return len(before)

    def cancel_near_immediate(self, threshold_seconds: float) -> List[str]:
        """Cancel reminders due in less than ``threshold_seconds``; later ones are untouched."""
        cancelled: List[str] = []
        for item in self.platform.list_scheduled():
            if item.remaining_seconds >= threshold_seconds:
                continue
            try:
                self.platform.cancel(item.id)
            except Exception:
                logger.exception("Could not cancel near-immediate reminder %s", item.id)
                continue
            cancelled.append(item.id)

        if cancelled:
            logger.warning("Cancelled %d reminders firing within %ss", len(cancelled), threshold_seconds)
        return cancelled

    def for_prescription(self, prescription_id: str, now: Optional[datetime] = None) -> List[ScheduledReminder]:
        return [reminder for reminder in self.list_all(now) if reminder.prescription_id == prescription_id]

    def reminder_state(self, prescription_id: str) -> ReminderState:
        if any(item.data.get("prescription_id") == prescription_id for item in self.platform.list_scheduled()):
            return ReminderState.SCHEDULED
        return ReminderState.NO_REMINDERS

    @staticmethod
    def _to_reminder(item: PlatformNotification, now: datetime) -> ScheduledReminder:
        return ScheduledReminder(
            notification_id=item.id,
            prescription_id=item.data.get("prescription_id"),
            schedule_slot_id=item.data.get("schedule_slot_id"),
            fire_instant=now + timedelta(seconds=item.remaining_seconds),
            remaining_seconds=item.remaining_seconds,
            content=item.content,
            payload=item.data,
        )
