"""Local-notification platform primitives.

The notification store belongs to the platform, not to this service; the
scheduler and registry only see the :class:`NotificationPlatform` protocol.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from shared.contracts.models import ReminderContent

from .errors import PlatformSchedulingError


logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
DeliveryCallback = Callable[[ReminderContent, Dict[str, Any]], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PlatformNotification:
    id: str
    content: ReminderContent
    data: Dict[str, Any]
    remaining_seconds: float


class NotificationPlatform(Protocol):
    def request_permission(self) -> bool: ...

    def schedule_after_delay(self, delay_seconds: int, content: ReminderContent, data: Dict[str, Any]) -> str: ...

    def cancel(self, notification_id: str) -> None: ...

    def cancel_all(self) -> None: ...

    def list_scheduled(self) -> List[PlatformNotification]: ...


@dataclass
class _PendingNotification:
    id: str
    content: ReminderContent
    data: Dict[str, Any]
    fire_at: datetime


@dataclass
class InMemoryNotificationPlatform:
    """Clock-driven notification store used in tests and local runs.

    Notifications whose fire time has passed are treated as delivered and
    leave the store, like a device consuming them.
    """

    clock: Clock = utc_now
    permission_granted: bool = True
    fail_when: Optional[Callable[[Dict[str, Any]], bool]] = None
    fail_cancel_all: bool = False
    calls: List[str] = field(default_factory=list)
    delivered: List[_PendingNotification] = field(default_factory=list)
    _pending: Dict[str, _PendingNotification] = field(default_factory=dict, repr=False)
    _ids: Any = field(default_factory=lambda: itertools.count(1), repr=False)
    _lock: Any = field(default_factory=RLock, repr=False)

    def request_permission(self) -> bool:
        self.calls.append("request_permission")
        return self.permission_granted

    def schedule_after_delay(self, delay_seconds: int, content: ReminderContent, data: Dict[str, Any]) -> str:
        self.calls.append("schedule_after_delay")
        if delay_seconds < 1:
            raise PlatformSchedulingError(f"delay must be at least 1 second, got {delay_seconds}")
        if self.fail_when is not None and self.fail_when(data):
            raise PlatformSchedulingError("platform rejected notification")

        with self._lock:
            notification_id = f"notif-{next(self._ids)}"
            self._pending[notification_id] = _PendingNotification(
                id=notification_id,
                content=content,
                data=dict(data),
                fire_at=self.clock() + timedelta(seconds=delay_seconds),
            )
        return notification_id

    def cancel(self, notification_id: str) -> None:
        self.calls.append("cancel")
        with self._lock:
            self._pending.pop(notification_id, None)

    def cancel_all(self) -> None:
        self.calls.append("cancel_all")
        if self.fail_cancel_all:
            raise PlatformSchedulingError("platform refused to clear notifications")
        with self._lock:
            self._pending.clear()

    def list_scheduled(self) -> List[PlatformNotification]:
        self.calls.append("list_scheduled")
        with self._lock:
            self._deliver_due()
            now = self.clock()
            return [
                PlatformNotification(
                    id=item.id,
                    content=item.content,
                    data=dict(item.data),
                    remaining_seconds=(item.fire_at - now).total_seconds(),
                )
                for item in sorted(self._pending.values(), key=lambda item: item.fire_at)
            ]

    def _deliver_due(self) -> None:
        now = self.clock()
        for notification_id in [key for key, item in self._pending.items() if item.fire_at <= now]:
            self.delivered.append(self._pending.pop(notification_id))


def log_delivery(content: ReminderContent, data: Dict[str, Any]) -> None:
    logger.info(
        "Reminder fired: %s for prescription %s (%s %s)",
        content.body,
        data.get("prescription_id"),
        data.get("date"),
        data.get("time"),
    )


class APSchedulerNotificationPlatform:
    """One ``DateTrigger`` job per notification on an APScheduler scheduler."""

    def __init__(
        self,
        scheduler: Optional[BackgroundScheduler] = None,
        deliver: Optional[DeliveryCallback] = None,
        clock: Clock = utc_now,
        permission_granted: bool = True,
    ) -> None:
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)
        self.deliver = deliver or log_delivery
        self.clock = clock
        self.permission_granted = permission_granted

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def request_permission(self) -> bool:
        return self.permission_granted

    def schedule_after_delay(self, delay_seconds: int, content: ReminderContent, data: Dict[str, Any]) -> str:
        if delay_seconds < 1:
            raise PlatformSchedulingError(f"delay must be at least 1 second, got {delay_seconds}")

        notification_id = uuid.uuid4().hex
        run_date = self.clock() + timedelta(seconds=delay_seconds)
        try:
            self.scheduler.add_job(
                self._fire,
                trigger=DateTrigger(run_date=run_date),
                id=notification_id,
                kwargs={"title": content.title, "body": content.body, "data": dict(data)},
                replace_existing=False,
            )
        except Exception as exc:
            raise PlatformSchedulingError(f"could not add reminder job: {exc}") from exc
        return notification_id

    def cancel(self, notification_id: str) -> None:
        try:
            self.scheduler.remove_job(notification_id)
        except JobLookupError:
            logger.debug("Reminder job %s already gone", notification_id)

    def cancel_all(self) -> None:
        self.scheduler.remove_all_jobs()

    def list_scheduled(self) -> List[PlatformNotification]:
        now = self.clock()
        notifications = []
        for job in self.scheduler.get_jobs():
            run_date = getattr(job, "next_run_time", None) or job.trigger.run_date
            notifications.append(
                PlatformNotification(
                    id=job.id,
                    content=ReminderContent(title=job.kwargs["title"], body=job.kwargs["body"]),
                    data=dict(job.kwargs["data"]),
                    remaining_seconds=(run_date - now).total_seconds(),
                )
            )
        notifications.sort(key=lambda item: item.remaining_seconds)
        return notifications

    def _fire(self, title: str, body: str, data: Dict[str, Any]) -> None:
        self.deliver(ReminderContent(title=title, body=body), data)
