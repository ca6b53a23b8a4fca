from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Iterable, List, Optional, Sequence

from shared.config import DEFAULT_DROP_THRESHOLD_SECONDS
from shared.contracts.models import (
    Prescription,
    ReminderContent,
    ReminderPayload,
    ScheduleResult,
    TimeSlot,
)

from .errors import ensure_date_range
from .intake_logs import iter_treatment_days
from .permissions import PermissionGate
from .platform import Clock, NotificationPlatform, utc_now


logger = logging.getLogger(__name__)

REMINDER_TITLE = "💊 Medication Reminder"


@dataclass(frozen=True)
class ReminderCandidate:
    prescription_id: str
    schedule_slot_id: str
    fire_instant: datetime
    delay_seconds: int
    content: ReminderContent
    payload: ReminderPayload


def slot_id_for(prescription_id: str, slot: TimeSlot) -> str:
    slot_id = getattr(slot, "id", None)
    return slot_id or f"{prescription_id}-{slot.time}"


def tablet_phrase(count: int) -> str:
    return f"{count} tablet{'s' if count > 1 else ''}"


def build_content(medicine_name: str, dose: str, tablet_count: int) -> ReminderContent:
    return ReminderContent(
        title=REMINDER_TITLE,
        body=f"Time to take {medicine_name} ({dose} mg, {tablet_phrase(tablet_count)})",
    )


def _aware(moment: datetime, tz: tzinfo) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment


def plan_reminders(
    prescription: Prescription,
    slots: Iterable[TimeSlot],
    now: datetime,
    tz: tzinfo = timezone.utc,
    drop_threshold_seconds: int = DEFAULT_DROP_THRESHOLD_SECONDS,
) -> tuple[List[ReminderCandidate], int]:
    """Expand the treatment window into reminder candidates.

    Returns the surviving candidates in (date, time) order and the number
    dropped because they would fire no more than ``drop_threshold_seconds``
    after ``now``. A naive ``now`` is read in ``tz``.
    """
    ensure_date_range(prescription.start_date, prescription.end_date)
    now = _aware(now, tz)
    active = sorted((slot for slot in slots if slot.is_active), key=lambda slot: slot.time)

    candidates: List[ReminderCandidate] = []
    dropped = 0
    for day in iter_treatment_days(prescription.start_date, prescription.end_date):
        for slot in active:
            fire_instant = datetime.combine(day, slot.time_of_day, tzinfo=tz)
            # Same-zone subtraction ignores offset changes, so compare in UTC.
            remaining = (fire_instant.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()
            if remaining <= drop_threshold_seconds:
                dropped += 1
                logger.debug(
                    "Dropping reminder for %s at %s %s (%.0fs from now)",
                    prescription.id,
                    day.isoformat(),
                    slot.time,
                    remaining,
                )
                continue

            schedule_slot_id = slot_id_for(prescription.id, slot)
            candidates.append(
                ReminderCandidate(
                    prescription_id=prescription.id,
                    schedule_slot_id=schedule_slot_id,
                    fire_instant=fire_instant,
                    delay_seconds=max(1, math.floor(remaining)),
                    content=build_content(prescription.medicine_name, prescription.dose, slot.tablet_count),
                    payload=ReminderPayload(
                        prescription_id=prescription.id,
                        schedule_slot_id=schedule_slot_id,
                        date=day.isoformat(),
                        medicine_name=prescription.medicine_name,
                        dose=prescription.dose,
                        time=slot.time,
                        tablet_count=slot.tablet_count,
                    ),
                )
            )
    return candidates, dropped


class ReminderScheduler:
    """Turns a prescription into platform notifications, one per future dose."""

    def __init__(
        self,
        platform: NotificationPlatform,
        permission_gate: PermissionGate,
        tz: tzinfo = timezone.utc,
        drop_threshold_seconds: int = DEFAULT_DROP_THRESHOLD_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        if drop_threshold_seconds < 0:
            raise ValueError("drop_threshold_seconds must be >= 0")
        self.platform = platform
        self.permission_gate = permission_gate
        self.tz = tz
        self.drop_threshold_seconds = drop_threshold_seconds
        self.clock = clock

    def schedule_reminders_for_prescription(
        self,
        prescription: Prescription,
        slots: Sequence[TimeSlot],
        now: Optional[datetime] = None,
    ) -> ScheduleResult:
        ensure_date_range(prescription.start_date, prescription.end_date)
        if not self.permission_gate.is_granted():
            logger.info("Skipping reminders for %s: notification permission not granted", prescription.id)
            return ScheduleResult(prescription_id=prescription.id, permission_granted=False)

        now = now or self.clock()
        candidates, dropped = plan_reminders(
            prescription,
            slots,
            now=now,
            tz=self.tz,
            drop_threshold_seconds=self.drop_threshold_seconds,
        )

        scheduled_ids: List[str] = []
        failures = 0
        for candidate in candidates:
            try:
                notification_id = self.platform.schedule_after_delay(
                    candidate.delay_seconds,
                    candidate.content,
                    candidate.payload.model_dump(),
                )
            except Exception:
                failures += 1
                logger.exception(
                    "Could not schedule reminder for %s on %s at %s",
                    candidate.prescription_id,
                    candidate.payload.date,
                    candidate.payload.time,
                )
                continue
            scheduled_ids.append(notification_id)

        if failures:
            logger.warning(
                "Scheduled %d of %d reminders for %s (%d failed)",
                len(scheduled_ids),
                len(candidates),
                prescription.id,
                failures,
            )
        else:
            logger.info(
                "Scheduled %d reminders for %s %s (%d dropped as past or imminent)",
                len(scheduled_ids),
                prescription.medicine_name,
                prescription.id,
                dropped,
            )
        return ScheduleResult(
            prescription_id=prescription.id,
            scheduled_ids=scheduled_ids,
            failures=failures,
            dropped=dropped,
        )
