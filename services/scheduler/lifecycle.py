from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Dict, List, Optional

from app.db.store import PrescriptionStore, group_by_date
from shared.contracts.enums import IntakeStatus, ReminderState
from shared.contracts.models import (
    CalendarEntry,
    CreateMedicationResult,
    IntakeLogEntry,
    Prescription,
    PrescriptionFormData,
)

from .errors import ensure_date_range
from .intake_logs import generate_intake_logs
from .platform import Clock, utc_now
from .registry import ReminderRegistry
from .reminders import ReminderScheduler


logger = logging.getLogger(__name__)


class PrescriptionLifecycleController:
    """Create, delete and intake-status flows for a prescription.

    Reminders move NoReminders -> Scheduled on create and back to
    NoReminders on delete. Intake status updates never touch reminders.
    """

    def __init__(
        self,
        store: PrescriptionStore,
        scheduler: ReminderScheduler,
        registry: ReminderRegistry,
        log_generator: Callable[..., List[IntakeLogEntry]] = generate_intake_logs,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.registry = registry
        self.log_generator = log_generator
        self.clock = clock

    def create_medication(
        self,
        user_id: str,
        form_data: PrescriptionFormData,
        now: Optional[dt.datetime] = None,
    ) -> CreateMedicationResult:
        ensure_date_range(form_data.start_date, form_data.end_date)

        prescription = self.store.create_prescription(user_id, form_data)
        schedules = self.store.create_schedule_slots(prescription.id, form_data.active_slots)
        logs = self.log_generator(
            prescription.id,
            user_id,
            schedules,
            prescription.start_date,
            prescription.end_date,
        )
        self.store.bulk_insert_intake_logs(logs)

        # Logs are durable from here on; reminders are best effort.
        reminders = self.scheduler.schedule_reminders_for_prescription(prescription, schedules, now=now)
        if not reminders.permission_granted:
            logger.info("Created %s without reminders: notifications disabled", prescription.id)

        return CreateMedicationResult(
            prescription=prescription,
            schedules=schedules,
            total_doses_created=len(logs),
            reminders=reminders,
            reminder_state=reminders.reminder_state,
        )

    def delete_medication(self, prescription_id: str) -> List[str]:
        cancelled = self.registry.cancel_by_prescription(prescription_id)
        self.store.delete_prescription(prescription_id)
        logger.info("Deleted prescription %s and %d reminders", prescription_id, len(cancelled))
        return cancelled

    def set_intake_status(
        self,
        prescription_id: str,
        schedule_slot_id: str,
        on: dt.date,
        status: IntakeStatus,
        taken_at: Optional[dt.datetime] = None,
    ) -> IntakeLogEntry:
        if status == IntakeStatus.TAKEN and taken_at is None:
            taken_at = self.clock()
        return self.store.update_intake_log(prescription_id, schedule_slot_id, on, status, taken_at)

    def reminder_state(self, prescription_id: str) -> ReminderState:
        return self.registry.reminder_state(prescription_id)

    def list_medications(self, user_id: str) -> List[Prescription]:
        return self.store.list_prescriptions(user_id)

    def calendar_summary(self, user_id: str, start_date: dt.date, end_date: dt.date) -> Dict[str, List[CalendarEntry]]:
        ensure_date_range(start_date, end_date)
        return group_by_date(self.store.calendar_entries(user_id, start_date, end_date))

    def calendar_for_date(self, user_id: str, on: dt.date) -> List[CalendarEntry]:
        return self.store.calendar_entries(user_id, on, on)
