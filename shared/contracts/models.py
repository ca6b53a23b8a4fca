from __future__ import annotations

import datetime as dt
import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .enums import IntakeStatus, MedicineForm, ReminderState


TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
_LOOSE_TIME = re.compile(r"^(\d{1,2}):(\d{2})$")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def normalize_time_of_day(value: Any) -> Any:
    """Pad single-digit hours ("8:00" -> "08:00") and accept ``datetime.time``."""
    if isinstance(value, dt.time):
        return value.strftime("%H:%M")
    if isinstance(value, str):
        match = _LOOSE_TIME.match(value.strip())
        if match:
            return f"{int(match.group(1)):02d}:{match.group(2)}"
        return value.strip()
    return value


def parse_form_date(value: Any) -> Any:
    """Accept ``YYYY-MM-DD`` as well as the ``MM/DD/YYYY`` form-picker format."""
    if isinstance(value, str):
        match = _US_DATE.match(value.strip())
        if match:
            month, day, year = match.groups()
            return f"{year}-{int(month):02d}-{int(day):02d}"
        return value.strip()
    return value


class TimeSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: str = Field(pattern=TIME_OF_DAY_PATTERN)
    tablet_count: int = Field(default=1, ge=0, validation_alias=AliasChoices("tablet_count", "number_of_tablets"))

    @field_validator("time", mode="before")
    @classmethod
    def _normalize_time(cls, value: Any) -> Any:
        return normalize_time_of_day(value)

    @property
    def time_of_day(self) -> dt.time:
        hours, minutes = self.time.split(":")
        return dt.time(int(hours), int(minutes))

    @property
    def is_active(self) -> bool:
        return self.tablet_count > 0


class PersistedSlot(TimeSlot):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    prescription_id: str


class PrescriptionFormData(BaseModel):
    """Create-medication payload.

    ``frequency`` is a mapping of ``HH:MM`` to tablet count so that a
    prescription can never carry two slots for the same time. A list of
    ``{"time": ..., "number_of_tablets": ...}`` items is also accepted; items
    without a time are dropped and, for duplicate times, the last item wins.
    """

    model_config = ConfigDict(extra="forbid")

    medicine_name: str = Field(min_length=1, validation_alias=AliasChoices("medicine_name", "medicine"))
    dose: str = Field(min_length=1, validation_alias=AliasChoices("dose", "dose_in_mg"))
    form: MedicineForm = MedicineForm.TABLET
    quantity: str = ""
    start_date: dt.date = Field(validation_alias=AliasChoices("start_date", "treatment_start_date"))
    end_date: dt.date = Field(validation_alias=AliasChoices("end_date", "treatment_end_date"))
    special_instructions: str | None = None
    frequency: dict[str, int] = Field(default_factory=dict)

    @field_validator("medicine_name", "dose", "quantity", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("special_instructions", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("form", mode="before")
    @classmethod
    def _parse_form(cls, value: Any) -> MedicineForm:
        return MedicineForm.parse(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any) -> Any:
        return parse_form_date(value)

    @field_validator("frequency", mode="before")
    @classmethod
    def _normalize_frequency(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            items = [{"time": key, "tablet_count": count} for key, count in value.items()]
        else:
            items = list(value)

        frequency: dict[str, int] = {}
        for item in items:
            if isinstance(item, TimeSlot):
                slot = item
            else:
                if not isinstance(item, dict):
                    raise ValueError(f"frequency items must be objects with a time, got {item!r}")
                if not item.get("time"):
                    continue
                slot = TimeSlot.model_validate(item)
            frequency[slot.time] = slot.tablet_count
        return dict(sorted(frequency.items()))

    @property
    def slots(self) -> list[TimeSlot]:
        return [TimeSlot(time=time, tablet_count=count) for time, count in sorted(self.frequency.items())]

    @property
    def active_slots(self) -> list[TimeSlot]:
        return [slot for slot in self.slots if slot.is_active]


class Prescription(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    medicine_name: str
    dose: str
    form: MedicineForm = MedicineForm.TABLET
    quantity: str = ""
    start_date: dt.date
    end_date: dt.date
    special_instructions: str | None = None
    created_at: dt.datetime | None = None


class IntakeLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    prescription_id: str
    schedule_slot_id: str
    user_id: str
    date: dt.date
    status: IntakeStatus = IntakeStatus.PENDING
    taken_at: dt.datetime | None = None


class ReminderContent(BaseModel):
    title: str
    body: str


class ReminderPayload(BaseModel):
    """Data carried inside a platform notification.

    The registry has no relational link back to prescriptions, so
    ``prescription_id`` and ``schedule_slot_id`` must always round-trip here.
    """

    prescription_id: str
    schedule_slot_id: str
    date: str
    medicine_name: str
    dose: str
    time: str
    tablet_count: int = Field(ge=1)


class ScheduledReminder(BaseModel):
    notification_id: str
    prescription_id: str | None = None
    schedule_slot_id: str | None = None
    fire_instant: dt.datetime
    remaining_seconds: float
    content: ReminderContent
    payload: dict[str, Any] = Field(default_factory=dict)


class ScheduleResult(BaseModel):
    prescription_id: str
    scheduled_ids: list[str] = Field(default_factory=list)
    failures: int = Field(default=0, ge=0)
    dropped: int = Field(default=0, ge=0)
    permission_granted: bool = True

    @property
    def reminder_state(self) -> ReminderState:
        return ReminderState.SCHEDULED if self.scheduled_ids else ReminderState.NO_REMINDERS


class CreateMedicationResult(BaseModel):
    prescription: Prescription
    schedules: list[PersistedSlot]
    total_doses_created: int = Field(ge=0)
    reminders: ScheduleResult
    reminder_state: ReminderState


class CalendarEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    time: str
    prescription_id: str
    schedule_slot_id: str
    medicine_name: str
    dose: str
    form: MedicineForm
    tablet_count: int
    status: IntakeStatus
    taken_at: dt.datetime | None = None
