from __future__ import annotations

from datetime import date
from typing import Sequence


class MedtrackError(Exception):
    """Base class for reminder and prescription errors."""


class InvalidDateRange(MedtrackError, ValueError):
    def __init__(self, start_date: date, end_date: date) -> None:
        super().__init__(f"end_date {end_date.isoformat()} is before start_date {start_date.isoformat()}")
        self.start_date = start_date
        self.end_date = end_date


class PlatformSchedulingError(MedtrackError):
    """A single notification could not be handed to the platform."""


class PersistenceError(MedtrackError):
    """Wraps any failure of the persistence service."""


class PrescriptionNotFound(MedtrackError, LookupError):
    def __init__(self, prescription_id: str) -> None:
        super().__init__(f"prescription {prescription_id} not found")
        self.prescription_id = prescription_id


class IntakeLogNotFound(MedtrackError, LookupError):
    def __init__(self, prescription_id: str, schedule_slot_id: str, on: date) -> None:
        super().__init__(
            f"no intake log for prescription {prescription_id}, slot {schedule_slot_id} on {on.isoformat()}"
        )
        self.prescription_id = prescription_id
        self.schedule_slot_id = schedule_slot_id
        self.date = on


class ReminderRegistryError(MedtrackError):
    """A bulk registry operation did not complete; ``remaining`` lists what is still scheduled."""

    def __init__(self, message: str, remaining: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.remaining = list(remaining)


def ensure_date_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise InvalidDateRange(start_date, end_date)
