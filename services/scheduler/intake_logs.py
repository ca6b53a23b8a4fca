from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Iterator, List

from shared.contracts.enums import IntakeStatus
from shared.contracts.models import IntakeLogEntry, PersistedSlot

from .errors import ensure_date_range


def iter_treatment_days(start_date: date, end_date: date) -> Iterator[date]:
    """Yield every date of the treatment window, both ends included."""
    ensure_date_range(start_date, end_date)
    for offset in range((end_date - start_date).days + 1):
        yield start_date + timedelta(days=offset)


def generate_intake_logs(
    prescription_id: str,
    user_id: str,
    slots: Iterable[PersistedSlot],
    start_date: date,
    end_date: date,
) -> List[IntakeLogEntry]:
    """One pending entry per (date, active slot), ordered by date then time.

    Pure: deduplication of a retried insert is the store's job.
    """
    days = list(iter_treatment_days(start_date, end_date))
    active = sorted((slot for slot in slots if slot.is_active), key=lambda slot: slot.time)

    return [
        IntakeLogEntry(
            prescription_id=prescription_id,
            schedule_slot_id=slot.id,
            user_id=user_id,
            date=day,
            status=IntakeStatus.PENDING,
        )
        for day in days
        for slot in active
    ]
