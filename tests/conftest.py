from datetime import date, datetime, timedelta, timezone

import pytest

from services.scheduler.permissions import PermissionGate
from services.scheduler.platform import InMemoryNotificationPlatform
from services.scheduler.registry import ReminderRegistry
from services.scheduler.reminders import ReminderScheduler
from shared.contracts.models import PersistedSlot, Prescription


TODAY = date(2026, 3, 2)


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def at(hour: int, minute: int = 0, second: int = 0, day: date = TODAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=timezone.utc)


def make_prescription(
    prescription_id: str = "rx-1",
    start_date: date = TODAY,
    end_date: date = TODAY + timedelta(days=2),
    medicine_name: str = "Amoxicillin",
    dose: str = "500",
) -> Prescription:
    return Prescription(
        id=prescription_id,
        user_id="user-1",
        medicine_name=medicine_name,
        dose=dose,
        start_date=start_date,
        end_date=end_date,
    )


def make_slot(time: str = "08:00", tablet_count: int = 1, slot_id: str = "slot-1", prescription_id: str = "rx-1"):
    return PersistedSlot(id=slot_id, prescription_id=prescription_id, time=time, tablet_count=tablet_count)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(at(7, 59))


@pytest.fixture
def platform(clock) -> InMemoryNotificationPlatform:
    return InMemoryNotificationPlatform(clock=clock)


@pytest.fixture
def gate(platform) -> PermissionGate:
    return PermissionGate(platform)


@pytest.fixture
def scheduler(platform, gate, clock) -> ReminderScheduler:
    return ReminderScheduler(platform, gate, clock=clock)


@pytest.fixture
def registry(platform, clock) -> ReminderRegistry:
    return ReminderRegistry(platform, clock=clock)
