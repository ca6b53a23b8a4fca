from enum import Enum


class IntakeStatus(str, Enum):
    PENDING = "pending"
    TAKEN = "taken"
    MISSED = "missed"
    SKIPPED = "skipped"


class MedicineForm(str, Enum):
    TABLET = "Tablet"
    CAPSULE = "Capsule"
    LIQUID = "Liquid"
    INJECTION = "Injection"
    CREAM = "Cream"
    INHALER = "Inhaler"

    @classmethod
    def parse(cls, value: "str | MedicineForm | None") -> "MedicineForm":
        if isinstance(value, cls):
            return value
        normalized = (value or "").strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        return cls.TABLET


class ReminderState(str, Enum):
    NO_REMINDERS = "no_reminders"
    SCHEDULED = "scheduled"


class NotificationBackend(str, Enum):
    MEMORY = "memory"
    APSCHEDULER = "apscheduler"
