from .models import (
    Base,
    IntakeLog,
    Prescription,
    PrescriptionSchedule,
)
from .session import build_engine, build_session_factory, create_schema
from .store import PrescriptionStore, SqlPrescriptionStore

__all__ = [
    "Base",
    "IntakeLog",
    "Prescription",
    "PrescriptionSchedule",
    "PrescriptionStore",
    "SqlPrescriptionStore",
    "build_engine",
    "build_session_factory",
    "create_schema",
]
