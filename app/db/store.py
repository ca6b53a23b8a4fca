from __future__ import annotations

import datetime as dt
import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from services.scheduler.errors import IntakeLogNotFound, PersistenceError, PrescriptionNotFound
from shared.contracts.enums import IntakeStatus
from shared.contracts.models import (
    CalendarEntry,
    IntakeLogEntry,
    PersistedSlot,
    Prescription,
    PrescriptionFormData,
    TimeSlot,
)

from . import models


logger = logging.getLogger(__name__)


class PrescriptionStore(Protocol):
    def create_prescription(self, user_id: str, data: PrescriptionFormData) -> Prescription: ...

    def create_schedule_slots(self, prescription_id: str, slots: Sequence[TimeSlot]) -> List[PersistedSlot]: ...

    def bulk_insert_intake_logs(self, entries: Sequence[IntakeLogEntry]) -> int: ...

    def delete_prescription(self, prescription_id: str) -> None: ...

    def update_intake_log(
        self,
        prescription_id: str,
        schedule_slot_id: str,
        on: dt.date,
        status: IntakeStatus,
        taken_at: Optional[dt.datetime] = None,
    ) -> IntakeLogEntry: ...

    def list_prescriptions(self, user_id: str) -> List[Prescription]: ...

    def calendar_entries(
        self,
        user_id: str,
        start_date: Optional[dt.date] = None,
        end_date: Optional[dt.date] = None,
    ) -> List[CalendarEntry]: ...


class SqlPrescriptionStore:
    """SQLAlchemy persistence for prescriptions, their slots and intake logs."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Persistence failure: %s", exc)
            raise PersistenceError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_prescription(self, user_id: str, data: PrescriptionFormData) -> Prescription:
        with self._session() as session:
            row = models.Prescription(
                user_id=user_id,
                medicine_name=data.medicine_name,
                dose=data.dose,
                form=data.form,
                quantity=data.quantity,
                start_date=data.start_date,
                end_date=data.end_date,
                special_instructions=data.special_instructions,
            )
            session.add(row)
            session.flush()
            session.refresh(row)
            return Prescription.model_validate(row)

    def create_schedule_slots(self, prescription_id: str, slots: Sequence[TimeSlot]) -> List[PersistedSlot]:
        with self._session() as session:
            if session.get(models.Prescription, prescription_id) is None:
                raise PrescriptionNotFound(prescription_id)
            rows = [
                models.PrescriptionSchedule(
                    prescription_id=prescription_id,
                    time=slot.time,
                    tablet_count=slot.tablet_count,
                )
                for slot in slots
            ]
            session.add_all(rows)
            session.flush()
            return [PersistedSlot.model_validate(row) for row in sorted(rows, key=lambda row: row.time)]

    def bulk_insert_intake_logs(self, entries: Sequence[IntakeLogEntry]) -> int:
        """Insert entries not already stored; returns how many were added."""
        if not entries:
            return 0

        with self._session() as session:
            prescription_ids = {entry.prescription_id for entry in entries}
            existing = {
                tuple(row)
                for row in session.execute(
                    select(
                        models.IntakeLog.prescription_id,
                        models.IntakeLog.schedule_slot_id,
                        models.IntakeLog.date,
                    ).where(models.IntakeLog.prescription_id.in_(prescription_ids))
                )
            }

            rows = []
            for entry in entries:
                key = (entry.prescription_id, entry.schedule_slot_id, entry.date)
                if key in existing:
                    continue
                existing.add(key)
                rows.append(
                    models.IntakeLog(
                        prescription_id=entry.prescription_id,
                        schedule_slot_id=entry.schedule_slot_id,
                        user_id=entry.user_id,
                        date=entry.date,
                        status=entry.status,
                        taken_at=entry.taken_at,
                    )
                )
            session.add_all(rows)

        skipped = len(entries) - len(rows)
        if skipped:
            logger.info("Skipped %d intake logs that were already stored", skipped)
        return len(rows)

    def delete_prescription(self, prescription_id: str) -> None:
        with self._session() as session:
            row = session.get(models.Prescription, prescription_id)
            if row is None:
                raise PrescriptionNotFound(prescription_id)
            session.delete(row)

    def update_intake_log(
        self,
        prescription_id: str,
        schedule_slot_id: str,
        on: dt.date,
        status: IntakeStatus,
        taken_at: Optional[dt.datetime] = None,
    ) -> IntakeLogEntry:
        with self._session() as session:
            row = session.scalars(
                select(models.IntakeLog).where(
                    models.IntakeLog.prescription_id == prescription_id,
                    models.IntakeLog.schedule_slot_id == schedule_slot_id,
                    models.IntakeLog.date == on,
                )
            ).one_or_none()
            if row is None:
                raise IntakeLogNotFound(prescription_id, schedule_slot_id, on)

            row.status = status
            if status == IntakeStatus.TAKEN:
                row.taken_at = taken_at
            session.flush()
            return IntakeLogEntry.model_validate(row)

    def list_prescriptions(self, user_id: str) -> List[Prescription]:
        with self._session() as session:
            rows = session.scalars(
                select(models.Prescription)
                .where(models.Prescription.user_id == user_id)
                .order_by(models.Prescription.created_at.desc(), models.Prescription.medicine_name)
            ).all()
            return [Prescription.model_validate(row) for row in rows]

    def calendar_entries(
        self,
        user_id: str,
        start_date: Optional[dt.date] = None,
        end_date: Optional[dt.date] = None,
    ) -> List[CalendarEntry]:
        with self._session() as session:
            query = (
                select(models.IntakeLog, models.PrescriptionSchedule, models.Prescription)
                .join(models.PrescriptionSchedule, models.IntakeLog.schedule_slot_id == models.PrescriptionSchedule.id)
                .join(models.Prescription, models.IntakeLog.prescription_id == models.Prescription.id)
                .where(models.IntakeLog.user_id == user_id)
            )
            if start_date is not None:
                query = query.where(models.IntakeLog.date >= start_date)
            if end_date is not None:
                query = query.where(models.IntakeLog.date <= end_date)
            query = query.order_by(models.IntakeLog.date, models.PrescriptionSchedule.time, models.Prescription.medicine_name)

            return [_calendar_entry(log, slot, prescription) for log, slot, prescription in session.execute(query)]


def _calendar_entry(
    log: models.IntakeLog,
    slot: models.PrescriptionSchedule,
    prescription: models.Prescription,
) -> CalendarEntry:
    return CalendarEntry(
        date=log.date,
        time=slot.time,
        prescription_id=prescription.id,
        schedule_slot_id=slot.id,
        medicine_name=prescription.medicine_name,
        dose=prescription.dose,
        form=prescription.form,
        tablet_count=slot.tablet_count,
        status=log.status,
        taken_at=log.taken_at,
    )


def group_by_date(entries: Iterable[CalendarEntry]) -> dict[str, List[CalendarEntry]]:
    grouped: dict[str, List[CalendarEntry]] = {}
    for entry in entries:
        grouped.setdefault(entry.date.isoformat(), []).append(entry)
    return grouped
