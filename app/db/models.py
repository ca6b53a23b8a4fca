from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from shared.contracts.enums import IntakeStatus, MedicineForm


def _new_id() -> str:
    return uuid.uuid4().hex


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    """Declarative base for application models."""


class TimestampMixin:
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Prescription(TimestampMixin, Base):
    __tablename__ = "prescriptions"
    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_prescriptions_treatment_window"),
        Index("ix_prescriptions_user_id_created_at", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    medicine_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dose: Mapped[str] = mapped_column(String(64), nullable=False)
    form: Mapped[MedicineForm] = mapped_column(
        Enum(MedicineForm, name="medicine_form", values_callable=_enum_values),
        nullable=False,
        default=MedicineForm.TABLET,
    )
    quantity: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    special_instructions: Mapped[str | None] = mapped_column(Text)

    schedules: Mapped[list[PrescriptionSchedule]] = relationship(
        back_populates="prescription",
        cascade="all, delete-orphan",
        order_by="PrescriptionSchedule.time",
    )
    intake_logs: Mapped[list[IntakeLog]] = relationship(
        back_populates="prescription",
        cascade="all, delete-orphan",
    )


class PrescriptionSchedule(TimestampMixin, Base):
    __tablename__ = "prescription_schedules"
    __table_args__ = (
        UniqueConstraint("prescription_id", "time_of_day", name="uq_prescription_schedules_prescription_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    prescription_id: Mapped[str] = mapped_column(
        ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False
    )
    time: Mapped[str] = mapped_column("time_of_day", String(5), nullable=False)
    tablet_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    prescription: Mapped[Prescription] = relationship(back_populates="schedules")


class IntakeLog(TimestampMixin, Base):
    __tablename__ = "medicine_intake_logs"
    __table_args__ = (
        UniqueConstraint("prescription_id", "schedule_id", "date", name="uq_intake_logs_prescription_schedule_date"),
        Index("ix_intake_logs_user_id_date", "user_id", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    prescription_id: Mapped[str] = mapped_column(
        ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False
    )
    schedule_slot_id: Mapped[str] = mapped_column(
        "schedule_id", ForeignKey("prescription_schedules.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    status: Mapped[IntakeStatus] = mapped_column(
        Enum(IntakeStatus, name="intake_status", values_callable=_enum_values),
        nullable=False,
        default=IntakeStatus.PENDING,
    )
    taken_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))

    prescription: Mapped[Prescription] = relationship(back_populates="intake_logs")
    schedule: Mapped[PrescriptionSchedule] = relationship()
