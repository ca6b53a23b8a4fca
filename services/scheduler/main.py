from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.engine import Engine

from app.db import SqlPrescriptionStore, build_engine, build_session_factory, create_schema
from services.extraction.client import ExtractionError, PrescriptionExtractionClient
from shared.config import Settings, load_settings
from shared.contracts.enums import IntakeStatus, MedicineForm, NotificationBackend, ReminderState
from shared.contracts.models import (
    CalendarEntry,
    CreateMedicationResult,
    IntakeLogEntry,
    PrescriptionFormData,
    ReminderContent,
    ScheduledReminder,
)
from shared.logging_config import configure_logging

from .errors import (
    IntakeLogNotFound,
    InvalidDateRange,
    PersistenceError,
    PlatformSchedulingError,
    PrescriptionNotFound,
    ReminderRegistryError,
)
from .lifecycle import PrescriptionLifecycleController
from .permissions import PermissionGate
from .platform import (
    APSchedulerNotificationPlatform,
    Clock,
    InMemoryNotificationPlatform,
    NotificationPlatform,
    utc_now,
)
from .registry import ReminderRegistry
from .reminders import ReminderScheduler
from .treatment import completion_percentage, treatment_days


logger = logging.getLogger(__name__)

TEST_REMINDER_DELAY_SECONDS = 2


@dataclass
class ReminderServices:
    settings: Settings
    engine: Engine
    platform: NotificationPlatform
    permission_gate: PermissionGate
    scheduler: ReminderScheduler
    registry: ReminderRegistry
    controller: PrescriptionLifecycleController
    clock: Clock = utc_now
    extractor: Optional[PrescriptionExtractionClient] = None


def build_platform(settings: Settings, clock: Clock = utc_now) -> NotificationPlatform:
    if settings.notification_backend == NotificationBackend.APSCHEDULER:
        return APSchedulerNotificationPlatform(clock=clock)
    return InMemoryNotificationPlatform(clock=clock)


def build_services(
    settings: Optional[Settings] = None,
    platform: Optional[NotificationPlatform] = None,
    clock: Clock = utc_now,
) -> ReminderServices:
    settings = settings or load_settings()
    platform = platform or build_platform(settings, clock)

    engine = build_engine(settings.database_url)
    create_schema(engine)
    store = SqlPrescriptionStore(build_session_factory(engine))

    gate = PermissionGate(platform)
    scheduler = ReminderScheduler(
        platform,
        gate,
        tz=ZoneInfo(settings.reminder_timezone),
        drop_threshold_seconds=settings.drop_threshold_seconds,
        clock=clock,
    )
    registry = ReminderRegistry(platform, clock=clock)
    controller = PrescriptionLifecycleController(store, scheduler, registry, clock=clock)
    extractor = None
    if settings.extraction_service_url:
        extractor = PrescriptionExtractionClient(
            settings.extraction_service_url, timeout=settings.extraction_timeout_seconds
        )
    return ReminderServices(
        settings=settings,
        engine=engine,
        platform=platform,
        permission_gate=gate,
        scheduler=scheduler,
        registry=registry,
        controller=controller,
        clock=clock,
        extractor=extractor,
    )


class CreateMedicationRequest(BaseModel):
    user_id: str = Field(min_length=1)
    prescription: PrescriptionFormData


class ExtractionRequest(BaseModel):
    text: str = Field(min_length=1)


class IntakeStatusRequest(BaseModel):
    schedule_slot_id: str = Field(min_length=1)
    date: date
    status: IntakeStatus
    taken_at: datetime | None = None


class MedicationSummary(BaseModel):
    id: str
    medicine_name: str
    dose: str
    form: MedicineForm
    start_date: date
    end_date: date
    treatment_days: int
    completion_percentage: int
    reminder_state: ReminderState


class ReminderListResponse(BaseModel):
    count: int
    reminders: list[ScheduledReminder]


def get_services(request: Request) -> ReminderServices:
    return request.app.state.services


def create_app(services: Optional[ReminderServices] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services()
        current: ReminderServices = app.state.services
        configure_logging(current.settings.log_level)

        if isinstance(current.platform, APSchedulerNotificationPlatform):
            current.platform.start()
        stale = current.registry.cancel_near_immediate(current.settings.near_immediate_threshold_seconds)
        if stale:
            logger.warning("Startup cleanup cancelled %d near-immediate reminders", len(stale))
        try:
            yield
        finally:
            if isinstance(current.platform, APSchedulerNotificationPlatform):
                current.platform.shutdown()
            if current.extractor is not None:
                current.extractor.close()

    app = FastAPI(title="scheduler", lifespan=lifespan)
    app.state.services = services

    @app.get("/health")
    def health(services: ReminderServices = Depends(get_services)) -> dict[str, Any]:
        return {
            "status": "ok",
            "service": "scheduler",
            "notifications_granted": services.permission_gate.last_known,
            "reminders_scheduled": services.registry.count(),
        }

    @app.post("/medications", response_model=CreateMedicationResult, status_code=201)
    def create_medication(
        payload: CreateMedicationRequest,
        services: ReminderServices = Depends(get_services),
    ) -> CreateMedicationResult:
        try:
            return services.controller.create_medication(payload.user_id, payload.prescription)
        except InvalidDateRange as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except PersistenceError as exc:
            raise HTTPException(status_code=503, detail="could not save medication") from exc

    @app.post("/medications/extract", response_model=PrescriptionFormData)
    def extract_medication(
        payload: ExtractionRequest,
        services: ReminderServices = Depends(get_services),
    ) -> PrescriptionFormData:
        if services.extractor is None:
            raise HTTPException(status_code=503, detail="prescription extraction is not configured")
        try:
            return services.extractor.extract_from_text(payload.text)
        except ExtractionError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc

    @app.get("/medications", response_model=list[MedicationSummary])
    def list_medications(
        user_id: str = Query(min_length=1),
        services: ReminderServices = Depends(get_services),
    ) -> list[MedicationSummary]:
        try:
            prescriptions = services.controller.list_medications(user_id)
        except PersistenceError as exc:
            raise HTTPException(status_code=503, detail="could not load medications") from exc

        with_reminders = {reminder.prescription_id for reminder in services.registry.list_all()}
        now = services.clock()
        return [
            MedicationSummary(
                id=prescription.id,
                medicine_name=prescription.medicine_name,
                dose=prescription.dose,
                form=prescription.form,
                start_date=prescription.start_date,
                end_date=prescription.end_date,
                treatment_days=treatment_days(prescription.start_date, prescription.end_date),
                completion_percentage=completion_percentage(prescription.start_date, prescription.end_date, now),
                reminder_state=(
                    ReminderState.SCHEDULED if prescription.id in with_reminders else ReminderState.NO_REMINDERS
                ),
            )
            for prescription in prescriptions
        ]

    @app.delete("/medications/{prescription_id}")
    def delete_medication(
        prescription_id: str,
        services: ReminderServices = Depends(get_services),
    ) -> dict[str, Any]:
        try:
            cancelled = services.controller.delete_medication(prescription_id)
        except PrescriptionNotFound as exc:
            raise HTTPException(status_code=404, detail="prescription not found") from exc
        except PersistenceError as exc:
            raise HTTPException(status_code=503, detail="could not delete medication") from exc
        return {"status": "deleted", "prescription_id": prescription_id, "cancelled_reminders": len(cancelled)}

    @app.patch("/medications/{prescription_id}/intake", response_model=IntakeLogEntry)
    def set_intake_status(
        prescription_id: str,
        payload: IntakeStatusRequest,
        services: ReminderServices = Depends(get_services),
    ) -> IntakeLogEntry:
        try:
            return services.controller.set_intake_status(
                prescription_id,
                payload.schedule_slot_id,
                payload.date,
                payload.status,
                payload.taken_at,
            )
        except IntakeLogNotFound as exc:
            raise HTTPException(status_code=404, detail="intake log not found") from exc
        except PersistenceError as exc:
            raise HTTPException(status_code=503, detail="could not update medicine status") from exc

    @app.get("/calendar", response_model=dict[str, list[CalendarEntry]])
    def calendar(
        user_id: str = Query(min_length=1),
        start_date: date = Query(),
        end_date: date = Query(),
        services: ReminderServices = Depends(get_services),
    ) -> dict[str, list[CalendarEntry]]:
        try:
            return services.controller.calendar_summary(user_id, start_date, end_date)
        except InvalidDateRange as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except PersistenceError as exc:
            raise HTTPException(status_code=503, detail="could not load calendar") from exc

    @app.get("/reminders", response_model=ReminderListResponse)
    def list_reminders(services: ReminderServices = Depends(get_services)) -> ReminderListResponse:
        reminders = services.registry.list_all()
        return ReminderListResponse(count=len(reminders), reminders=reminders)

    @app.delete("/reminders")
    def clear_reminders(services: ReminderServices = Depends(get_services)) -> dict[str, int]:
        try:
            cleared = services.registry.cancel_all()
        except ReminderRegistryError as exc:
            raise HTTPException(
                status_code=409,
                detail={"message": str(exc), "remaining": exc.remaining},
            ) from exc
        return {"cancelled": cleared}

    @app.delete("/reminders/{notification_id}")
    def cancel_reminder(
        notification_id: str,
        services: ReminderServices = Depends(get_services),
    ) -> dict[str, str]:
        services.registry.cancel(notification_id)
        return {"cancelled": notification_id}

    @app.post("/reminders/cleanup")
    def cleanup_reminders(
        threshold_seconds: Optional[float] = Query(default=None, ge=0),
        services: ReminderServices = Depends(get_services),
    ) -> dict[str, Any]:
        if threshold_seconds is None:
            threshold_seconds = services.settings.near_immediate_threshold_seconds
        cancelled = services.registry.cancel_near_immediate(threshold_seconds)
        return {"threshold_seconds": threshold_seconds, "cancelled": cancelled}

    @app.post("/reminders/test")
    def send_test_reminder(services: ReminderServices = Depends(get_services)) -> dict[str, str]:
        if not services.permission_gate.is_granted():
            raise HTTPException(status_code=403, detail="notification permission is required")
        try:
            notification_id = services.platform.schedule_after_delay(
                TEST_REMINDER_DELAY_SECONDS,
                ReminderContent(title="💊 Test Notification", body="This is a test medication reminder!"),
                {"test": True},
            )
        except PlatformSchedulingError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"notification_id": notification_id}

    @app.post("/permissions/request")
    def request_permission(services: ReminderServices = Depends(get_services)) -> dict[str, bool]:
        return {"granted": services.permission_gate.refresh()}

    return app


app = create_app()
