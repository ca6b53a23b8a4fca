from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from services.extraction.client import PrescriptionExtractionClient
from services.scheduler.main import build_services, create_app
from services.scheduler.platform import InMemoryNotificationPlatform
from shared.config import Settings
from shared.contracts.models import ReminderContent

from conftest import TODAY


CONTENT = ReminderContent(title="💊 Medication Reminder", body="Time to take something")


def _medication(**overrides):
    prescription = {
        "medicine_name": "Amoxicillin",
        "dose": "500",
        "form": "Capsule",
        "start_date": TODAY.isoformat(),
        "end_date": (TODAY + timedelta(days=2)).isoformat(),
        "frequency": [{"time": "08:00", "number_of_tablets": 1}, {"time": "20:00", "number_of_tablets": 2}],
    }
    prescription.update(overrides)
    return {"user_id": "user-1", "prescription": prescription}


@pytest.fixture
def services(clock):
    return build_services(
        Settings(database_url="sqlite://"),
        platform=InMemoryNotificationPlatform(clock=clock),
        clock=clock,
    )


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["reminders_scheduled"] == 0


def test_create_medication_schedules_reminders(client):
    response = client.post("/medications", json=_medication())

    assert response.status_code == 201
    body = response.json()
    assert body["total_doses_created"] == 6
    assert body["reminder_state"] == "scheduled"
    assert len(body["reminders"]["scheduled_ids"]) == 6
    assert client.get("/reminders").json()["count"] == 6


def test_create_medication_accepts_form_picker_dates(client):
    response = client.post("/medications", json=_medication(start_date="03/02/2026", end_date="03/02/2026"))
    assert response.status_code == 201
    assert response.json()["prescription"]["end_date"] == "2026-03-02"


def test_create_medication_rejects_inverted_range(client):
    response = client.post(
        "/medications",
        json=_medication(end_date=(TODAY - timedelta(days=1)).isoformat()),
    )
    assert response.status_code == 422
    assert client.get("/medications", params={"user_id": "user-1"}).json() == []


def test_create_medication_rejects_unknown_fields(client):
    response = client.post("/medications", json=_medication(refills=3))
    assert response.status_code == 422


def test_create_medication_rejects_bare_time_strings(client):
    response = client.post("/medications", json=_medication(frequency=["08:00", "20:00"]))
    assert response.status_code == 422
    assert client.get("/reminders").json()["count"] == 0


def test_list_medications_reports_progress_and_reminders(client):
    client.post("/medications", json=_medication())

    (summary,) = client.get("/medications", params={"user_id": "user-1"}).json()
    assert summary["medicine_name"] == "Amoxicillin"
    assert summary["form"] == "Capsule"
    assert summary["treatment_days"] == 3
    assert summary["completion_percentage"] == 17
    assert summary["reminder_state"] == "scheduled"


def test_delete_medication_cancels_its_reminders(client):
    created = client.post("/medications", json=_medication()).json()
    prescription_id = created["prescription"]["id"]

    response = client.delete(f"/medications/{prescription_id}")

    assert response.status_code == 200
    assert response.json() == {
        "status": "deleted",
        "prescription_id": prescription_id,
        "cancelled_reminders": 6,
    }
    assert client.get("/reminders").json()["count"] == 0
    assert client.delete(f"/medications/{prescription_id}").status_code == 404


def test_intake_status_update(client):
    created = client.post("/medications", json=_medication()).json()
    prescription_id = created["prescription"]["id"]
    slot_id = created["schedules"][0]["id"]

    response = client.patch(
        f"/medications/{prescription_id}/intake",
        json={"schedule_slot_id": slot_id, "date": TODAY.isoformat(), "status": "taken"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "taken"
    assert response.json()["taken_at"] is not None
    assert client.get("/reminders").json()["count"] == 6

    missing = client.patch(
        f"/medications/{prescription_id}/intake",
        json={"schedule_slot_id": slot_id, "date": "2030-01-01", "status": "missed"},
    )
    assert missing.status_code == 404


def test_calendar_groups_by_date(client):
    client.post("/medications", json=_medication())

    response = client.get(
        "/calendar",
        params={"user_id": "user-1", "start_date": TODAY.isoformat(), "end_date": TODAY.isoformat()},
    )

    assert response.status_code == 200
    day = response.json()[TODAY.isoformat()]
    assert [(entry["time"], entry["tablet_count"]) for entry in day] == [("08:00", 1), ("20:00", 2)]

    inverted = client.get(
        "/calendar",
        params={
            "user_id": "user-1",
            "start_date": TODAY.isoformat(),
            "end_date": (TODAY - timedelta(days=1)).isoformat(),
        },
    )
    assert inverted.status_code == 422


def test_reminder_management(client, clock):
    client.post("/medications", json=_medication())

    reminders = client.get("/reminders").json()["reminders"]
    first = reminders[0]
    assert first["remaining_seconds"] == 60
    assert first["content"]["title"] == "💊 Medication Reminder"

    assert client.delete(f"/reminders/{first['notification_id']}").json() == {"cancelled": first["notification_id"]}
    assert client.get("/reminders").json()["count"] == 5

    clock.advance(seconds=43255)
    cleanup = client.post("/reminders/cleanup", params={"threshold_seconds": 10}).json()
    assert cleanup["threshold_seconds"] == 10
    assert len(cleanup["cancelled"]) == 1

    assert client.delete("/reminders").json() == {"cancelled": 4}
    assert client.get("/reminders").json()["count"] == 0


def test_clear_all_failure_is_a_conflict(client, services):
    client.post("/medications", json=_medication())
    services.platform.fail_cancel_all = True

    response = client.delete("/reminders")

    assert response.status_code == 409
    assert len(response.json()["detail"]["remaining"]) == 6


def test_test_reminder(client, services):
    response = client.post("/reminders/test")

    assert response.status_code == 200
    (scheduled,) = services.platform.list_scheduled()
    assert scheduled.id == response.json()["notification_id"]
    assert scheduled.remaining_seconds == 2
    assert scheduled.data == {"test": True}


def test_test_reminder_requires_permission(client, services):
    services.platform.permission_granted = False
    assert client.post("/permissions/request").json() == {"granted": False}
    assert client.post("/reminders/test").status_code == 403


def test_extract_is_unavailable_without_service(client):
    response = client.post("/medications/extract", json={"text": "Amoxicillin 500mg twice a day"})
    assert response.status_code == 503


def test_extract_uses_configured_service(services, clock):
    def handler(request):
        return httpx.Response(
            200,
            json={
                "medicine": "Amoxicillin",
                "dose_in_mg": "500",
                "treatment_start_date": "03/02/2026",
                "treatment_end_date": "03/08/2026",
                "frequency": [{"time": "8:00", "number_of_tablets": 1}],
            },
        )

    services.extractor = PrescriptionExtractionClient("http://extractor", transport=httpx.MockTransport(handler))
    with TestClient(create_app(services)) as client:
        response = client.post("/medications/extract", json={"text": "Amoxicillin 500mg every morning"})

    assert response.status_code == 200
    assert response.json()["frequency"] == {"08:00": 1}
    assert response.json()["end_date"] == "2026-03-08"


def test_startup_cancels_near_immediate_reminders(services, clock):
    services.platform.schedule_after_delay(3, CONTENT, {"prescription_id": "stale", "schedule_slot_id": "s"})
    services.platform.schedule_after_delay(3600, CONTENT, {"prescription_id": "fresh", "schedule_slot_id": "s"})

    with TestClient(create_app(services)) as client:
        reminders = client.get("/reminders").json()["reminders"]

    assert [reminder["prescription_id"] for reminder in reminders] == ["fresh"]
