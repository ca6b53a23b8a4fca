from datetime import date

import pytest
from pydantic import ValidationError

from shared.contracts.enums import MedicineForm, ReminderState
from shared.contracts.models import PrescriptionFormData, ScheduleResult, TimeSlot


def _form(**overrides):
    data = {
        "medicine_name": "  Metformin ",
        "dose": "500",
        "start_date": "2026-03-02",
        "end_date": "2026-03-04",
        "frequency": [{"time": "08:00", "number_of_tablets": 1}],
    }
    data.update(overrides)
    return PrescriptionFormData.model_validate(data)


def test_time_slot_pads_hour_and_rejects_invalid_time():
    assert TimeSlot(time="8:05", tablet_count=2).time == "08:05"
    assert TimeSlot(time="21:30").time_of_day.hour == 21

    with pytest.raises(ValidationError):
        TimeSlot(time="25:00", tablet_count=1)
    with pytest.raises(ValidationError):
        TimeSlot(time="08:00", tablet_count=-1)


def test_form_accepts_legacy_field_names_and_us_dates():
    form = PrescriptionFormData.model_validate(
        {
            "medicine": "Ibuprofen",
            "dose_in_mg": "200",
            "form": "capsule",
            "treatment_start_date": "3/2/2026",
            "treatment_end_date": "03/09/2026",
            "frequency": [{"time": "20:00", "number_of_tablets": 2}],
        }
    )
    assert form.medicine_name == "Ibuprofen"
    assert form.form == MedicineForm.CAPSULE
    assert form.start_date == date(2026, 3, 2)
    assert form.end_date == date(2026, 3, 9)
    assert form.frequency == {"20:00": 2}


def test_form_trims_text_and_falls_back_to_tablet():
    form = _form(form="lozenge", special_instructions="   ", quantity=" 30 ")
    assert form.medicine_name == "Metformin"
    assert form.quantity == "30"
    assert form.form == MedicineForm.TABLET
    assert form.special_instructions is None


def test_frequency_keeps_one_slot_per_time_and_drops_blank_times():
    form = _form(
        frequency=[
            {"time": "20:00", "number_of_tablets": 1},
            {"time": "", "number_of_tablets": 3},
            {"time": "08:00", "number_of_tablets": 1},
            {"time": "20:00", "number_of_tablets": 2},
        ]
    )
    assert form.frequency == {"08:00": 1, "20:00": 2}
    assert [slot.time for slot in form.slots] == ["08:00", "20:00"]


@pytest.mark.parametrize("frequency", [["08:00"], [8], [{"time": "08:00"}, None]])
def test_frequency_items_must_be_objects(frequency):
    with pytest.raises(ValidationError):
        _form(frequency=frequency)


def test_active_slots_exclude_zero_tablet_times():
    form = _form(frequency={"08:00": 1, "14:00": 0, "21:00": 2})
    assert [slot.time for slot in form.active_slots] == ["08:00", "21:00"]
    assert len(form.slots) == 3


def test_form_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        _form(colour="blue")


def test_schedule_result_reminder_state():
    assert ScheduleResult(prescription_id="rx").reminder_state == ReminderState.NO_REMINDERS
    assert ScheduleResult(prescription_id="rx", scheduled_ids=["n1"]).reminder_state == ReminderState.SCHEDULED
