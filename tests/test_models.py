from datetime import date, datetime, timedelta, timezone

import pytest
from bson import ObjectId
from pydantic import ValidationError

from models.appointment import Appointment, ChatMessage, normalize_day, normalize_time


def _appointment(**overrides):
    data = {
        "patient_id": ObjectId(),
        "doctor_id": ObjectId(),
        "appointment_date": "2024-01-15",
        "appointment_time": "14:30",
        "consultation_fee": 500,
    }
    data.update(overrides)
    return Appointment.model_validate(data)


def test_normalize_day_collapses_to_midnight():
    assert normalize_day("2024-01-15") == datetime(2024, 1, 15)
    assert normalize_day(date(2024, 1, 15)) == datetime(2024, 1, 15)
    assert normalize_day(datetime(2024, 1, 15, 18, 45)) == datetime(2024, 1, 15)


def test_normalize_day_converts_aware_values_to_utc():
    eastern = timezone(timedelta(hours=-5))
    assert normalize_day(datetime(2024, 1, 15, 22, 0, tzinfo=eastern)) == datetime(2024, 1, 16)
    assert normalize_day("2024-01-15T23:30:00Z") == datetime(2024, 1, 15)


@pytest.mark.parametrize("raw,expected", [("9:05", "09:05"), ("14:30", "14:30"), (" 00:00 ", "00:00")])
def test_normalize_time_pads_hours(raw, expected):
    assert normalize_time(raw) == expected


@pytest.mark.parametrize("raw", ["24:00", "12:60", "1230", "", "noon"])
def test_normalize_time_rejects_bad_values(raw):
    with pytest.raises(ValueError, match="HH:MM"):
        normalize_time(raw)


def test_appointment_defaults_and_normalization():
    appt = _appointment(appointment_date="2024-01-15T10:00:00", appointment_time="9:00")
    assert appt.appointment_date == datetime(2024, 1, 15)
    assert appt.appointment_time == "09:00"
    assert appt.status == "pending"
    assert appt.duration == 30
    assert appt.payment.status == "pending"
    assert appt.chat_messages == []


def test_appointment_rejects_bad_time():
    with pytest.raises(ValidationError):
        _appointment(appointment_time="25:00")


def test_json_dump_uses_string_ids():
    appt = _appointment(_id=ObjectId())
    data = appt.model_dump(mode="json")
    assert data["id"] == str(appt.id)
    assert data["patient_id"] == str(appt.patient_id)
    assert appt.to_mongo()["_id"] == appt.id


def test_participants():
    appt = _appointment()
    assert appt.is_patient(str(appt.patient_id))
    assert appt.is_doctor(appt.doctor_id)
    assert not appt.is_participant(ObjectId())
    assert appt.other_party(appt.patient_id) == appt.doctor_id
    assert appt.other_party(appt.doctor_id) == appt.patient_id


def test_chat_message_read_tracking():
    appt = _appointment()
    sent = appt.append_message(appt.patient_id, "hello doctor")
    assert sent.is_read_by(str(appt.patient_id))
    assert appt.unread_for(appt.patient_id) == []
    assert [m.id for m in appt.unread_for(appt.doctor_id)] == [sent.id]

    assert appt.mark_read_by(appt.doctor_id) == 1
    assert appt.mark_read_by(appt.doctor_id) == 0
    assert appt.unread_for(appt.doctor_id) == []


def test_mark_read_by_specific_ids():
    appt = _appointment()
    first = appt.append_message(appt.patient_id, "one")
    appt.append_message(appt.patient_id, "two")
    assert appt.mark_read_by(appt.doctor_id, [str(first.id)]) == 1
    assert [m.message for m in appt.unread_for(appt.doctor_id)] == ["two"]


def test_find_message():
    appt = _appointment()
    entry = appt.append_message(appt.doctor_id, "take with food", "prescription")
    assert entry.message_type == "prescription"
    assert appt.find_message(str(entry.id)) is entry
    assert appt.find_message(ObjectId()) is None


def test_chat_message_round_trips_through_mongo_shape():
    entry = ChatMessage(sender=ObjectId(), message="hi")
    restored = ChatMessage.model_validate(entry.model_dump(by_alias=True))
    assert restored.id == entry.id
