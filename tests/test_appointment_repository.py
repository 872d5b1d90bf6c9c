from datetime import datetime
from types import SimpleNamespace

import pytest
from bson import ObjectId

from models.appointment import Appointment
from repositories.appointments import AppointmentRepository
from services.chat import ChatService
from tests.conftest import FakeUserRepository, make_user


class _RecordingCollection:
    """Serves one stored document and records every update sent to it."""

    def __init__(self, doc):
        self.doc = doc
        self.queries = []
        self.updates = []

    async def find_one(self, query, projection=None):
        self.queries.append(query)
        return self.doc if query.get("_id") in (None, self.doc["_id"]) else None

    async def update_one(self, filter_query, update, array_filters=None):
        self.updates.append((filter_query, update, array_filters))
        return SimpleNamespace(modified_count=1)


@pytest.fixture
def pair():
    return make_user("patient"), make_user("doctor")


@pytest.fixture
def stored(pair):
    patient, doctor = pair
    appt = Appointment(
        _id=ObjectId(),
        patient_id=patient.id,
        doctor_id=doctor.id,
        appointment_date=datetime(2024, 1, 15),
        appointment_time="14:30",
        status="pending",
        consultation_fee=500,
    )
    appt.append_message(doctor.id, "please bring your reports")
    return appt


@pytest.fixture
def collection(stored):
    return _RecordingCollection(stored.to_mongo())


@pytest.fixture
def chat_service(collection, pair):
    repo = AppointmentRepository({"appointments": collection})
    return ChatService(repo, FakeUserRepository(pair))


def _set_fields(update):
    return set(update.get("$set", {}))


@pytest.mark.asyncio
async def test_reading_the_thread_only_adds_the_reader(chat_service, collection, stored, pair):
    patient, _ = pair
    await chat_service.get_messages(str(stored.id), patient)

    [(filter_query, update, array_filters)] = collection.updates
    assert filter_query == {"_id": stored.id}
    assert update["$addToSet"] == {"chat_messages.$[m].read_by": str(patient.id)}
    assert _set_fields(update) == {"updated_at"}
    assert array_filters == [{"m.read_by": {"$ne": str(patient.id)}, "m.sender": {"$ne": patient.id}}]


@pytest.mark.asyncio
async def test_chat_writes_never_touch_appointment_fields(chat_service, collection, stored, pair):
    patient, _ = pair
    entry = await chat_service.send_message(str(stored.id), patient, "will do")
    collection.doc["chat_messages"].append(entry.model_dump(by_alias=True))
    await chat_service.mark_read(str(stored.id), patient, [str(stored.chat_messages[0].id)])
    await chat_service.delete_message(str(stored.id), str(entry.id), patient)

    assert len(collection.updates) == 3
    for _, update, _ in collection.updates:
        assert _set_fields(update) == {"updated_at"}
        assert "status" not in update.get("$set", {})

    push, mark, pull = (u for _, u, _ in collection.updates)
    assert push["$push"]["chat_messages"]["_id"] == entry.id
    assert push["$push"]["chat_messages"]["read_by"] == [str(patient.id)]
    assert "$addToSet" in mark
    assert collection.updates[1][2][0]["m._id"] == {"$in": [stored.chat_messages[0].id]}
    assert pull["$pull"] == {"chat_messages": {"_id": entry.id}}


@pytest.mark.asyncio
async def test_nothing_is_written_when_everything_is_already_read(chat_service, collection, stored, pair):
    _, doctor = pair
    await chat_service.get_messages(str(stored.id), doctor)
    assert await chat_service.mark_read(str(stored.id), doctor) == 0
    assert collection.updates == []


@pytest.mark.asyncio
async def test_unknown_message_ids_are_not_sent(collection, stored, pair):
    patient, _ = pair
    repo = AppointmentRepository({"appointments": collection})
    assert await repo.mark_messages_read(stored.id, patient.id, ["not-an-id"]) == 0
    assert collection.updates == []


@pytest.mark.asyncio
async def test_save_leaves_the_chat_thread_alone(collection, stored):
    repo = AppointmentRepository({"appointments": collection})
    stored.status = "confirmed"
    await repo.save(stored)

    [(filter_query, update, array_filters)] = collection.updates
    assert filter_query == {"_id": stored.id}
    assert update["$set"]["status"] == "confirmed"
    assert "chat_messages" not in update["$set"]
    assert "_id" not in update["$set"]
    assert array_filters is None


@pytest.mark.asyncio
async def test_has_conflict_accepts_string_doctor_ids(collection, stored):
    repo = AppointmentRepository({"appointments": collection})
    await repo.has_conflict(str(stored.doctor_id), datetime(2024, 1, 15), "14:30")
    [query] = collection.queries
    assert query["doctor_id"] == stored.doctor_id
    assert isinstance(query["doctor_id"], ObjectId)
