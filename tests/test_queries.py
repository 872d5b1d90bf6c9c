from datetime import datetime

from bson import ObjectId

from repositories.appointments import (
    list_query,
    mark_read_update,
    pagination,
    role_scope,
    slot_conflict_query,
    statistics_pipeline,
    upcoming_query,
)


def test_slot_conflict_query_ignores_cancelled():
    doctor_id = ObjectId()
    query = slot_conflict_query(doctor_id, datetime(2024, 1, 15, 9), "14:30")
    assert query == {
        "doctor_id": doctor_id,
        "appointment_date": datetime(2024, 1, 15),
        "appointment_time": "14:30",
        "status": {"$ne": "cancelled"},
    }


def test_slot_conflict_query_excludes_self_on_reschedule():
    own = ObjectId()
    query = slot_conflict_query(ObjectId(), datetime(2024, 1, 15), "14:30", exclude_id=own)
    assert query["_id"] == {"$ne": own}


def test_role_scope():
    uid = ObjectId()
    assert role_scope(uid, "patient") == {"patient_id": uid}
    assert role_scope(uid, "doctor") == {"doctor_id": uid}
    assert role_scope(uid, "admin") == {}


def test_list_query_filters_status_and_day():
    uid = ObjectId()
    query = list_query(uid, "doctor", status="confirmed", day=datetime(2024, 1, 15, 13))
    assert query == {
        "doctor_id": uid,
        "status": "confirmed",
        "appointment_date": {"$gte": datetime(2024, 1, 15), "$lt": datetime(2024, 1, 16)},
    }


def test_upcoming_query():
    uid = ObjectId()
    query = upcoming_query(uid, "patient", datetime(2024, 1, 15, 8, 30))
    assert query == {
        "patient_id": uid,
        "appointment_date": {"$gte": datetime(2024, 1, 15)},
        "status": {"$in": ["pending", "confirmed"]},
    }


def test_statistics_pipeline_scopes_doctor():
    doctor_id = ObjectId()
    start, end = datetime(2024, 1, 1), datetime(2024, 1, 31)
    match, group, _ = statistics_pipeline(doctor_id, start, end)
    assert match["$match"] == {"appointment_date": {"$gte": start, "$lte": end}, "doctor_id": doctor_id}
    assert group["$group"]["_id"] == "$status"
    assert "doctor_id" not in statistics_pipeline(None, start, end)[0]["$match"]


def test_pagination():
    assert pagination(2, 10, 25) == {
        "current_page": 2,
        "total_pages": 3,
        "total_appointments": 25,
        "has_next_page": True,
        "has_prev_page": True,
    }
    last = pagination(1, 10, 0, label="total_messages")
    assert last["total_messages"] == 0
    assert last["total_pages"] == 0
    assert not last["has_next_page"]


def test_mark_read_update_targets_unread_messages_from_others():
    uid = ObjectId()
    update, filters = mark_read_update(uid)
    assert update == {"$addToSet": {"chat_messages.$[m].read_by": str(uid)}}
    assert filters == [{"m.read_by": {"$ne": str(uid)}, "m.sender": {"$ne": uid}}]


def test_mark_read_update_with_ids_ignores_the_sender():
    uid, mid = ObjectId(), ObjectId()
    _, [condition] = mark_read_update(uid, [mid])
    assert condition == {"m.read_by": {"$ne": str(uid)}, "m._id": {"$in": [mid]}}
