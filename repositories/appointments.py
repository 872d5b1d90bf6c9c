from __future__ import annotations

from datetime import datetime, timedelta
from math import ceil
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING

from models.appointment import (
    Appointment,
    AppointmentStatus,
    ChatMessage,
    UPCOMING_STATUSES,
    normalize_day,
)
from models.user import UserRole
from .base import BaseRepository


NEWEST_FIRST = [("appointment_date", DESCENDING), ("appointment_time", DESCENDING)]
SOONEST_FIRST = [("appointment_date", ASCENDING), ("appointment_time", ASCENDING)]


def slot_conflict_query(
    doctor_id: ObjectId,
    appointment_date: datetime,
    appointment_time: str,
    exclude_id: Optional[ObjectId] = None,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {
        "doctor_id": doctor_id,
        "appointment_date": normalize_day(appointment_date),
        "appointment_time": appointment_time,
        "status": {"$ne": AppointmentStatus.cancelled.value},
    }
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return query


def role_scope(user_id: ObjectId, role: str) -> Dict[str, Any]:
    if role == UserRole.patient.value:
        return {"patient_id": user_id}
    if role == UserRole.doctor.value:
        return {"doctor_id": user_id}
    return {}


def list_query(
    user_id: ObjectId,
    role: str,
    *,
    status: Optional[str] = None,
    day: Optional[datetime] = None,
) -> Dict[str, Any]:
    query = role_scope(user_id, role)
    if status:
        query["status"] = status
    if day is not None:
        start = normalize_day(day)
        query["appointment_date"] = {"$gte": start, "$lt": start + timedelta(days=1)}
    return query


def upcoming_query(user_id: ObjectId, role: str, today: datetime) -> Dict[str, Any]:
    query = role_scope(user_id, role)
    query["appointment_date"] = {"$gte": normalize_day(today)}
    query["status"] = {"$in": list(UPCOMING_STATUSES)}
    return query


def statistics_pipeline(
    doctor_id: Optional[ObjectId], start: datetime, end: datetime
) -> List[Dict[str, Any]]:
    match: Dict[str, Any] = {"appointment_date": {"$gte": start, "$lte": end}}
    if doctor_id is not None:
        match["doctor_id"] = doctor_id
    return [
        {"$match": match},
        {
            "$group": {
                "_id": "$status",
                "count": {"$sum": 1},
                "total_revenue": {"$sum": "$consultation_fee"},
            }
        },
        {"$sort": {"_id": 1}},
    ]


def pagination(page: int, limit: int, total: int, *, label: str = "total_appointments") -> Dict[str, Any]:
    return {
        "current_page": page,
        "total_pages": ceil(total / limit) if limit else 1,
        label: total,
        "has_next_page": page * limit < total,
        "has_prev_page": page > 1,
    }


def mark_read_update(
    user_id: ObjectId, message_ids: Optional[List[ObjectId]] = None
) -> tuple[Dict[str, Any], List[Dict[str, Any]]]:
    """Update and array filters adding `user_id` to the readers of matching messages.

    Without ids, every message the user did not send is marked.
    """
    reader = str(user_id)
    condition: Dict[str, Any] = {"m.read_by": {"$ne": reader}}
    if message_ids:
        condition["m._id"] = {"$in": list(message_ids)}
    else:
        condition["m.sender"] = {"$ne": user_id}
    return {"$addToSet": {"chat_messages.$[m].read_by": reader}}, [condition]


class AppointmentRepository(BaseRepository):
    collection_name = "appointments"

    async def get(self, appointment_id: Any) -> Optional[Appointment]:
        return Appointment.from_mongo(await self.find_by_id(appointment_id))

    async def create(self, appointment: Appointment) -> Appointment:
        doc = appointment.to_mongo()
        inserted_id = await self.insert_one(doc)
        return Appointment.from_mongo({**doc, "_id": inserted_id})

    async def save(self, appointment: Appointment) -> Appointment:
        """Write the appointment fields back. The chat thread is only changed through the chat operations below."""
        doc = appointment.to_mongo()
        for key in ("_id", "created_at", "updated_at", "chat_messages"):
            doc.pop(key, None)
        await self.update_one({"_id": appointment.id}, {"$set": doc})
        return appointment

    async def has_conflict(
        self,
        doctor_id: ObjectId,
        appointment_date: datetime,
        appointment_time: str,
        exclude_id: Optional[ObjectId] = None,
    ) -> bool:
        query = slot_conflict_query(
            self._ensure_object_id(doctor_id), appointment_date, appointment_time, exclude_id
        )
        return await self.find_one(query, {"_id": 1}) is not None

    # Chat thread

    async def push_message(self, appointment_id: ObjectId, message: ChatMessage) -> None:
        await self.update_one(
            {"_id": appointment_id},
            {"$push": {"chat_messages": message.model_dump(by_alias=True)}},
        )

    async def pull_message(self, appointment_id: ObjectId, message_id: Any) -> int:
        return await self.update_one(
            {"_id": appointment_id},
            {"$pull": {"chat_messages": {"_id": self._ensure_object_id(message_id)}}},
        )

    async def mark_messages_read(
        self, appointment_id: ObjectId, user_id: ObjectId, message_ids: Optional[List[Any]] = None
    ) -> int:
        ids = [self._ensure_object_id(m) for m in message_ids or [] if self.is_valid_id(m)]
        if message_ids and not ids:
            return 0
        update, array_filters = mark_read_update(user_id, ids or None)
        return await self.update_one({"_id": appointment_id}, update, array_filters=array_filters)

    async def list_page(
        self, query: Dict[str, Any], *, page: int, limit: int
    ) -> tuple[List[Appointment], int]:
        docs = await self.find_many(query, sort=NEWEST_FIRST, limit=limit, skip=(page - 1) * limit)
        total = await self.count_many(query)
        return [Appointment.from_mongo(d) for d in docs], total

    async def upcoming(self, query: Dict[str, Any], *, limit: int) -> List[Appointment]:
        docs = await self.find_many(query, sort=SOONEST_FIRST, limit=limit)
        return [Appointment.from_mongo(d) for d in docs]

    async def rated_for_doctor(self, doctor_id: ObjectId) -> List[int]:
        docs = await self.find_many(
            {"doctor_id": doctor_id, "rating": {"$exists": True, "$ne": None}},
            projection={"rating": 1},
        )
        return [int(d["rating"]) for d in docs]

    async def statistics(
        self, doctor_id: Optional[ObjectId], start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        rows = await self.aggregate(statistics_pipeline(doctor_id, start, end))
        return [
            {"status": r["_id"], "count": r["count"], "total_revenue": r["total_revenue"]}
            for r in rows
        ]

    async def for_participant(
        self,
        user_id: ObjectId,
        *,
        statuses: Optional[List[str]] = None,
        with_messages: bool = False,
        sort: Optional[List[tuple[str, int]]] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> tuple[List[Appointment], int]:
        query: Dict[str, Any] = {"$or": [{"patient_id": user_id}, {"doctor_id": user_id}]}
        if statuses:
            query["status"] = {"$in": statuses}
        if with_messages:
            query["chat_messages.0"] = {"$exists": True}
        skip = (page - 1) * limit if page and limit else None
        docs = await self.find_many(query, sort=sort, limit=limit, skip=skip)
        total = await self.count_many(query) if limit else len(docs)
        return [Appointment.from_mongo(d) for d in docs], total
