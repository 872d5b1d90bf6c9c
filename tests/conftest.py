from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pytest
from bson import ObjectId

from core.config import AppSettings
from models.appointment import Appointment
from models.user import DoctorInfo, User
from repositories.base import utcnow
from services.appointments import AppointmentService
from services.chat import ChatService
from services.notifications import Notification, NotificationDispatcher, NotificationOutcome


def _resolve(doc: Any, path: str) -> Any:
    current = doc
    for part in path.split("."):
        if isinstance(current, list):
            if not part.isdigit() or int(part) >= len(current):
                return _MISSING
            current = current[int(part)]
        elif isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        else:
            return _MISSING
    return current


_MISSING = object()


def _match_value(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
        for op, arg in condition.items():
            if op == "$exists":
                if (value is not _MISSING) != bool(arg):
                    return False
            elif op == "$ne":
                if value is not _MISSING and (value == arg or (isinstance(value, list) and arg in value)):
                    return False
            elif op == "$in":
                if value not in arg:
                    return False
            elif op == "$gte":
                if value is _MISSING or value is None or value < arg:
                    return False
            elif op == "$gt":
                if value is _MISSING or value is None or value <= arg:
                    return False
            elif op == "$lt":
                if value is _MISSING or value is None or value >= arg:
                    return False
            elif op == "$lte":
                if value is _MISSING or value is None or value > arg:
                    return False
            else:
                raise NotImplementedError(op)
        return True
    return value == condition


def matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    """Evaluate the subset of Mongo query operators the repositories emit."""
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
            continue
        if not _match_value(_resolve(doc, key), condition):
            return False
    return True


def _sorted(docs: List[Dict[str, Any]], sort: Optional[Iterable[tuple]]) -> List[Dict[str, Any]]:
    for field, direction in reversed(list(sort or [])):
        docs = sorted(docs, key=lambda d: d.get(field) or datetime.min, reverse=direction < 0)
    return docs


class FakeAppointmentRepository:
    """Keeps appointments as Mongo-shaped dicts and evaluates the repository queries in memory."""

    def __init__(self) -> None:
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.saves = 0

    def _store(self, appointment: Appointment) -> None:
        doc = appointment.to_mongo()
        doc["updated_at"] = utcnow()
        self.docs[str(appointment.id)] = doc

    async def get(self, appointment_id: Any) -> Optional[Appointment]:
        doc = self.docs.get(str(appointment_id))
        return Appointment.from_mongo(dict(doc)) if doc else None

    async def create(self, appointment: Appointment) -> Appointment:
        created = appointment.model_copy(update={"id": ObjectId(), "created_at": utcnow()}, deep=True)
        self._store(created)
        return created

    async def save(self, appointment: Appointment) -> Appointment:
        self.saves += 1
        thread = self.docs[str(appointment.id)]["chat_messages"]
        self._store(appointment)
        self.docs[str(appointment.id)]["chat_messages"] = thread
        return appointment

    async def has_conflict(self, doctor_id, appointment_date, appointment_time, exclude_id=None) -> bool:
        from repositories.appointments import slot_conflict_query

        query = slot_conflict_query(ObjectId(str(doctor_id)), appointment_date, appointment_time, exclude_id)
        return any(matches(d, query) for d in self.docs.values())

    async def push_message(self, appointment_id, message) -> None:
        self.docs[str(appointment_id)]["chat_messages"].append(message.model_dump(by_alias=True))

    async def pull_message(self, appointment_id, message_id) -> int:
        thread = self.docs[str(appointment_id)]["chat_messages"]
        kept = [m for m in thread if str(m["_id"]) != str(message_id)]
        self.docs[str(appointment_id)]["chat_messages"] = kept
        return int(len(kept) != len(thread))

    async def mark_messages_read(self, appointment_id, user_id, message_ids=None) -> int:
        from repositories.appointments import mark_read_update

        ids = [ObjectId(str(m)) for m in message_ids or [] if ObjectId.is_valid(str(m))]
        if message_ids and not ids:
            return 0
        update, [condition] = mark_read_update(user_id, ids or None)
        [reader] = update["$addToSet"].values()
        changed = 0
        for entry in self.docs[str(appointment_id)]["chat_messages"]:
            if matches({"m": entry}, condition):
                entry["read_by"].append(reader)
                changed += 1
        return changed

    def _find(self, query: Dict[str, Any], sort=None) -> List[Dict[str, Any]]:
        return _sorted([d for d in self.docs.values() if matches(d, query)], sort)

    async def list_page(self, query, *, page: int, limit: int):
        from repositories.appointments import NEWEST_FIRST

        found = self._find(query, NEWEST_FIRST)
        start = (page - 1) * limit
        return [Appointment.from_mongo(d) for d in found[start:start + limit]], len(found)

    async def upcoming(self, query, *, limit: int):
        from repositories.appointments import SOONEST_FIRST

        return [Appointment.from_mongo(d) for d in self._find(query, SOONEST_FIRST)[:limit]]

    async def rated_for_doctor(self, doctor_id) -> List[int]:
        return [int(d["rating"]) for d in self._find({"doctor_id": doctor_id}) if d.get("rating") is not None]

    async def statistics(self, doctor_id, start, end) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"appointment_date": {"$gte": start, "$lte": end}}
        if doctor_id is not None:
            query["doctor_id"] = doctor_id
        groups: Dict[str, Dict[str, Any]] = {}
        for d in self._find(query):
            row = groups.setdefault(d["status"], {"status": d["status"], "count": 0, "total_revenue": 0})
            row["count"] += 1
            row["total_revenue"] += d["consultation_fee"]
        return [groups[k] for k in sorted(groups)]

    async def for_participant(self, user_id, *, statuses=None, with_messages=False, sort=None, page=None, limit=None):
        query: Dict[str, Any] = {"$or": [{"patient_id": user_id}, {"doctor_id": user_id}]}
        if statuses:
            query["status"] = {"$in": statuses}
        if with_messages:
            query["chat_messages.0"] = {"$exists": True}
        found = self._find(query, sort)
        total = len(found)
        if page and limit:
            found = found[(page - 1) * limit:page * limit]
        return [Appointment.from_mongo(d) for d in found], total


class FakeUserRepository:
    def __init__(self, users: Iterable[User] = ()) -> None:
        self.users: Dict[str, User] = {str(u.id): u for u in users}

    def add(self, user: User) -> User:
        self.users[str(user.id)] = user
        return user

    async def get(self, user_id: Any) -> Optional[User]:
        return self.users.get(str(user_id))

    async def get_by_email(self, email: str) -> Optional[User]:
        for user in self.users.values():
            if user.email.lower() == str(email).lower():
                return user
        return None

    async def get_bookable_doctor(self, doctor_id: Any) -> Optional[User]:
        user = self.users.get(str(doctor_id))
        if user and user.role == "doctor" and user.is_verified and user.is_active:
            return user
        return None

    async def get_many(self, user_ids: Iterable[Any]) -> Dict[str, User]:
        return {str(u): self.users[str(u)] for u in user_ids if str(u) in self.users}

    async def set_doctor_rating(self, doctor_id, rating: float, total_reviews: int) -> None:
        doctor = self.users[str(doctor_id)]
        doctor.doctor_info.rating = rating
        doctor.doctor_info.total_reviews = total_reviews

    async def create(self, user: User) -> User:
        created = user.model_copy(update={"id": ObjectId()})
        return self.add(created)


class RecordingNotifier:
    def __init__(self, fail_for: Iterable[str] = (), raise_for: Iterable[str] = ()) -> None:
        self.sent: List[Notification] = []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)

    async def send(self, notification: Notification) -> NotificationOutcome:
        if notification.to in self.raise_for:
            raise ConnectionError("smtp down")
        self.sent.append(notification)
        if notification.to in self.fail_for:
            return NotificationOutcome(delivered=False, detail="rejected")
        return NotificationOutcome(delivered=True, detail="<id@test>")

    def templates_for(self, to: str) -> List[str]:
        return [n.template for n in self.sent if n.to == to]


def make_user(role: str = "patient", **overrides: Any) -> User:
    data: Dict[str, Any] = {
        "_id": ObjectId(),
        "first_name": role.capitalize(),
        "last_name": "Tester",
        "email": f"{role}-{ObjectId()}@example.com",
        "role": role,
        "is_verified": True,
        "is_active": True,
    }
    if role == "doctor":
        data["first_name"] = "Jane"
        data["last_name"] = "Smith"
        data["doctor_info"] = DoctorInfo(specialization=["cardiology"], consultation_fee=500)
    data.update(overrides)
    return User.model_validate(data)


@pytest.fixture
def patient() -> User:
    return make_user("patient", first_name="John", last_name="Doe", email="john@example.com")


@pytest.fixture
def doctor() -> User:
    return make_user("doctor", email="jane.smith@example.com")


@pytest.fixture
def admin() -> User:
    return make_user("admin", email="admin@example.com")


@pytest.fixture
def appointments() -> FakeAppointmentRepository:
    return FakeAppointmentRepository()


@pytest.fixture
def users(patient, doctor, admin) -> FakeUserRepository:
    return FakeUserRepository([patient, doctor, admin])


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def config() -> AppSettings:
    return AppSettings()


@pytest.fixture
def service(appointments, users, notifier, config) -> AppointmentService:
    return AppointmentService(appointments, users, NotificationDispatcher(notifier), config=config)


@pytest.fixture
def chat(appointments, users) -> ChatService:
    return ChatService(appointments, users)


@pytest.fixture
def booking(doctor) -> Dict[str, Any]:
    return {
        "doctor_id": str(doctor.id),
        "appointment_date": "2024-01-15",
        "appointment_time": "14:30",
        "appointment_type": "consultation",
        "appointment_mode": "video_call",
        "symptoms": ["headache"],
    }
