from __future__ import annotations

import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import MongoModel, PyObjectId


TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


class AppointmentStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"


class AppointmentType(str, Enum):
    consultation = "consultation"
    follow_up = "follow_up"
    emergency = "emergency"
    routine_checkup = "routine_checkup"
    vaccination = "vaccination"


class AppointmentMode(str, Enum):
    in_person = "in_person"
    video_call = "video_call"
    chat = "chat"


class PaymentStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    refunded = "refunded"
    failed = "failed"


class MessageType(str, Enum):
    text = "text"
    image = "image"
    file = "file"
    prescription = "prescription"


UPCOMING_STATUSES = (
    AppointmentStatus.pending.value,
    AppointmentStatus.confirmed.value,
)
CHAT_STATUSES = (
    AppointmentStatus.confirmed.value,
    AppointmentStatus.in_progress.value,
    AppointmentStatus.completed.value,
)


def normalize_day(value: date | datetime | str) -> datetime:
    """Collapse a date-like value to a naive UTC midnight datetime.

    BSON has no pure date type, so every appointment day is stored as the
    start of that day. Aware datetimes are converted to UTC first.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return datetime(value.year, value.month, value.day)
    return datetime(value.year, value.month, value.day)


def normalize_time(value: str) -> str:
    match = TIME_PATTERN.match((value or "").strip())
    if not match:
        raise ValueError("Valid time format is required (HH:MM)")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


class Payment(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    status: PaymentStatus = PaymentStatus.pending
    amount: float = 0.0
    currency: str = "usd"
    transaction_id: Optional[str] = None


class RescheduledFrom(BaseModel):
    date: datetime
    time: str


class ChatMessage(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True, arbitrary_types_allowed=True, use_enum_values=True, validate_default=True
    )

    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    sender: PyObjectId
    message: str
    message_type: MessageType = MessageType.text
    file_url: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    read_by: List[str] = Field(default_factory=list)

    def is_read_by(self, user_id: str) -> bool:
        return str(user_id) in self.read_by

    def mark_read_by(self, user_id: str) -> bool:
        if self.is_read_by(user_id):
            return False
        self.read_by.append(str(user_id))
        return True


class Appointment(MongoModel):
    patient_id: PyObjectId
    doctor_id: PyObjectId
    appointment_date: datetime
    appointment_time: str
    duration: int = Field(default=30, ge=15, le=120)
    appointment_type: AppointmentType = AppointmentType.consultation
    appointment_mode: AppointmentMode = AppointmentMode.in_person
    status: AppointmentStatus = AppointmentStatus.pending

    symptoms: List[str] = Field(default_factory=list)
    patient_notes: Optional[str] = None
    doctor_notes: Optional[str] = None
    is_emergency: bool = False

    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    follow_up_notes: Optional[str] = None

    consultation_fee: float
    payment: Payment = Field(default_factory=Payment)

    rescheduled_from: Optional[RescheduledFrom] = None
    rescheduled_by: Optional[PyObjectId] = None
    rescheduled_at: Optional[datetime] = None

    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[PyObjectId] = None
    cancelled_at: Optional[datetime] = None

    rating: Optional[int] = Field(default=None, ge=1, le=5)
    review: Optional[str] = None
    review_date: Optional[datetime] = None

    chat_messages: List[ChatMessage] = Field(default_factory=list)

    @field_validator("appointment_date", mode="before")
    @classmethod
    def _day(cls, value):
        return normalize_day(value)

    @field_validator("appointment_time", mode="before")
    @classmethod
    def _time(cls, value):
        return normalize_time(value)

    # Participants

    def is_patient(self, user_id: object) -> bool:
        return str(self.patient_id) == str(user_id)

    def is_doctor(self, user_id: object) -> bool:
        return str(self.doctor_id) == str(user_id)

    def is_participant(self, user_id: object) -> bool:
        return self.is_patient(user_id) or self.is_doctor(user_id)

    def other_party(self, user_id: object) -> ObjectId:
        return self.doctor_id if self.is_patient(user_id) else self.patient_id

    # Chat thread

    def append_message(
        self,
        sender: ObjectId,
        message: str,
        message_type: MessageType | str = MessageType.text,
        file_url: Optional[str] = None,
    ) -> ChatMessage:
        entry = ChatMessage(
            sender=sender,
            message=message,
            message_type=message_type,
            file_url=file_url,
            read_by=[str(sender)],
        )
        self.chat_messages.append(entry)
        return entry

    def find_message(self, message_id: object) -> Optional[ChatMessage]:
        for entry in self.chat_messages:
            if str(entry.id) == str(message_id):
                return entry
        return None

    def unread_for(self, user_id: object) -> List[ChatMessage]:
        uid = str(user_id)
        return [m for m in self.chat_messages if str(m.sender) != uid and not m.is_read_by(uid)]

    def mark_read_by(self, user_id: object, message_ids: Optional[Iterable[object]] = None) -> int:
        uid = str(user_id)
        if message_ids:
            wanted = {str(mid) for mid in message_ids}
            targets = [m for m in self.chat_messages if str(m.id) in wanted]
        else:
            targets = self.unread_for(uid)
        return sum(1 for m in targets if m.mark_read_by(uid))
