from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

from core.exceptions import AccessDeniedError, NotFoundError, ValidationFailed
from models.appointment import Appointment, CHAT_STATUSES, ChatMessage, MessageType
from models.user import User
from repositories.appointments import AppointmentRepository, pagination
from repositories.users import UserRepository
from services.authorization import authorize, is_participant


logger = logging.getLogger(__name__)


def _message_json(entry: ChatMessage) -> Dict[str, Any]:
    return entry.model_dump(mode="json")


def _person(user: Optional[User], fallback_id: Any) -> Dict[str, Any]:
    if user is None:
        return {"id": str(fallback_id), "name": "Unknown"}
    return {
        "id": str(user.id),
        "name": user.full_name,
        "email": user.email,
        "profile_picture": user.profile_picture,
    }


class ChatService:
    """Per-appointment chat thread between the patient and the doctor."""

    def __init__(self, appointments: AppointmentRepository, users: UserRepository) -> None:
        self.appointments = appointments
        self.users = users

    async def _load_for(self, appointment_id: Any, user: User) -> Appointment:
        if not AppointmentRepository.is_valid_id(appointment_id):
            raise ValidationFailed("Valid appointment ID is required")
        appointment = await self.appointments.get(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found")
        authorize(appointment, user, is_participant)
        return appointment

    async def send_message(
        self,
        appointment_id: Any,
        sender: User,
        message: str,
        message_type: str = MessageType.text.value,
        file_url: Optional[str] = None,
    ) -> ChatMessage:
        appointment = await self._load_for(appointment_id, sender)
        entry = appointment.append_message(sender.id, message, message_type, file_url)
        await self.appointments.push_message(appointment.id, entry)
        logger.info(
            "chat.message_sent",
            extra={"appointment_id": str(appointment.id), "message_id": str(entry.id), "sender": str(sender.id)},
        )
        return entry

    async def get_messages(self, appointment_id: Any, user: User, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        appointment = await self._load_for(appointment_id, user)
        messages = list(appointment.chat_messages)
        start = (page - 1) * limit
        page_items = list(reversed(messages[start:start + limit]))
        payload_messages = [_message_json(m) for m in page_items]

        if appointment.mark_read_by(user.id):
            await self.appointments.mark_messages_read(appointment.id, user.id)

        people = await self.users.get_many([appointment.patient_id, appointment.doctor_id])
        return {
            "appointment": {
                "id": str(appointment.id),
                "patient": _person(people.get(str(appointment.patient_id)), appointment.patient_id),
                "doctor": _person(people.get(str(appointment.doctor_id)), appointment.doctor_id),
                "appointment_date": appointment.appointment_date.isoformat(),
                "appointment_time": appointment.appointment_time,
                "status": appointment.status,
            },
            "messages": payload_messages,
            "pagination": pagination(page, limit, len(messages), label="total_messages"),
        }

    async def mark_read(self, appointment_id: Any, user: User, message_ids: Optional[List[str]] = None) -> int:
        appointment = await self._load_for(appointment_id, user)
        changed = appointment.mark_read_by(user.id, message_ids)
        if changed:
            await self.appointments.mark_messages_read(appointment.id, user.id, message_ids)
        return changed

    async def delete_message(self, appointment_id: Any, message_id: Any, user: User) -> None:
        appointment = await self._load_for(appointment_id, user)
        entry = appointment.find_message(message_id)
        if entry is None:
            raise NotFoundError("Message not found")
        if str(entry.sender) != str(user.id):
            raise AccessDeniedError("You can only delete your own messages")
        await self.appointments.pull_message(appointment.id, entry.id)
        logger.info(
            "chat.message_deleted",
            extra={"appointment_id": str(appointment.id), "message_id": str(message_id), "by": str(user.id)},
        )

    async def unread_count(self, user: User) -> int:
        appointments, _ = await self.appointments.for_participant(user.id, with_messages=True)
        return sum(len(a.unread_for(user.id)) for a in appointments)

    async def conversations(self, user: User, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        appointments, total = await self.appointments.for_participant(
            user.id,
            statuses=list(CHAT_STATUSES),
            sort=[("updated_at", DESCENDING)],
            page=page,
            limit=limit,
        )
        people = await self.users.get_many([a.other_party(user.id) for a in appointments])
        items = []
        for a in appointments:
            other_id = a.other_party(user.id)
            last = a.chat_messages[-1] if a.chat_messages else None
            items.append(
                {
                    "appointment_id": str(a.id),
                    "other_user": _person(people.get(str(other_id)), other_id),
                    "appointment_date": a.appointment_date.isoformat(),
                    "appointment_time": a.appointment_time,
                    "status": a.status,
                    "last_message": _message_json(last) if last else None,
                    "unread_count": len(a.unread_for(user.id)),
                }
            )
        return {
            "conversations": items,
            "pagination": pagination(page, limit, total, label="total_conversations"),
        }

    async def search(self, user: User, query: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        needle = (query or "").strip().lower()
        if len(needle) < 2:
            raise ValidationFailed("Search query must be at least 2 characters long")
        appointments, _ = await self.appointments.for_participant(user.id, with_messages=True)
        people = await self.users.get_many([a.other_party(user.id) for a in appointments])

        results: List[Dict[str, Any]] = []
        for a in appointments:
            other_id = a.other_party(user.id)
            for entry in a.chat_messages:
                if needle in (entry.message or "").lower():
                    results.append(
                        {
                            "appointment_id": str(a.id),
                            "other_user": _person(people.get(str(other_id)), other_id),
                            "message": _message_json(entry),
                        }
                    )
        results.sort(key=lambda r: r["message"]["timestamp"], reverse=True)
        start = (page - 1) * limit
        return {
            "results": results[start:start + limit],
            "pagination": pagination(page, limit, len(results), label="total_results"),
        }
