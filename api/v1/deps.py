from __future__ import annotations

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from db.database import get_database
from repositories.appointments import AppointmentRepository
from repositories.users import UserRepository
from services.appointments import AppointmentService
from services.chat import ChatService
from services.notifications import EmailNotifier, NotificationDispatcher


def get_notification_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(EmailNotifier())


async def get_appointment_service(
    db: AsyncIOMotorDatabase = Depends(get_database),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> AppointmentService:
    return AppointmentService(AppointmentRepository(db), UserRepository(db), dispatcher)


async def get_chat_service(db: AsyncIOMotorDatabase = Depends(get_database)) -> ChatService:
    return ChatService(AppointmentRepository(db), UserRepository(db))
