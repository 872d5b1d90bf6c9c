from __future__ import annotations

from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, field_validator

from models.appointment import MessageType


def _object_id(value: str, label: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValueError(f"Valid {label} ID is required")
    return value


class SendMessageRequest(BaseModel):
    appointment_id: str
    message: str
    message_type: MessageType = MessageType.text
    file_url: Optional[str] = None

    @field_validator("appointment_id")
    @classmethod
    def _appointment(cls, value: str) -> str:
        return _object_id(value, "appointment")

    @field_validator("message")
    @classmethod
    def _message(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message cannot be empty")
        return value


class MarkReadRequest(BaseModel):
    appointment_id: str
    message_ids: Optional[List[str]] = None

    @field_validator("appointment_id")
    @classmethod
    def _appointment(cls, value: str) -> str:
        return _object_id(value, "appointment")


class DeleteMessageRequest(BaseModel):
    appointment_id: str
    message_id: str

    @field_validator("appointment_id")
    @classmethod
    def _appointment(cls, value: str) -> str:
        return _object_id(value, "appointment")

    @field_validator("message_id")
    @classmethod
    def _message(cls, value: str) -> str:
        return _object_id(value, "message")
