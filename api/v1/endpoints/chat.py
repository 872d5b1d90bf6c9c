from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, status

from api.v1.deps import get_chat_service
from models.user import User
from schemas.chat import DeleteMessageRequest, MarkReadRequest, SendMessageRequest
from schemas.common import success
from services.chat import ChatService
from services.security import get_current_user


router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/conversations")
async def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> Dict[str, Any]:
    return success(await service.conversations(current_user, page, limit))


@router.get("/messages/{appointment_id}")
async def get_messages(
    appointment_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> Dict[str, Any]:
    return success(await service.get_messages(appointment_id, current_user, page, limit))


@router.post("/send-message", status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> Dict[str, Any]:
    entry = await service.send_message(
        payload.appointment_id,
        current_user,
        payload.message,
        payload.message_type.value,
        payload.file_url,
    )
    return success({"message": entry.model_dump(mode="json")}, "Message sent successfully")


@router.put("/mark-read")
async def mark_read(
    payload: MarkReadRequest,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> Dict[str, Any]:
    changed = await service.mark_read(payload.appointment_id, current_user, payload.message_ids)
    return success({"marked": changed}, "Messages marked as read")


@router.delete("/delete-message")
async def delete_message(
    payload: DeleteMessageRequest,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> Dict[str, Any]:
    await service.delete_message(payload.appointment_id, payload.message_id, current_user)
    return success(message="Message deleted successfully")


@router.get("/unread-count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> Dict[str, Any]:
    return success({"unread_count": await service.unread_count(current_user)})


@router.get("/search")
async def search_messages(
    query: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
) -> Dict[str, Any]:
    return success(await service.search(current_user, query, page, limit))
