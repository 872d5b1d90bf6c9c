from __future__ import annotations

from fastapi import APIRouter

from api.v1.endpoints import appointments as appointment_endpoints
from api.v1.endpoints import auth as auth_endpoints
from api.v1.endpoints import chat as chat_endpoints


api_router = APIRouter()

api_router.include_router(auth_endpoints.router)
api_router.include_router(appointment_endpoints.router)
api_router.include_router(chat_endpoints.router)
