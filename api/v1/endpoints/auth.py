from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from models.user import User
from repositories.users import UserRepository
from schemas.auth import Token, UserDisplay
from services.security import (
    authenticate_user,
    create_access_token,
    get_current_user,
    get_user_repository,
)


router = APIRouter(tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/auth/login", response_model=Token)
async def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    users: UserRepository = Depends(get_user_repository),
) -> Token:
    username = (form_data.username or "").strip()
    logger.info("auth.login_attempt", extra={"email": username})

    user = await authenticate_user(username, form_data.password, users)
    if user is None:
        logger.warning("auth.login_failed", extra={"email": username})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password")
    if not user.is_active:
        logger.warning("auth.login_deactivated", extra={"email": username})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is deactivated")

    access_token = create_access_token({"user_id": str(user.id)})
    logger.info("auth.login_success", extra={"user_id": str(user.id)})
    return Token(access_token=access_token)


@router.get("/users/me", response_model=UserDisplay)
async def read_users_me(current_user: User = Depends(get_current_user)) -> UserDisplay:
    return UserDisplay(
        user_id=str(current_user.id),
        first_name=current_user.first_name,
        last_name=current_user.last_name,
        email=current_user.email,
        role=current_user.role,
        is_verified=current_user.is_verified,
        phone=current_user.phone,
    )
