from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from core.config import settings
from db.database import get_database
from models.user import User
from repositories.users import UserRepository


password_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")
logger = logging.getLogger(__name__)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    return password_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return password_context.hash(password)


def create_access_token(subject: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = subject.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return encoded_jwt


def decode_access_token(token: str) -> Optional[str]:
    """Return the user id carried by a token, or None when it does not verify."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        logger.warning("auth.jwt_error")
        return None
    user_id = payload.get("user_id")
    if not user_id:
        logger.error("auth.token_missing_user_id")
        return None
    return str(user_id)


async def get_user_repository() -> UserRepository:
    db = await get_database()
    return UserRepository(db)


async def authenticate_user(email: str, password: str, users: UserRepository) -> Optional[User]:
    user = await users.get_by_email(email)
    logger.info("auth.user_lookup", extra={"email": email, "found": bool(user)})
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    users: UserRepository = Depends(get_user_repository),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user_id = decode_access_token(token)
    if user_id is None:
        raise credentials_exception

    user = await users.get(user_id)
    if user is None:
        logger.error("auth.user_not_found_for_token", extra={"user_id": user_id})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        logger.warning("auth.user_deactivated", extra={"user_id": user_id})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is deactivated")
    return user


def require_roles(*roles: str) -> Callable:
    async def _guard(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(roles)}",
            )
        return current_user

    return _guard


require_patient = require_roles("patient")
require_doctor = require_roles("doctor")
require_doctor_or_admin = require_roles("doctor", "admin")


async def create_initial_admin_if_missing(
    users: UserRepository, *, first_name: str, last_name: str, email: str, password: str
) -> User:
    existing = await users.get_by_email(email)
    if existing:
        return existing
    admin = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        role="admin",
        hashed_password=get_password_hash(password),
        is_verified=True,
        is_active=True,
    )
    return await users.create(admin)
