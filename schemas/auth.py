from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserDisplay(BaseModel):
    user_id: str
    first_name: str
    last_name: str
    email: str
    role: str
    is_verified: bool
    phone: Optional[str] = None
