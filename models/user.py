from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .base import MongoModel


class UserRole(str, Enum):
    patient = "patient"
    doctor = "doctor"
    admin = "admin"


class DoctorInfo(BaseModel):
    specialization: List[str] = Field(default_factory=list)
    experience: Optional[int] = None
    license_number: Optional[str] = None
    consultation_fee: float = 500
    rating: float = Field(default=0, ge=0, le=5)
    total_reviews: int = 0


class User(MongoModel):
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    role: UserRole = UserRole.patient
    hashed_password: Optional[str] = None
    is_verified: bool = False
    is_active: bool = True
    profile_picture: Optional[str] = None
    doctor_info: Optional[DoctorInfo] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin.value

    def display(self) -> dict:
        return {
            "id": str(self.id),
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
        }
