from .appointment import (
    Appointment,
    AppointmentMode,
    AppointmentStatus,
    AppointmentType,
    ChatMessage,
    MessageType,
)
from .user import DoctorInfo, User, UserRole

__all__ = [
    "Appointment",
    "AppointmentMode",
    "AppointmentStatus",
    "AppointmentType",
    "ChatMessage",
    "MessageType",
    "DoctorInfo",
    "User",
    "UserRole",
]
