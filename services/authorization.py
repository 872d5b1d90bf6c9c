"""Ownership checks shared by the appointment and chat workflows."""
from __future__ import annotations

from typing import Callable

from core.exceptions import AccessDeniedError
from models.appointment import Appointment
from models.user import User


Predicate = Callable[[Appointment, User], bool]


def is_participant(appointment: Appointment, user: User) -> bool:
    return appointment.is_participant(user.id)


def is_participant_or_admin(appointment: Appointment, user: User) -> bool:
    return user.is_admin or appointment.is_participant(user.id)


def is_doctor_owner_or_admin(appointment: Appointment, user: User) -> bool:
    return user.is_admin or appointment.is_doctor(user.id)


def is_patient_owner(appointment: Appointment, user: User) -> bool:
    return appointment.is_patient(user.id)


def authorize(appointment: Appointment, user: User, predicate: Predicate) -> None:
    if not predicate(appointment, user):
        raise AccessDeniedError()
