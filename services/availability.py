from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional

from bson import ObjectId

from core.exceptions import ValidationFailed
from models.appointment import normalize_day, normalize_time
from repositories.appointments import AppointmentRepository


logger = logging.getLogger(__name__)


class AvailabilityChecker:
    """Answers whether a doctor's (date, time) slot is free.

    A slot is taken by any appointment that is not cancelled. The check is a
    plain read; booking performs it and then inserts, so two concurrent
    requests for the same slot can both pass.
    """

    def __init__(self, appointments: AppointmentRepository) -> None:
        self.appointments = appointments

    async def check_availability(
        self,
        doctor_id: Any,
        appointment_date: date | datetime | str | None,
        appointment_time: Optional[str],
        exclude_appointment_id: Optional[ObjectId] = None,
    ) -> bool:
        if not doctor_id or not appointment_date or not appointment_time:
            raise ValidationFailed("Missing required parameters for availability check.")
        if not AppointmentRepository.is_valid_id(doctor_id):
            raise ValidationFailed("Valid doctor ID is required")
        try:
            day = normalize_day(appointment_date)
            slot = normalize_time(appointment_time)
        except ValueError as exc:
            raise ValidationFailed(str(exc)) from exc

        conflict = await self.appointments.has_conflict(
            doctor_id, day, slot, exclude_appointment_id
        )
        logger.info(
            "availability.checked",
            extra={
                "doctor_id": str(doctor_id),
                "date": day.date().isoformat(),
                "time": slot,
                "excluded": str(exclude_appointment_id) if exclude_appointment_id else None,
                "available": not conflict,
            },
        )
        return not conflict
