from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from bson import ObjectId

from core.config import AppSettings, settings as default_settings
from core.exceptions import BusinessRuleError, NotFoundError, ValidationFailed
from models.appointment import (
    Appointment,
    AppointmentStatus,
    Payment,
    RescheduledFrom,
    normalize_day,
    normalize_time,
)
from models.user import User, UserRole
from repositories.appointments import (
    AppointmentRepository,
    list_query,
    pagination,
    upcoming_query,
)
from repositories.base import utcnow
from repositories.users import UserRepository
from services.authorization import (
    authorize,
    is_doctor_owner_or_admin,
    is_participant_or_admin,
    is_patient_owner,
)
from services.availability import AvailabilityChecker
from services.notifications import Notification, NotificationDispatcher


logger = logging.getLogger(__name__)

SLOT_TAKEN = "Selected time slot is not available"
DOCTOR_UNAVAILABLE = "Doctor not found or not verified"


class AppointmentService:
    """Appointment lifecycle: booking, listing and the status workflow.

    Every mutation is a load, mutate, save of a single document. Emails go out
    through the dispatcher only after the save, and their failures never reach
    the caller.
    """

    def __init__(
        self,
        appointments: AppointmentRepository,
        users: UserRepository,
        dispatcher: NotificationDispatcher,
        availability: Optional[AvailabilityChecker] = None,
        config: Optional[AppSettings] = None,
    ) -> None:
        self.appointments = appointments
        self.users = users
        self.dispatcher = dispatcher
        self.availability = availability or AvailabilityChecker(appointments)
        self.config = config or default_settings

    async def _load(self, appointment_id: Any) -> Appointment:
        if not AppointmentRepository.is_valid_id(appointment_id):
            raise ValidationFailed("Invalid appointment id")
        appointment = await self.appointments.get(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    async def _parties(self, appointment: Appointment) -> tuple[Optional[User], Optional[User]]:
        found = await self.users.get_many([appointment.patient_id, appointment.doctor_id])
        return found.get(str(appointment.patient_id)), found.get(str(appointment.doctor_id))

    async def populate(self, appointments: Iterable[Appointment]) -> List[Dict[str, Any]]:
        """Serialize appointments with patient/doctor display fields in place of bare ids."""
        items = list(appointments)
        ids: List[ObjectId] = []
        for a in items:
            ids.extend([a.patient_id, a.doctor_id])
        people = await self.users.get_many(ids)
        results: List[Dict[str, Any]] = []
        for a in items:
            data = a.model_dump(mode="json")
            patient = people.get(str(a.patient_id))
            doctor = people.get(str(a.doctor_id))
            data["patient"] = patient.display() if patient else {"id": str(a.patient_id)}
            data["doctor"] = doctor.display() if doctor else {"id": str(a.doctor_id)}
            results.append(data)
        return results

    # ---------------- Booking ----------------

    async def book_appointment(self, data: Mapping[str, Any], patient: User) -> Appointment:
        doctor = await self.users.get_bookable_doctor(data.get("doctor_id"))
        if doctor is None:
            raise BusinessRuleError(DOCTOR_UNAVAILABLE)

        day = normalize_day(data["appointment_date"])
        slot = normalize_time(data["appointment_time"])
        if self.config.reject_past_appointments and day < normalize_day(utcnow()):
            raise BusinessRuleError("Appointment date cannot be in the past")

        if not await self.availability.check_availability(doctor.id, day, slot):
            raise BusinessRuleError(SLOT_TAKEN)

        fee = doctor.doctor_info.consultation_fee if doctor.doctor_info else 0.0
        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id,
            appointment_date=day,
            appointment_time=slot,
            appointment_type=data.get("appointment_type") or "consultation",
            appointment_mode=data.get("appointment_mode") or "in_person",
            symptoms=list(data.get("symptoms") or []),
            patient_notes=data.get("patient_notes"),
            is_emergency=bool(data.get("is_emergency", False)),
            status=AppointmentStatus.pending,
            consultation_fee=fee,
            payment=Payment(amount=fee, currency=self.config.default_currency),
        )
        appointment = await self.appointments.create(appointment)
        logger.info(
            "appointments.book.created",
            extra={
                "appointment_id": str(appointment.id),
                "doctor_id": str(doctor.id),
                "patient_id": str(patient.id),
                "date": day.date().isoformat(),
                "time": slot,
            },
        )

        shared = {
            "appointment_date": day,
            "appointment_time": slot,
            "appointment_type": appointment.appointment_type,
            "appointment_mode": appointment.appointment_mode,
        }
        await self.dispatcher.dispatch(
            Notification(
                to=patient.email,
                template="appointment_confirmation",
                context={
                    **shared,
                    "patient_name": patient.first_name,
                    "doctor_name": doctor.full_name,
                    "consultation_fee": fee,
                },
            ),
            Notification(
                to=doctor.email,
                template="new_appointment_request",
                context={**shared, "doctor_name": doctor.first_name, "patient_name": patient.full_name},
            ),
        )
        return appointment

    async def check_doctor_availability(self, doctor_id: Any, appointment_date: Any, appointment_time: Any) -> bool:
        return await self.availability.check_availability(doctor_id, appointment_date, appointment_time)

    # ---------------- Queries ----------------

    async def list_appointments(
        self,
        user: User,
        *,
        status: Optional[str] = None,
        day: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10,
        scope_role: Optional[str] = None,
    ) -> tuple[List[Appointment], Dict[str, Any]]:
        query = list_query(user.id, scope_role or user.role, status=status, day=day)
        items, total = await self.appointments.list_page(query, page=page, limit=limit)
        return items, pagination(page, limit, total)

    async def upcoming_appointments(self, user: User) -> List[Appointment]:
        query = upcoming_query(user.id, user.role, utcnow())
        return await self.appointments.upcoming(query, limit=self.config.upcoming_limit)

    async def get_appointment(self, appointment_id: Any, user: User) -> Appointment:
        appointment = await self._load(appointment_id)
        authorize(appointment, user, is_participant_or_admin)
        return appointment

    async def statistics(
        self,
        user: User,
        *,
        doctor_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if user.role == UserRole.doctor.value:
            scoped = user.id
        elif doctor_id:
            if not AppointmentRepository.is_valid_id(doctor_id):
                raise ValidationFailed("Valid doctor ID is required")
            scoped = ObjectId(doctor_id)
        else:
            scoped = None
        end_day = normalize_day(end or utcnow())
        start_day = normalize_day(start) if start else end_day - timedelta(days=30)
        rows = await self.appointments.statistics(scoped, start_day, end_day)
        return {
            "doctor_id": str(scoped) if scoped else None,
            "start_date": start_day.date().isoformat(),
            "end_date": end_day.date().isoformat(),
            "by_status": rows,
            "total_appointments": sum(r["count"] for r in rows),
            "total_revenue": sum(r["total_revenue"] for r in rows),
        }

    # ---------------- Status workflow ----------------

    async def update_status(
        self, appointment_id: Any, new_status: str, notes: Optional[str], user: User
    ) -> Appointment:
        try:
            new_status = AppointmentStatus(new_status).value
        except ValueError:
            raise ValidationFailed("Invalid appointment status") from None
        appointment = await self._load(appointment_id)
        authorize(appointment, user, is_doctor_owner_or_admin)

        old_status = appointment.status
        appointment.status = new_status
        if notes:
            appointment.doctor_notes = notes
        await self.appointments.save(appointment)
        logger.info(
            "appointments.status.updated",
            extra={"appointment_id": str(appointment.id), "from": old_status, "to": new_status, "by": str(user.id)},
        )

        if new_status != old_status:
            patient, doctor = await self._parties(appointment)
            if patient is not None:
                await self.dispatcher.dispatch(
                    Notification(
                        to=patient.email,
                        template="appointment_status_update",
                        context={
                            "patient_name": patient.first_name,
                            "doctor_name": doctor.full_name if doctor else "",
                            "appointment_date": appointment.appointment_date,
                            "appointment_time": appointment.appointment_time,
                            "old_status": old_status,
                            "new_status": new_status,
                            "notes": notes or "",
                        },
                    )
                )
        return appointment

    async def reschedule(self, appointment_id: Any, data: Mapping[str, Any], user: User) -> Appointment:
        appointment = await self._load(appointment_id)
        authorize(appointment, user, is_participant_or_admin)

        day = normalize_day(data["appointment_date"])
        slot = normalize_time(data["appointment_time"])
        available = await self.availability.check_availability(
            appointment.doctor_id, day, slot, exclude_appointment_id=appointment.id
        )
        if not available:
            raise BusinessRuleError(SLOT_TAKEN)

        previous = RescheduledFrom(date=appointment.appointment_date, time=appointment.appointment_time)
        appointment.appointment_date = day
        appointment.appointment_time = slot
        appointment.rescheduled_from = previous
        appointment.rescheduled_by = user.id
        appointment.rescheduled_at = utcnow()
        appointment.status = AppointmentStatus.pending.value
        await self.appointments.save(appointment)
        logger.info(
            "appointments.rescheduled",
            extra={
                "appointment_id": str(appointment.id),
                "from": f"{previous.date.date().isoformat()} {previous.time}",
                "to": f"{day.date().isoformat()} {slot}",
                "by": str(user.id),
            },
        )

        reason = data.get("reason") or "No reason provided"
        shared = {
            "old_date": previous.date,
            "old_time": previous.time,
            "new_date": day,
            "new_time": slot,
            "rescheduled_by": user.role,
            "reason": reason,
        }
        parties = await self._parties(appointment)
        await self.dispatcher.dispatch(*self._both_parties(parties, "appointment_rescheduled", shared))
        return appointment

    async def cancel(self, appointment_id: Any, reason: Optional[str], user: User) -> Appointment:
        appointment = await self._load(appointment_id)
        authorize(appointment, user, is_participant_or_admin)

        appointment.status = AppointmentStatus.cancelled.value
        appointment.cancellation_reason = reason
        appointment.cancelled_by = user.id
        appointment.cancelled_at = utcnow()
        await self.appointments.save(appointment)
        logger.info(
            "appointments.cancelled",
            extra={"appointment_id": str(appointment.id), "by": str(user.id), "reason": reason},
        )

        shared = {
            "appointment_date": appointment.appointment_date,
            "appointment_time": appointment.appointment_time,
            "cancelled_by": user.role,
            "reason": reason or "No reason provided",
        }
        parties = await self._parties(appointment)
        await self.dispatcher.dispatch(*self._both_parties(parties, "appointment_cancelled", shared))
        return appointment

    @staticmethod
    def _both_parties(
        parties: tuple[Optional[User], Optional[User]],
        template: str,
        shared: Dict[str, Any],
    ) -> List[Notification]:
        patient, doctor = parties
        out: List[Notification] = []
        if patient is not None:
            out.append(
                Notification(
                    to=patient.email,
                    template=template,
                    context={
                        **shared,
                        "recipient_name": patient.first_name,
                        "counterpart_name": f"Dr. {doctor.full_name}" if doctor else "your doctor",
                    },
                )
            )
        if doctor is not None:
            out.append(
                Notification(
                    to=doctor.email,
                    template=template,
                    context={
                        **shared,
                        "recipient_name": f"Dr. {doctor.first_name}",
                        "counterpart_name": patient.full_name if patient else "your patient",
                    },
                )
            )
        return out

    async def rate(self, appointment_id: Any, rating: int, review: Optional[str], user: User) -> Appointment:
        appointment = await self._load(appointment_id)
        authorize(appointment, user, is_patient_owner)
        if appointment.status != AppointmentStatus.completed.value:
            raise BusinessRuleError("Can only rate completed appointments")
        if not 1 <= int(rating) <= 5:
            raise ValidationFailed("Rating must be between 1 and 5")

        appointment.rating = int(rating)
        appointment.review = review
        appointment.review_date = utcnow()
        await self.appointments.save(appointment)

        ratings = await self.appointments.rated_for_doctor(appointment.doctor_id)
        if ratings:
            average = sum(ratings) / len(ratings)
            await self.users.set_doctor_rating(appointment.doctor_id, average, len(ratings))
            logger.info(
                "appointments.rated",
                extra={
                    "appointment_id": str(appointment.id),
                    "doctor_id": str(appointment.doctor_id),
                    "rating": appointment.rating,
                    "doctor_average": average,
                    "total_reviews": len(ratings),
                },
            )
        return appointment

    async def update_consultation_notes(
        self, appointment_id: Any, notes: Mapping[str, Optional[str]], user: User
    ) -> Appointment:
        appointment = await self._load(appointment_id)
        authorize(appointment, user, is_doctor_owner_or_admin)

        # Only keys present in the request are written.
        fields = {
            "diagnosis": "diagnosis",
            "treatment": "treatment",
            "follow_up": "follow_up_notes",
            "signature": "doctor_notes",
        }
        for key, attr in fields.items():
            if key in notes:
                setattr(appointment, attr, notes[key])
        await self.appointments.save(appointment)
        logger.info(
            "appointments.notes.updated",
            extra={"appointment_id": str(appointment.id), "fields": sorted(k for k in notes if k in fields)},
        )
        return appointment
