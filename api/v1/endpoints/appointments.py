from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from api.v1.deps import get_appointment_service
from core.exceptions import ValidationFailed
from models.appointment import AppointmentStatus, normalize_day
from models.user import User
from schemas.appointments import (
    AppointmentBookingRequest,
    CancelRequest,
    ConsultationNotesRequest,
    RatingRequest,
    RescheduleRequest,
    StatusUpdateRequest,
)
from schemas.common import success
from services.appointments import AppointmentService
from services.security import (
    get_current_user,
    require_doctor,
    require_doctor_or_admin,
    require_patient,
)


router = APIRouter(prefix="/appointments", tags=["appointments"])


def _parse_day(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return normalize_day(value)
    except ValueError:
        raise ValidationFailed("Validation failed", [{"field": field, "message": "Invalid date format. Use YYYY-MM-DD"}]) from None


async def _book(payload: AppointmentBookingRequest, patient: User, service: AppointmentService) -> Dict[str, Any]:
    appointment = await service.book_appointment(payload.model_dump(), patient)
    [data] = await service.populate([appointment])
    return success({"appointment": data}, "Appointment booked successfully")


@router.post("", status_code=status.HTTP_201_CREATED)
async def book_appointment(
    payload: AppointmentBookingRequest,
    patient: User = Depends(require_patient),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    return await _book(payload, patient, service)


@router.post("/book", status_code=status.HTTP_201_CREATED)
async def book_appointment_alias(
    payload: AppointmentBookingRequest,
    patient: User = Depends(require_patient),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    return await _book(payload, patient, service)


@router.get("")
async def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    date: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    items, pages = await service.list_appointments(
        current_user,
        status=status_filter.value if status_filter else None,
        day=_parse_day(date, "date"),
        page=page,
        limit=limit,
    )
    return success({"appointments": await service.populate(items), "pagination": pages})


@router.get("/patient")
async def list_patient_appointments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    patient: User = Depends(require_patient),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    items, pages = await service.list_appointments(patient, page=page, limit=limit, scope_role="patient")
    return success({"appointments": await service.populate(items), "pagination": pages})


@router.get("/doctor")
async def list_doctor_appointments(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    doctor: User = Depends(require_doctor),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    items, pages = await service.list_appointments(doctor, page=page, limit=limit, scope_role="doctor")
    return success({"appointments": await service.populate(items), "pagination": pages})


@router.get("/check")
async def check_availability(
    doctor: Optional[str] = None,
    appointment_date: Optional[str] = None,
    appointment_time: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    available = await service.check_doctor_availability(doctor, appointment_date, appointment_time)
    return success(available=available)


@router.get("/upcoming")
async def upcoming_appointments(
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    items = await service.upcoming_appointments(current_user)
    return success({"appointments": await service.populate(items)})


@router.get("/stats")
async def appointment_statistics(
    doctor_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    current_user: User = Depends(require_doctor_or_admin),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    stats = await service.statistics(
        current_user,
        doctor_id=doctor_id,
        start=_parse_day(start_date, "start_date"),
        end=_parse_day(end_date, "end_date"),
    )
    return success({"statistics": stats})


@router.get("/{appointment_id}")
async def get_appointment(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    appointment = await service.get_appointment(appointment_id, current_user)
    [data] = await service.populate([appointment])
    return success({"appointment": data})


@router.put("/{appointment_id}/status")
async def update_appointment_status(
    appointment_id: str,
    payload: StatusUpdateRequest,
    current_user: User = Depends(require_doctor_or_admin),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    appointment = await service.update_status(appointment_id, payload.status.value, payload.notes, current_user)
    [data] = await service.populate([appointment])
    return success({"appointment": data}, "Appointment status updated successfully")


@router.put("/{appointment_id}/reschedule")
async def reschedule_appointment(
    appointment_id: str,
    payload: RescheduleRequest,
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    appointment = await service.reschedule(appointment_id, payload.model_dump(), current_user)
    [data] = await service.populate([appointment])
    return success({"appointment": data}, "Appointment rescheduled successfully")


@router.delete("/{appointment_id}")
async def cancel_appointment(
    appointment_id: str,
    payload: Optional[CancelRequest] = Body(default=None),
    current_user: User = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    reason = payload.reason if payload else None
    appointment = await service.cancel(appointment_id, reason, current_user)
    [data] = await service.populate([appointment])
    return success({"appointment": data}, "Appointment cancelled successfully")


@router.post("/{appointment_id}/rating")
async def rate_appointment(
    appointment_id: str,
    payload: RatingRequest,
    patient: User = Depends(require_patient),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    appointment = await service.rate(appointment_id, payload.rating, payload.review, patient)
    [data] = await service.populate([appointment])
    return success({"appointment": data}, "Appointment rated successfully")


@router.put("/{appointment_id}/notes")
async def update_consultation_notes(
    appointment_id: str,
    payload: ConsultationNotesRequest,
    current_user: User = Depends(require_doctor_or_admin),
    service: AppointmentService = Depends(get_appointment_service),
) -> Dict[str, Any]:
    appointment = await service.update_consultation_notes(
        appointment_id, payload.model_dump(exclude_unset=True), current_user
    )
    [data] = await service.populate([appointment])
    return success({"appointment": data}, "Consultation notes updated successfully")
