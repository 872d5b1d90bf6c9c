from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from models.appointment import (
    AppointmentMode,
    AppointmentStatus,
    AppointmentType,
    normalize_day,
    normalize_time,
)


def _parse_date(value):
    try:
        return normalize_day(value)
    except (TypeError, ValueError):
        raise ValueError("Valid appointment date is required") from None


class SlotRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appointment_date: datetime = Field(validation_alias=AliasChoices("appointment_date", "appointmentDate"))
    appointment_time: str = Field(validation_alias=AliasChoices("appointment_time", "appointmentTime"))

    @field_validator("appointment_date", mode="before")
    @classmethod
    def _date(cls, value):
        return _parse_date(value)

    @field_validator("appointment_time", mode="before")
    @classmethod
    def _time(cls, value):
        if not isinstance(value, str):
            raise ValueError("Valid time format is required (HH:MM)")
        return normalize_time(value)


class AppointmentBookingRequest(SlotRequest):
    doctor_id: str = Field(validation_alias=AliasChoices("doctor_id", "doctorId"))
    appointment_type: AppointmentType = Field(validation_alias=AliasChoices("appointment_type", "appointmentType"))
    appointment_mode: AppointmentMode = Field(validation_alias=AliasChoices("appointment_mode", "appointmentMode"))
    symptoms: List[str] = Field(default_factory=list)
    patient_notes: Optional[str] = Field(default=None, validation_alias=AliasChoices("patient_notes", "patientNotes"))
    is_emergency: bool = Field(default=False, validation_alias=AliasChoices("is_emergency", "isEmergency"))

    @field_validator("doctor_id")
    @classmethod
    def _doctor(cls, value: str) -> str:
        if not ObjectId.is_valid(value):
            raise ValueError("Valid doctor ID is required")
        return value


class RescheduleRequest(SlotRequest):
    reason: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: AppointmentStatus
    notes: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class RatingRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    review: Optional[str] = None


class ConsultationNotesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    follow_up: Optional[str] = Field(default=None, validation_alias=AliasChoices("follow_up", "followUp"))
    signature: Optional[str] = None
