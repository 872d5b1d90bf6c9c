from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from dotenv import load_dotenv
from pymongo.database import Database

from core.config import settings
from db.database import close_sync_database, get_sync_database
from models.appointment import Appointment, AppointmentStatus, normalize_day
from models.user import User
from services.communication import EmailService
from services.email_templates import render


load_dotenv()
logger = logging.getLogger(__name__)


def reminder_day(now: Optional[datetime] = None) -> datetime:
    """Midnight of the calendar day after `now`."""
    return normalize_day(now or datetime.utcnow()) + timedelta(days=1)


def due_reminders_query(day: datetime) -> Dict[str, Any]:
    return {
        "status": AppointmentStatus.confirmed.value,
        "appointment_date": {"$gte": day, "$lt": day + timedelta(days=1)},
    }


def find_due_reminders(db: Database, day: datetime, limit: int = 500) -> List[Appointment]:
    cursor = db.appointments.find(due_reminders_query(day), {"chat_messages": 0}).limit(limit)
    return [Appointment.from_mongo(doc) for doc in cursor]


def _users_by_id(db: Database, ids: Iterable[Any]) -> Dict[str, User]:
    unique = list({i for i in ids if i is not None})
    if not unique:
        return {}
    return {str(doc["_id"]): User.from_mongo(doc) for doc in db.users.find({"_id": {"$in": unique}})}


def send_reminders(
    db: Database,
    email_service: EmailService,
    now: Optional[datetime] = None,
    limit: int = 500,
) -> int:
    day = reminder_day(now)
    due = find_due_reminders(db, day, limit=limit)
    print(f"[CRON:REMINDERS] Found {len(due)} confirmed appointments on {day.date().isoformat()}")

    people = _users_by_id(db, [a.patient_id for a in due] + [a.doctor_id for a in due])
    sent = 0
    for appointment in due:
        patient = people.get(str(appointment.patient_id))
        doctor = people.get(str(appointment.doctor_id))
        if patient is None or not patient.email:
            logger.warning("reminders.patient_missing", extra={"appointment_id": str(appointment.id)})
            continue
        context = {
            "patient_name": patient.full_name,
            "doctor_name": doctor.full_name if doctor else "",
            "appointment_date": appointment.appointment_date,
            "appointment_time": appointment.appointment_time,
            "appointment_type": appointment.appointment_type,
            "appointment_mode": appointment.appointment_mode,
        }
        subject, text, html = render("appointment_reminder", context, settings.app_name)
        ok, detail = email_service.send(patient.email, subject, text, html=html)
        if ok:
            sent += 1
        else:
            logger.warning(
                "reminders.not_delivered",
                extra={"appointment_id": str(appointment.id), "detail": detail},
            )

    print(f"[CRON:REMINDERS] Sent {sent} reminders")
    return sent


def main() -> None:
    try:
        send_reminders(
            get_sync_database(),
            EmailService(),
            limit=int(os.getenv("REMINDERS_LIMIT", "500")),
        )
    finally:
        close_sync_database()


if __name__ == "__main__":
    main()
