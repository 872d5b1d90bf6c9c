"""
Appointment email templates.
Each template takes the notification context and returns (subject, text, html).
"""
from __future__ import annotations

from datetime import date, datetime
from html import escape
from typing import Any, Callable, Dict, List, Tuple


Rendered = Tuple[str, str, str]

THEME = {
    "primary": "#667eea",
    "background": "#f9f9f9",
    "text_primary": "#333333",
    "text_secondary": "#666666",
}


def _fmt_date(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.strftime("%A, %B %d, %Y")
    return str(value or "")


def _wrap_html(app_name: str, heading: str, greeting: str, paragraphs: List[str], details: Dict[str, str]) -> str:
    rows = "".join(
        f"<p><strong>{escape(label)}:</strong> {escape(value)}</p>" for label, value in details.items() if value
    )
    body = "".join(f'<p style="color: {THEME["text_secondary"]}; line-height: 1.6;">{escape(p)}</p>' for p in paragraphs)
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: {THEME['primary']}; color: white; padding: 30px; text-align: center;">
        <h1 style="margin: 0; font-size: 26px;">{escape(app_name)}</h1>
        <p style="margin: 10px 0 0 0; font-size: 16px;">{escape(heading)}</p>
      </div>
      <div style="padding: 30px; background: {THEME['background']};">
        <h2 style="color: {THEME['text_primary']};">{escape(greeting)}</h2>
        {body}
        <div style="background: white; padding: 20px; border-radius: 5px;">{rows}</div>
      </div>
    </div>
    """


def _wrap_text(greeting: str, paragraphs: List[str], details: Dict[str, str]) -> str:
    lines = [greeting, ""] + paragraphs + [""]
    lines += [f"{label}: {value}" for label, value in details.items() if value]
    return "\n".join(lines)


def _render(app_name: str, subject: str, heading: str, greeting: str, paragraphs: List[str], details: Dict[str, str]) -> Rendered:
    return (
        f"{subject} - {app_name}",
        _wrap_text(greeting, paragraphs, details),
        _wrap_html(app_name, heading, greeting, paragraphs, details),
    )


def appointment_confirmation(ctx: Dict[str, Any], app_name: str) -> Rendered:
    return _render(
        app_name,
        "Appointment Booked",
        "Appointment Booked",
        f"Hello {ctx.get('patient_name', '')},",
        ["Your appointment request has been received. Here are the details:"],
        {
            "Doctor": f"Dr. {ctx.get('doctor_name', '')}",
            "Date": _fmt_date(ctx.get("appointment_date")),
            "Time": str(ctx.get("appointment_time", "")),
            "Type": str(ctx.get("appointment_type", "")),
            "Mode": str(ctx.get("appointment_mode", "")),
            "Consultation fee": str(ctx.get("consultation_fee", "")),
        },
    )


def new_appointment_request(ctx: Dict[str, Any], app_name: str) -> Rendered:
    return _render(
        app_name,
        "New Appointment Request",
        "New Appointment Request",
        f"Hello Dr. {ctx.get('doctor_name', '')},",
        [f"{ctx.get('patient_name', 'A patient')} has requested an appointment with you."],
        {
            "Date": _fmt_date(ctx.get("appointment_date")),
            "Time": str(ctx.get("appointment_time", "")),
            "Type": str(ctx.get("appointment_type", "")),
            "Mode": str(ctx.get("appointment_mode", "")),
        },
    )


def appointment_status_update(ctx: Dict[str, Any], app_name: str) -> Rendered:
    new_status = str(ctx.get("new_status", ""))
    return _render(
        app_name,
        f"Appointment {new_status.replace('_', ' ').capitalize()}",
        "Appointment Status Update",
        f"Hello {ctx.get('patient_name', '')},",
        [f"The status of your appointment changed from {ctx.get('old_status')} to {new_status}."],
        {
            "Doctor": f"Dr. {ctx.get('doctor_name', '')}",
            "Date": _fmt_date(ctx.get("appointment_date")),
            "Time": str(ctx.get("appointment_time", "")),
            "Notes": str(ctx.get("notes") or ""),
        },
    )


def appointment_rescheduled(ctx: Dict[str, Any], app_name: str) -> Rendered:
    return _render(
        app_name,
        "Appointment Rescheduled",
        "Appointment Rescheduled",
        f"Hello {ctx.get('recipient_name', '')},",
        [f"Your appointment with {ctx.get('counterpart_name', '')} was rescheduled by the {ctx.get('rescheduled_by')}."],
        {
            "Previous date": _fmt_date(ctx.get("old_date")),
            "Previous time": str(ctx.get("old_time", "")),
            "New date": _fmt_date(ctx.get("new_date")),
            "New time": str(ctx.get("new_time", "")),
            "Reason": str(ctx.get("reason") or "No reason provided"),
        },
    )


def appointment_cancelled(ctx: Dict[str, Any], app_name: str) -> Rendered:
    return _render(
        app_name,
        "Appointment Cancelled",
        "Appointment Cancelled",
        f"Hello {ctx.get('recipient_name', '')},",
        [f"Your appointment with {ctx.get('counterpart_name', '')} was cancelled by the {ctx.get('cancelled_by')}."],
        {
            "Date": _fmt_date(ctx.get("appointment_date")),
            "Time": str(ctx.get("appointment_time", "")),
            "Reason": str(ctx.get("reason") or "No reason provided"),
        },
    )


def appointment_reminder(ctx: Dict[str, Any], app_name: str) -> Rendered:
    return _render(
        app_name,
        "Appointment Reminder",
        "Appointment Reminder",
        f"Hello {ctx.get('patient_name', '')},",
        ["This is a friendly reminder about your upcoming appointment."],
        {
            "Doctor": f"Dr. {ctx.get('doctor_name', '')}",
            "Date": _fmt_date(ctx.get("appointment_date")),
            "Time": str(ctx.get("appointment_time", "")),
            "Type": str(ctx.get("appointment_type", "")),
            "Mode": str(ctx.get("appointment_mode", "")),
        },
    )


TEMPLATES: Dict[str, Callable[[Dict[str, Any], str], Rendered]] = {
    "appointment_confirmation": appointment_confirmation,
    "new_appointment_request": new_appointment_request,
    "appointment_status_update": appointment_status_update,
    "appointment_rescheduled": appointment_rescheduled,
    "appointment_cancelled": appointment_cancelled,
    "appointment_reminder": appointment_reminder,
}


def render(template: str, ctx: Dict[str, Any], app_name: str) -> Rendered:
    try:
        builder = TEMPLATES[template]
    except KeyError:
        raise ValueError(f"Unknown email template: {template}") from None
    return builder(ctx, app_name)
