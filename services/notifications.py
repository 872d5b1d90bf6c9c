from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from core.config import settings
from services.communication import EmailService
from services.email_templates import render


logger = logging.getLogger(__name__)


@dataclass
class Notification:
    to: str
    template: str
    context: Dict[str, Any] = field(default_factory=dict)
    subject: Optional[str] = None


@dataclass
class NotificationOutcome:
    delivered: bool
    detail: Optional[str] = None


class Notifier(Protocol):
    async def send(self, notification: Notification) -> NotificationOutcome:
        ...


class EmailNotifier:
    """Renders a template and hands it to the blocking SMTP sender on a worker thread."""

    def __init__(self, email_service: Optional[EmailService] = None, app_name: Optional[str] = None) -> None:
        self.email_service = email_service or EmailService()
        self.app_name = app_name or settings.app_name

    async def send(self, notification: Notification) -> NotificationOutcome:
        subject, text, html = render(notification.template, notification.context, self.app_name)
        ok, detail = await asyncio.to_thread(
            self.email_service.send,
            notification.to,
            notification.subject or subject,
            text,
            html,
        )
        return NotificationOutcome(delivered=ok, detail=detail)


class NotificationDispatcher:
    """Best-effort delivery. Runs after the state change is persisted and never raises."""

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier

    async def dispatch(self, *notifications: Notification) -> List[NotificationOutcome]:
        outcomes: List[NotificationOutcome] = []
        for notification in notifications:
            log_extra = {"to": notification.to, "template": notification.template}
            try:
                outcome = await self.notifier.send(notification)
            except Exception as exc:
                logger.exception("notification.send_error", extra=log_extra)
                outcome = NotificationOutcome(delivered=False, detail=str(exc))
            else:
                if outcome.delivered:
                    logger.info("notification.sent", extra=log_extra)
                else:
                    logger.warning("notification.not_delivered", extra={**log_extra, "detail": outcome.detail})
            outcomes.append(outcome)
        return outcomes
