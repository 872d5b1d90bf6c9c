from __future__ import annotations

# Re-export key service classes for convenient imports
from .communication import EmailService
from .notifications import EmailNotifier, NotificationDispatcher

__all__ = ["EmailService", "EmailNotifier", "NotificationDispatcher"]
