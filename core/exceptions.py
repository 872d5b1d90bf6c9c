from __future__ import annotations

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base error for workflow rejections that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(AppError):
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class BusinessRuleError(AppError):
    status_code = 400


class AccessDeniedError(AppError):
    status_code = 403

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404
