"""Typed ledger errors translated to HTTP responses by the app."""

from typing import Any


class LedgerError(Exception):
    """Base exception for ledger errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(LedgerError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=422, details=details)


class NotFoundError(LedgerError):
    def __init__(self, resource: str, identifier: Any | None = None):
        message = f"{resource} not found"
        details = {}
        if identifier is not None:
            details = {"id": identifier}
        super().__init__(message=message, status_code=404, details=details)


class ConflictError(LedgerError):
    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=409, details=details)
