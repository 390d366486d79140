"""Exceptions raised by the sync handlers and callables."""

from __future__ import annotations

from typing import Any, Dict, Optional


class StripeSyncError(Exception):
    """Base error carrying a machine-readable code and extra context."""

    code = "SYNC_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}


class CustomerNotFoundError(StripeSyncError):
    code = "CUSTOMER_NOT_FOUND"


class MultipleCustomersError(StripeSyncError):
    code = "MULTIPLE_CUSTOMERS"


class InvoiceNotFoundError(StripeSyncError):
    code = "INVOICE_NOT_FOUND"


class UnsupportedClientError(StripeSyncError):
    code = "UNSUPPORTED_CLIENT"


class CallableError(StripeSyncError):
    """Error surfaced to authenticated callers.

    ``code`` is one of ``unauthenticated``, ``invalid-argument``,
    ``not-found`` or ``internal``.
    """

    STATUS_CODES = {
        "unauthenticated": 401,
        "invalid-argument": 400,
        "not-found": 404,
        "internal": 500,
    }

    @property
    def status_code(self) -> int:
        return self.STATUS_CODES.get(self.code, 500)
