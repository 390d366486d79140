"""Errors raised by the read client."""

from __future__ import annotations

from typing import Optional

ERROR_CODES = (
    "deadline-exceeded",
    "internal",
    "invalid-argument",
    "not-found",
    "permission-denied",
    "unauthenticated",
)


class StripePaymentsError(Exception):
    def __init__(self, code: str, message: str, cause: Optional[BaseException] = None):
        if code not in ERROR_CODES:
            raise ValueError(f"Unknown error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"
