"""Pydantic models for the HTTP surface."""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# REQUEST MODELS (Input Validation)
# =============================================================================

class PortalLinkRequest(BaseModel):
    """Body of the customer portal callable."""
    returnUrl: Optional[str] = Field(default=None, max_length=2048)
    locale: str = Field(default="auto", max_length=16)
    configuration: Optional[str] = Field(default=None, max_length=255)
    flow_data: Optional[Dict[str, Any]] = None

    @field_validator('returnUrl')
    @classmethod
    def validate_return_url(cls, v):
        if v is not None and not v.startswith(("https://", "http://")):
            raise ValueError('returnUrl must be an http(s) URL')
        return v


class AuthEvent(BaseModel):
    """Firebase Auth user lifecycle event forwarded to the service."""
    type: Literal["user.created", "user.deleted"]
    uid: str = Field(..., min_length=1, max_length=128)
    email: Optional[str] = None
    phone: Optional[str] = Field(default=None, alias="phoneNumber")

    model_config = {"populate_by_name": True}


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class WebhookAck(BaseModel):
    received: bool = True


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    code: str
    details: Optional[Dict[str, Any]] = None
