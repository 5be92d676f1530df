"""Pydantic schemas for tracking sessions."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CustomerInfo(BaseModel):
    """Who is paying; forwarded to fulfillment untouched."""

    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=1, max_length=20)
    email: str = Field(..., min_length=3, max_length=254)


class SessionCreate(BaseModel):
    """Request body for opening a new payment session (checkout flow)."""

    item_code: str = Field(..., min_length=1, max_length=100)
    ticket_choice: str = Field(..., min_length=1, max_length=200)
    amount_minor: int = Field(..., gt=0, description="Expected amount in poisha")
    customer_info: CustomerInfo
    form_data: Optional[dict[str, Any]] = None
    verification_method: Literal["auto", "manual"] = "auto"


class SessionCreateResponse(BaseModel):
    """Returned to the checkout flow after a session is opened."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    amount_minor: int
    offered_receivers: list[str]
    expires_at: datetime


class SessionResponse(BaseModel):
    """Full session record, including the resolution details (admin view)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    item_code: str
    ticket_choice: str
    amount_minor: int
    offered_receivers: list[str]
    declared_reference: Optional[str] = None
    customer_info: dict[str, Any]
    form_data: Optional[dict[str, Any]] = None
    verification_method: str
    status: str = Field(
        ...,
        description="pending | declared | verified | failed | expired | canceled",
    )
    resolved_receipt_id: Optional[str] = None
    failure_reason: Optional[str] = None
    resolution_note: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime


class SubmitReferenceRequest(BaseModel):
    """Customer-entered TrxID."""

    reference: str = Field(..., min_length=1, max_length=64)


class SubmitReferenceResponse(BaseModel):
    """Customer-facing outcome; never reveals which rule failed."""

    status: Literal["verified", "submitted"]
    message: str


class CancelRequest(BaseModel):
    """Admin cancel with an optional note for the audit trail."""

    note: Optional[str] = Field(None, max_length=500)
