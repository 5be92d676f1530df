"""Pydantic schemas for payment receipts and SMS ingestion."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from bkash_verifier.schemas.verification import VerdictResponse


class ParsedSms(BaseModel):
    """Fields extracted from one provider SMS."""

    reference: str = Field(..., max_length=64, description="Provider TrxID")
    amount_minor: int = Field(..., description="Amount in poisha")
    sender_id: Optional[str] = Field(None, max_length=20)
    event_time: datetime = Field(
        ...,
        description="Payment time reported by the provider (naive UTC)",
    )


class ReceiptCreate(ParsedSms):
    """Request body for ingesting an already-parsed receipt."""

    receiver_id: str = Field(
        ...,
        max_length=20,
        description="Which of our receivers got the money",
    )


class SmsWebhookRequest(BaseModel):
    """Raw SMS relayed from the receiving phone."""

    raw_sms: str = Field(..., description="SMS body exactly as received")
    receiver_phone: str = Field(
        ...,
        max_length=20,
        description="The receiver number the SMS arrived on",
    )


class ReceiptResponse(BaseModel):
    """Stored receipt as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    reference: str
    amount_minor: int
    receiver_id: str
    sender_id: Optional[str] = None
    event_time: datetime
    ingested_at: datetime


class VerificationSummary(BaseModel):
    """What happened when the new receipt was matched against sessions."""

    attempted: int = 0
    verified: int = 0
    rejected: int = 0
    results: list[VerdictResponse] = Field(default_factory=list)


class IngestResponse(BaseModel):
    """Response for both ingestion routes."""

    is_new: bool = Field(
        ...,
        description="False when the reference was already known (idempotent replay)",
    )
    receipt: ReceiptResponse
    parsed: Optional[ParsedSms] = None
    verification: VerificationSummary
