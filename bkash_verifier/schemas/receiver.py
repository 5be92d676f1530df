"""Pydantic schemas for receivers."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReceiverCreate(BaseModel):
    """Register a new inbound bKash number."""

    phone: str = Field(..., min_length=11, max_length=20)
    label: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = None


class ReceiverResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    phone: str
    label: str
    status: str = Field(..., description="active | disabled")
    notes: Optional[str] = None
    created_at: datetime
