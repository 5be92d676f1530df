"""Pydantic schemas for verdicts and sweep reports."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class VerdictResponse(BaseModel):
    """Full match-engine verdict (admin / webhook / sweep callers only)."""

    model_config = ConfigDict(from_attributes=True)

    status: str = Field(..., description="verified | rejected | inconclusive")
    reason: Optional[str] = Field(
        None,
        description=(
            "reference_mismatch | amount_mismatch | receiver_not_authorized "
            "| outside_time_window | already_claimed | session_closed"
        ),
    )
    detail: str = ""
    session_id: Optional[str] = None
    receipt_id: Optional[str] = None


class SweepReportResponse(BaseModel):
    """Counters for one sweep tick."""

    model_config = ConfigDict(from_attributes=True)

    expired_count: int = 0
    verified_count: int = 0
    failed_count: int = 0
    still_pending_count: int = 0
    error_count: int = Field(
        0,
        description="Sessions whose retry raised; they stay declared",
    )
    processed_count: int = 0
    duration_ms: int = 0


def verdict_response(verdict) -> VerdictResponse:
    """Convert an engine ``Verdict`` into its API shape."""
    return VerdictResponse(
        status=verdict.status.value,
        reason=verdict.reason.value if verdict.reason is not None else None,
        detail=verdict.detail,
        session_id=verdict.session_id,
        receipt_id=verdict.receipt_id,
    )
