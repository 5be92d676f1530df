"""Manual sweep trigger, for operators and for cron-driven deployments."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bkash_verifier.core.config import settings
from bkash_verifier.core.database import get_db
from bkash_verifier.core.logging import get_logger
from bkash_verifier.schemas.verification import SweepReportResponse
from bkash_verifier.services.verification.fulfillment import (
    FulfillmentSink,
    get_fulfillment_sink,
)
from bkash_verifier.services.verification.sweep import SweepScheduler

logger = get_logger(__name__)

router = APIRouter()


@router.post("/run", response_model=SweepReportResponse)
def run_sweep(
    db: Session = Depends(get_db),
    fulfillment: FulfillmentSink = Depends(get_fulfillment_sink),
) -> SweepReportResponse:
    """Expire overdue sessions and retry every declared one, right now."""
    logger.info("Manual sweep requested")
    report = SweepScheduler(db, settings, fulfillment).sweep()
    return SweepReportResponse(**report.as_dict())
