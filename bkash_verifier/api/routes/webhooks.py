"""Receipt ingestion endpoints.

The SMS relay on each receiving phone posts here.  Replays of a known
TrxID are answered with 200 and the stored receipt; a new receipt gets
201 and is matched against waiting sessions before the response.
"""

from __future__ import annotations

import hmac
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from sqlalchemy.orm import Session

from bkash_verifier.api.errors import http_error
from bkash_verifier.core.config import settings
from bkash_verifier.core.database import get_db
from bkash_verifier.core.exceptions import ReceiptNotFoundError, VerifierError
from bkash_verifier.core.logging import get_logger
from bkash_verifier.models.receipt import PaymentReceipt
from bkash_verifier.repositories.receipt_repo import ReceiptRepository
from bkash_verifier.schemas.receipt import (
    IngestResponse,
    ParsedSms,
    ReceiptCreate,
    ReceiptResponse,
    SmsWebhookRequest,
    VerificationSummary,
)
from bkash_verifier.schemas.verification import verdict_response
from bkash_verifier.services.ingestion.receipts import IngestResult, ReceiptIngestion
from bkash_verifier.services.verification.fulfillment import (
    FulfillmentSink,
    get_fulfillment_sink,
)

logger = get_logger(__name__)

router = APIRouter()


def require_webhook_secret(
    x_webhook_secret: Optional[str] = Header(None),
) -> None:
    """Reject ingestion calls without the shared secret, when one is set."""
    expected = settings.webhook_secret
    if not expected:
        return
    if x_webhook_secret is None or not hmac.compare_digest(x_webhook_secret, expected):
        logger.warning("Rejected ingestion call with missing or bad webhook secret")
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


def _to_response(
    result: IngestResult,
    response: Response,
    parsed: Optional[ParsedSms] = None,
) -> IngestResponse:
    response.status_code = 201 if result.is_new else 200
    verdicts = result.verdicts
    return IngestResponse(
        is_new=result.is_new,
        receipt=ReceiptResponse.model_validate(result.receipt),
        parsed=parsed,
        verification=VerificationSummary(
            attempted=len(verdicts),
            verified=sum(1 for v in verdicts if v.is_verified),
            rejected=sum(1 for v in verdicts if v.is_rejected),
            results=[verdict_response(v) for v in verdicts],
        ),
    )


@router.post(
    "/webhooks/sms",
    response_model=IngestResponse,
    dependencies=[Depends(require_webhook_secret)],
)
def ingest_sms(
    body: SmsWebhookRequest,
    response: Response,
    db: Session = Depends(get_db),
    fulfillment: FulfillmentSink = Depends(get_fulfillment_sink),
) -> IngestResponse:
    """Parse a raw bKash SMS, store the receipt and match it."""
    ingestion = ReceiptIngestion(db, settings, fulfillment)
    try:
        result, parsed = ingestion.ingest_sms(body.raw_sms, body.receiver_phone)
    except VerifierError as exc:
        logger.warning("SMS rejected for receiver %s: %s", body.receiver_phone, exc)
        raise http_error(exc)
    return _to_response(result, response, parsed)


@router.post(
    "/receipts",
    response_model=IngestResponse,
    dependencies=[Depends(require_webhook_secret)],
)
def ingest_receipt(
    body: ReceiptCreate,
    response: Response,
    db: Session = Depends(get_db),
    fulfillment: FulfillmentSink = Depends(get_fulfillment_sink),
) -> IngestResponse:
    """Store an already-parsed receipt and match it."""
    ingestion = ReceiptIngestion(db, settings, fulfillment)
    try:
        result = ingestion.ingest(
            reference=body.reference,
            amount_minor=body.amount_minor,
            receiver_id=body.receiver_id,
            sender_id=body.sender_id,
            event_time=body.event_time,
        )
    except VerifierError as exc:
        raise http_error(exc)
    return _to_response(result, response)


@router.get("/receipts", response_model=List[ReceiptResponse])
def list_receipts(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=500, description="Items per page"),
    db: Session = Depends(get_db),
) -> list[PaymentReceipt]:
    """List stored receipts, most recently ingested first."""
    return ReceiptRepository(db).list(page=page, limit=limit)


@router.get("/receipts/{receipt_id}", response_model=ReceiptResponse)
def get_receipt(
    receipt_id: str,
    db: Session = Depends(get_db),
) -> PaymentReceipt:
    receipt = ReceiptRepository(db).get(receipt_id)
    if receipt is None:
        raise http_error(ReceiptNotFoundError(receipt_id))
    return receipt
