"""Tracking-session endpoints.

Checkout opens a session, the customer submits the TrxID they got from
bKash, and admins can inspect, re-resolve or cancel sessions.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from bkash_verifier.api.errors import http_error
from bkash_verifier.core.config import settings
from bkash_verifier.core.database import get_db
from bkash_verifier.core.exceptions import VerifierError
from bkash_verifier.core.logging import get_logger
from bkash_verifier.models.tracking import TrackingSession
from bkash_verifier.repositories.session_repo import SessionRepository
from bkash_verifier.schemas.tracking import (
    CancelRequest,
    SessionCreate,
    SessionCreateResponse,
    SessionResponse,
    SubmitReferenceRequest,
    SubmitReferenceResponse,
)
from bkash_verifier.schemas.verification import VerdictResponse, verdict_response
from bkash_verifier.services.sessions import SessionService
from bkash_verifier.services.verification.engine import MatchEngine
from bkash_verifier.services.verification.fulfillment import (
    FulfillmentSink,
    get_fulfillment_sink,
)

logger = get_logger(__name__)

router = APIRouter()

VERIFIED_MESSAGE = "Payment verified! Your ticket is on its way to your email."
SUBMITTED_MESSAGE = (
    "Transaction ID submitted. We will verify your payment shortly and "
    "email your ticket once it is confirmed."
)


@router.post("", response_model=SessionCreateResponse, status_code=201)
def create_session(
    body: SessionCreate,
    db: Session = Depends(get_db),
) -> TrackingSession:
    """Open a payment session and return the receivers to pay into."""
    service = SessionService(db, settings)
    try:
        return service.create(
            item_code=body.item_code,
            ticket_choice=body.ticket_choice,
            amount_minor=body.amount_minor,
            customer_info=body.customer_info.model_dump(),
            form_data=body.form_data,
            verification_method=body.verification_method,
        )
    except VerifierError as exc:
        raise http_error(exc)


@router.get("", response_model=List[SessionResponse])
def list_sessions(
    status: Optional[str] = Query(None, description="Filter by session status"),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(50, ge=1, le=500, description="Items per page"),
    db: Session = Depends(get_db),
) -> list[TrackingSession]:
    """List sessions, newest first."""
    return SessionRepository(db).list(status=status, page=page, limit=limit)


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(
    session_id: str,
    db: Session = Depends(get_db),
) -> TrackingSession:
    try:
        return SessionService(db, settings).get(session_id)
    except VerifierError as exc:
        raise http_error(exc)


@router.post("/{session_id}/submit-reference", response_model=SubmitReferenceResponse)
def submit_reference(
    session_id: str,
    body: SubmitReferenceRequest,
    db: Session = Depends(get_db),
    fulfillment: FulfillmentSink = Depends(get_fulfillment_sink),
) -> SubmitReferenceResponse:
    """Customer submits their TrxID.

    The response only says ``verified`` or ``submitted``; why a payment
    was turned down is never shown to the customer.
    """
    service = SessionService(db, settings, fulfillment)
    try:
        outcome = service.submit_reference(session_id, body.reference)
    except VerifierError as exc:
        raise http_error(exc)

    if outcome.customer_status == "verified":
        return SubmitReferenceResponse(status="verified", message=VERIFIED_MESSAGE)
    return SubmitReferenceResponse(status="submitted", message=SUBMITTED_MESSAGE)


@router.post("/{session_id}/cancel", response_model=SessionResponse)
def cancel_session(
    session_id: str,
    body: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
) -> TrackingSession:
    """Admin cancel of a session that is still pending or declared."""
    note = body.note if body is not None else None
    try:
        return SessionService(db, settings).cancel(session_id, note)
    except VerifierError as exc:
        raise http_error(exc)


@router.post("/{session_id}/resolve", response_model=VerdictResponse)
def resolve_session(
    session_id: str,
    db: Session = Depends(get_db),
    fulfillment: FulfillmentSink = Depends(get_fulfillment_sink),
) -> VerdictResponse:
    """Admin: re-run matching for one session and show the full verdict."""
    engine = MatchEngine(db, settings, fulfillment)
    try:
        verdict = engine.resolve_for_session(session_id)
    except VerifierError as exc:
        raise http_error(exc)
    logger.info(
        "Manual resolve of session %s -> %s", session_id, verdict.status.value
    )
    return verdict_response(verdict)
