"""Tracking-session lifecycle outside the match engine.

Creation snapshots the active receivers, submission records the
customer's TrxID and asks the engine to resolve immediately, and cancel
is the admin escape hatch.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from bkash_verifier.core.config import Settings
from bkash_verifier.core.exceptions import (
    NoActiveReceiversError,
    SessionNotFoundError,
    SessionStateError,
    ValidationError,
)
from bkash_verifier.core.logging import get_logger
from bkash_verifier.core.utils import utcnow
from bkash_verifier.models.tracking import SessionStatus, TrackingSession
from bkash_verifier.repositories.receiver_repo import ReceiverRegistry, ReceiverRepository
from bkash_verifier.repositories.session_repo import SessionRepository
from bkash_verifier.services.ingestion.normalizer import (
    is_valid_reference,
    normalize_reference,
)
from bkash_verifier.services.verification.engine import MatchEngine
from bkash_verifier.services.verification.fulfillment import FulfillmentSink
from bkash_verifier.services.verification.verdict import Verdict

logger = get_logger(__name__)

_REQUIRED_CUSTOMER_FIELDS = ("name", "phone", "email")


@dataclass
class SubmissionOutcome:
    """Result of a customer submitting a TrxID.

    ``verdict`` carries the full detail for logs and admin callers; only
    ``customer_status`` may be shown to the customer.
    """

    session_id: str
    verdict: Verdict

    @property
    def customer_status(self) -> str:
        return "verified" if self.verdict.is_verified else "submitted"


class SessionService:
    """Create, submit against, and cancel tracking sessions."""

    def __init__(
        self,
        db: Session,
        config: Settings,
        fulfillment: Optional[FulfillmentSink] = None,
        registry: Optional[ReceiverRegistry] = None,
    ) -> None:
        self.db = db
        self.config = config
        self.sessions = SessionRepository(db)
        self.registry = registry or ReceiverRepository(db)
        self.engine = MatchEngine(db, config, fulfillment)

    def get(self, session_id: str) -> TrackingSession:
        tracking = self.sessions.get(session_id)
        if tracking is None:
            raise SessionNotFoundError(session_id)
        return tracking

    def create(
        self,
        item_code: str,
        ticket_choice: str,
        amount_minor: int,
        customer_info: dict[str, Any],
        form_data: Optional[dict[str, Any]] = None,
        verification_method: str = "auto",
        now: Optional[datetime] = None,
    ) -> TrackingSession:
        """Open a session, snapshotting the receivers active right now.

        Raises:
            ValidationError: Bad amount or missing customer/item details.
            NoActiveReceiversError: Nothing to offer the customer.
        """
        if not item_code:
            raise ValidationError("item_code is required")
        if not ticket_choice:
            raise ValidationError("ticket_choice is required")
        if isinstance(amount_minor, bool) or not isinstance(amount_minor, int):
            raise ValidationError("amount_minor must be an integer")
        if amount_minor <= 0:
            raise ValidationError("amount_minor must be greater than 0")
        missing = [f for f in _REQUIRED_CUSTOMER_FIELDS if not customer_info.get(f)]
        if missing:
            raise ValidationError(f"customer_info missing: {', '.join(missing)}")
        if verification_method not in ("auto", "manual"):
            raise ValidationError("verification_method must be auto or manual")

        offered = list(self.registry.list_active())
        if not offered:
            raise NoActiveReceiversError(
                "No active payment receivers available. Please contact support."
            )

        created_at = now or utcnow()
        tracking = self.sessions.create(
            item_code=item_code,
            ticket_choice=ticket_choice,
            amount_minor=amount_minor,
            offered_receivers=offered,
            customer_info=dict(customer_info),
            form_data=form_data or {},
            verification_method=verification_method,
            status=SessionStatus.PENDING.value,
            created_at=created_at,
            updated_at=created_at,
            expires_at=created_at + timedelta(minutes=self.config.session_validity_minutes),
        )
        self.db.commit()
        logger.info(
            "Session created: id=%s item=%s amount_minor=%d receivers=%s",
            tracking.id,
            item_code,
            amount_minor,
            offered,
        )
        return tracking

    def submit_reference(
        self,
        session_id: str,
        reference: str,
        now: Optional[datetime] = None,
    ) -> SubmissionOutcome:
        """Record the customer's TrxID and try to verify right away.

        A session that already holds a reference keeps it; the call then
        only re-attempts resolution.

        Raises:
            ValidationError: Empty or malformed reference.
            SessionNotFoundError: Unknown session.
            SessionStateError: Session expired, failed or canceled.
        """
        canonical = normalize_reference(reference or "")
        if not canonical:
            raise ValidationError("reference is required")
        if not is_valid_reference(canonical):
            raise ValidationError("Invalid transaction reference format")

        now = now or utcnow()
        tracking = self.get(session_id)
        self._ensure_open(tracking, now)

        if tracking.status == SessionStatus.PENDING.value:
            declared = self.sessions.transition_to_declared(session_id, canonical, now)
            self.db.commit()
            if declared:
                logger.info("Session %s declared trxid=%s", session_id, canonical)
            else:
                # Lost a race with another writer; decide on the fresh row
                self._ensure_open(self.get(session_id), now)
        elif tracking.declared_reference != canonical:
            logger.info(
                "Session %s already declared trxid=%s; ignoring resubmission %s",
                session_id,
                tracking.declared_reference,
                canonical,
            )

        verdict = self.engine.resolve_for_session(session_id, now=now)
        logger.info(
            "Submission for session %s -> %s (%s)",
            session_id,
            verdict.status.value,
            verdict.detail,
        )
        return SubmissionOutcome(session_id=session_id, verdict=verdict)

    def cancel(
        self,
        session_id: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> TrackingSession:
        """Admin cancel of a pending/declared session.

        Raises:
            SessionNotFoundError: Unknown session.
            SessionStateError: Session already terminal.
        """
        tracking = self.get(session_id)
        canceled = self.sessions.transition_to_canceled(session_id, note, now or utcnow())
        self.db.commit()
        if not canceled:
            raise SessionStateError(
                session_id,
                tracking.status,
                f"Session is {tracking.status} and can no longer be canceled",
            )
        logger.info("Session %s canceled: %s", session_id, note or "-")
        return self.get(session_id)

    @staticmethod
    def _ensure_open(tracking: TrackingSession, now: datetime) -> None:
        """Reject submissions against sessions that can no longer pay."""
        status = tracking.status
        if status == SessionStatus.VERIFIED.value:
            return
        if status == SessionStatus.EXPIRED.value or now > tracking.expires_at:
            raise SessionStateError(
                tracking.id, SessionStatus.EXPIRED.value, "This payment session has expired"
            )
        if status in (SessionStatus.FAILED.value, SessionStatus.CANCELED.value):
            raise SessionStateError(
                tracking.id, status, f"This payment session is {status}"
            )
