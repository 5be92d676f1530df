"""Match engine: where every payment decision is made.

Three call sites converge here: the customer submitting a TrxID, the SMS
webhook ingesting a receipt, and the periodic sweep.  All of them go
through ``resolve_for_session`` or ``resolve_for_receipt``, which:

  1. Load the session(s) and the receipt.
  2. Short-circuit on sessions that already reached a terminal state.
  3. Run the rule chain (``rules.evaluate``).
  4. Commit the verdict with a guarded status transition.
  5. Fire fulfillment once, after the commit, on the verified edge only.

A ``Rejected`` verdict is final for the session.  ``Inconclusive`` writes
nothing and is retried by a later submission, ingestion or sweep.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bkash_verifier.core.config import Settings
from bkash_verifier.core.exceptions import ReceiptNotFoundError, SessionNotFoundError
from bkash_verifier.core.logging import get_logger
from bkash_verifier.core.utils import utcnow
from bkash_verifier.models.receipt import PaymentReceipt
from bkash_verifier.models.tracking import SessionStatus, TrackingSession
from bkash_verifier.repositories.receipt_repo import ReceiptRepository
from bkash_verifier.repositories.session_repo import SessionRepository
from bkash_verifier.services.ingestion.normalizer import normalize_reference
from bkash_verifier.services.verification import rules
from bkash_verifier.services.verification.fulfillment import (
    FulfillmentSink,
    LoggingFulfillmentSink,
)
from bkash_verifier.services.verification.verdict import FailureReason, Verdict

logger = get_logger(__name__)


class MatchEngine:
    """Decides and records whether receipts pay for tracking sessions."""

    def __init__(
        self,
        db: Session,
        config: Settings,
        fulfillment: Optional[FulfillmentSink] = None,
    ) -> None:
        self.db = db
        self.config = config
        self.fulfillment = fulfillment or LoggingFulfillmentSink()
        self.sessions = SessionRepository(db)
        self.receipts = ReceiptRepository(db)

    # ── Public API ───────────────────────────────────────────────────

    def evaluate(self, session: Any, receipt: Any) -> Verdict:
        """Rule chain for one pair, with exclusivity backed by the store."""
        return rules.evaluate(
            session,
            receipt,
            find_claimant=self._find_claimant,
            window_before=timedelta(minutes=self.config.time_window_before_minutes),
            window_grace=timedelta(minutes=self.config.time_window_grace_minutes),
        )

    def resolve_for_session(
        self,
        session_id: str,
        now: Optional[datetime] = None,
    ) -> Verdict:
        """Try to settle one session against the receipt for its reference.

        Raises:
            SessionNotFoundError: Unknown *session_id*.
        """
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        if not session.declared_reference:
            return Verdict.inconclusive("no reference declared yet", session_id)

        closed = self._closed_verdict(session)
        if closed is not None:
            return closed

        reference = normalize_reference(session.declared_reference)
        receipt = self.receipts.get_by_reference(reference)
        if receipt is None:
            logger.debug(
                "No receipt yet for session=%s trxid=%s", session_id, reference
            )
            return Verdict.inconclusive(session_id=session_id)

        return self._apply(session, receipt, now or utcnow())

    def resolve_for_receipt(
        self,
        receipt_id: str,
        now: Optional[datetime] = None,
    ) -> List[Verdict]:
        """Try every session still waiting on this receipt's reference.

        All candidates are attempted, not just the first: several sessions
        may have declared the same TrxID, and exclusivity decides which
        one (if any) gets it.

        Raises:
            ReceiptNotFoundError: Unknown *receipt_id*.
        """
        receipt = self.receipts.get(receipt_id)
        if receipt is None:
            raise ReceiptNotFoundError(receipt_id)

        reference = receipt.reference
        candidates = self.sessions.find_awaiting_by_reference(reference)
        if not candidates:
            logger.info("No waiting sessions for trxid=%s", reference)
            return []

        moment = now or utcnow()
        verdicts = [self._apply(session, receipt, moment) for session in candidates]

        logger.info(
            "Receipt %s (trxid=%s) tried against %d session(s): verified=%d",
            receipt_id,
            reference,
            len(verdicts),
            sum(1 for v in verdicts if v.is_verified),
        )
        return verdicts

    # ── Private helpers ──────────────────────────────────────────────

    def _find_claimant(self, receipt: Any, session_id: str) -> Optional[str]:
        other = self.sessions.find_verified_claimant(receipt.id, session_id)
        return other.id if other is not None else None

    def _apply(
        self,
        session: TrackingSession,
        receipt: PaymentReceipt,
        now: datetime,
    ) -> Verdict:
        """Evaluate one pair and commit whatever it decides."""
        # Earlier commits in this unit of work refresh the row on access
        closed = self._closed_verdict(session)
        if closed is not None:
            return closed

        verdict = self.evaluate(session, receipt)
        if verdict.is_verified:
            return self._commit_verified(session, receipt, now)
        if verdict.is_rejected:
            return self._commit_failed(session, verdict, now)
        return verdict

    def _commit_verified(
        self,
        session: TrackingSession,
        receipt: PaymentReceipt,
        now: datetime,
    ) -> Verdict:
        session_id = session.id
        receipt_id = receipt.id
        metadata = self._fulfillment_metadata(session, receipt)

        try:
            won = self.sessions.transition_to_verified(session_id, receipt_id, now)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Session %s lost the claim on receipt %s to a concurrent verify",
                session_id,
                receipt_id,
            )
            won = False

        if won:
            logger.info(
                "Session %s verified by receipt %s (trxid=%s)",
                session_id,
                receipt_id,
                metadata["reference"],
            )
            self._trigger_fulfillment(session_id, receipt_id, metadata)
            return Verdict.verified(receipt_id=receipt_id, session_id=session_id)

        return self._after_lost_race(session_id, receipt, now)

    def _after_lost_race(
        self,
        session_id: str,
        receipt: PaymentReceipt,
        now: datetime,
    ) -> Verdict:
        """The guarded verify did not apply; find out why from fresh data."""
        fresh = self.sessions.get(session_id)
        closed = self._closed_verdict(fresh)
        if closed is not None:
            logger.info(
                "Session %s was resolved concurrently (status=%s)",
                session_id,
                fresh.status,
            )
            return closed

        other_id = self._find_claimant(receipt, session_id)
        if other_id is None:
            logger.warning(
                "Verify of session %s did not apply and no claimant found; "
                "leaving it for the next sweep",
                session_id,
            )
            return Verdict.inconclusive("resolution raced, will retry", session_id)

        verdict = Verdict.rejected(
            FailureReason.ALREADY_CLAIMED,
            f"transaction-reference already claimed by session {other_id}",
            session_id=session_id,
            receipt_id=receipt.id,
        )
        return self._commit_failed(fresh, verdict, now)

    def _commit_failed(
        self,
        session: TrackingSession,
        verdict: Verdict,
        now: datetime,
    ) -> Verdict:
        session_id = session.id
        won = self.sessions.transition_to_failed(
            session_id,
            verdict.reason.value,
            verdict.detail,
            now,
        )
        self.db.commit()

        if won:
            logger.info("Session %s failed: %s", session_id, verdict.detail)
            return verdict

        closed = self._closed_verdict(self.sessions.get(session_id))
        return closed if closed is not None else verdict

    def _trigger_fulfillment(
        self,
        session_id: str,
        receipt_id: str,
        metadata: dict[str, Any],
    ) -> None:
        """Post-commit hook; its failures never undo the verification."""
        try:
            self.fulfillment.notify(session_id, receipt_id, metadata)
        except Exception:
            logger.exception(
                "Fulfillment failed for session=%s receipt=%s", session_id, receipt_id
            )

    @staticmethod
    def _fulfillment_metadata(
        session: TrackingSession,
        receipt: PaymentReceipt,
    ) -> dict[str, Any]:
        return {
            "item_code": session.item_code,
            "ticket_choice": session.ticket_choice,
            "amount_minor": session.amount_minor,
            "customer_info": session.customer_info,
            "form_data": session.form_data,
            "reference": receipt.reference,
        }

    @staticmethod
    def _closed_verdict(session: TrackingSession) -> Optional[Verdict]:
        """Verdict for a session that is already terminal, else ``None``.

        Terminal sessions are never re-evaluated: a verified session stays
        verified even if later data would contradict it.
        """
        status = session.status
        if status == SessionStatus.VERIFIED.value:
            return Verdict.verified(
                receipt_id=session.resolved_receipt_id,
                session_id=session.id,
            )
        if status == SessionStatus.FAILED.value:
            try:
                reason = FailureReason(session.failure_reason)
            except ValueError:
                reason = FailureReason.SESSION_CLOSED
            return Verdict.rejected(
                reason,
                session.resolution_note or "failed",
                session_id=session.id,
            )
        if status in (SessionStatus.EXPIRED.value, SessionStatus.CANCELED.value):
            return Verdict.rejected(
                FailureReason.SESSION_CLOSED,
                f"session is {status}",
                session_id=session.id,
            )
        return None
