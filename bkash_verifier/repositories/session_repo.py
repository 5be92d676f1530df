"""Session store for tracking sessions and their guarded status transitions.

Every write that changes ``status`` is a conditional UPDATE: it only
applies while the row is still in one of the expected prior states and
reports whether it did.  Two resolutions racing on the same session
therefore cannot both commit, and the loser learns it lost by getting
``False`` back.

Nothing here commits; the caller owns the transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from bkash_verifier.core.logging import get_logger
from bkash_verifier.models.receipt import PaymentReceipt
from bkash_verifier.models.tracking import (
    AWAITING_STATUSES,
    SessionStatus,
    TrackingSession,
)

logger = get_logger(__name__)


class SessionRepository:
    """Queries and transitions for ``TrackingSession`` rows."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Reads ────────────────────────────────────────────────────────

    def get(self, session_id: str) -> Optional[TrackingSession]:
        return self.db.get(TrackingSession, session_id)

    def find_awaiting_by_reference(self, reference: str) -> List[TrackingSession]:
        """Sessions that declared *reference* and are not yet resolved."""
        return (
            self.db.query(TrackingSession)
            .filter(TrackingSession.declared_reference == reference)
            .filter(TrackingSession.status.in_(AWAITING_STATUSES))
            .order_by(TrackingSession.created_at.asc(), TrackingSession.id.asc())
            .all()
        )

    def find_verified_claimant(
        self,
        receipt_id: str,
        exclude_session_id: str,
    ) -> Optional[TrackingSession]:
        """Another verified session already backed by *receipt_id*, if any."""
        return (
            self.db.query(TrackingSession)
            .filter(TrackingSession.resolved_receipt_id == receipt_id)
            .filter(TrackingSession.status == SessionStatus.VERIFIED.value)
            .filter(TrackingSession.id != exclude_session_id)
            .first()
        )

    def list_awaiting_verification(self) -> List[TrackingSession]:
        """Declared sessions with a reference (the sweep retry set)."""
        return (
            self.db.query(TrackingSession)
            .filter(TrackingSession.status == SessionStatus.DECLARED.value)
            .filter(TrackingSession.declared_reference.isnot(None))
            .order_by(TrackingSession.created_at.asc())
            .all()
        )

    def find_overdue_ids(self, now: datetime) -> List[str]:
        """Ids of non-terminal sessions whose deadline is strictly past."""
        rows = (
            self.db.query(TrackingSession.id)
            .filter(TrackingSession.status.in_(AWAITING_STATUSES))
            .filter(TrackingSession.expires_at < now)
            .all()
        )
        return [session_id for (session_id,) in rows]

    def list(
        self,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> List[TrackingSession]:
        query = self.db.query(TrackingSession)
        if status:
            query = query.filter(TrackingSession.status == status)
        offset = (page - 1) * limit
        return (
            query.order_by(TrackingSession.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    # ── Writes ───────────────────────────────────────────────────────

    def create(self, **fields: Any) -> TrackingSession:
        tracking = TrackingSession(**fields)
        self.db.add(tracking)
        self.db.flush()
        return tracking

    def transition_to_declared(
        self,
        session_id: str,
        reference: str,
        now: datetime,
    ) -> bool:
        """pending -> declared, recording the customer's reference."""
        updated = (
            self.db.query(TrackingSession)
            .filter(TrackingSession.id == session_id)
            .filter(TrackingSession.status == SessionStatus.PENDING.value)
            .update(
                {
                    TrackingSession.declared_reference: reference,
                    TrackingSession.status: SessionStatus.DECLARED.value,
                    TrackingSession.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def transition_to_verified(
        self,
        session_id: str,
        receipt_id: str,
        now: datetime,
    ) -> bool:
        """pending/declared -> verified, unless another session holds the receipt.

        The receipt row is locked first, so two verifies that claim the
        same receipt through different sessions run one after the other.
        The second one's UPDATE then sees the first one's committed claim
        in its NOT EXISTS check and matches no row.
        """
        self.lock_receipt(receipt_id)
        claimant = aliased(TrackingSession)
        already_claimed = (
            select(claimant.id)
            .where(claimant.resolved_receipt_id == receipt_id)
            .where(claimant.status == SessionStatus.VERIFIED.value)
            .where(claimant.id != session_id)
            .exists()
        )
        updated = (
            self.db.query(TrackingSession)
            .filter(TrackingSession.id == session_id)
            .filter(TrackingSession.status.in_(AWAITING_STATUSES))
            .filter(~already_claimed)
            .update(
                {
                    TrackingSession.status: SessionStatus.VERIFIED.value,
                    TrackingSession.resolved_receipt_id: receipt_id,
                    TrackingSession.failure_reason: None,
                    TrackingSession.resolution_note: "verified",
                    TrackingSession.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def lock_receipt(self, receipt_id: str) -> Optional[PaymentReceipt]:
        """SELECT ... FOR UPDATE on the receipt; a no-op on SQLite."""
        return self.receipt_lock_query(receipt_id).one_or_none()

    def receipt_lock_query(self, receipt_id: str):
        return (
            self.db.query(PaymentReceipt)
            .filter(PaymentReceipt.id == receipt_id)
            .with_for_update()
        )

    def transition_to_failed(
        self,
        session_id: str,
        reason: str,
        note: str,
        now: datetime,
    ) -> bool:
        """pending/declared -> failed with a reason code and readable note."""
        updated = (
            self.db.query(TrackingSession)
            .filter(TrackingSession.id == session_id)
            .filter(TrackingSession.status.in_(AWAITING_STATUSES))
            .update(
                {
                    TrackingSession.status: SessionStatus.FAILED.value,
                    TrackingSession.resolved_receipt_id: None,
                    TrackingSession.failure_reason: reason,
                    TrackingSession.resolution_note: note,
                    TrackingSession.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def transition_to_canceled(
        self,
        session_id: str,
        note: Optional[str],
        now: datetime,
    ) -> bool:
        """pending/declared -> canceled (manual admin action)."""
        updated = (
            self.db.query(TrackingSession)
            .filter(TrackingSession.id == session_id)
            .filter(TrackingSession.status.in_(AWAITING_STATUSES))
            .update(
                {
                    TrackingSession.status: SessionStatus.CANCELED.value,
                    TrackingSession.resolution_note: note or "canceled",
                    TrackingSession.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def expire(self, session_ids: List[str], now: datetime) -> int:
        """Batch pending/declared -> expired in a single UPDATE.

        Rows that moved on since they were selected are skipped by the
        status guard.

        Returns:
            Number of rows actually expired.
        """
        if not session_ids:
            return 0
        updated = (
            self.db.query(TrackingSession)
            .filter(TrackingSession.id.in_(session_ids))
            .filter(TrackingSession.status.in_(AWAITING_STATUSES))
            .update(
                {
                    TrackingSession.status: SessionStatus.EXPIRED.value,
                    TrackingSession.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        logger.debug("Expire batch: requested=%d updated=%d", len(session_ids), updated)
        return updated
