"""Verdict types produced by the match engine."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


class VerdictStatus(str, Enum):
    VERIFIED = "verified"
    REJECTED = "rejected"
    INCONCLUSIVE = "inconclusive"


class FailureReason(str, Enum):
    """Which rule turned a session down.

    ``SESSION_CLOSED`` is not a rule: it is reported when asked to resolve
    a session that already reached expired/canceled.
    """

    REFERENCE_MISMATCH = "reference_mismatch"
    AMOUNT_MISMATCH = "amount_mismatch"
    RECEIVER_NOT_AUTHORIZED = "receiver_not_authorized"
    OUTSIDE_TIME_WINDOW = "outside_time_window"
    ALREADY_CLAIMED = "already_claimed"
    SESSION_CLOSED = "session_closed"


@dataclass(frozen=True)
class Verdict:
    """Outcome of matching one session against (at most) one receipt.

    Attributes:
        status: verified, rejected or inconclusive.
        reason: Rule that failed; only set for rejected verdicts.
        detail: Human-readable explanation (stored as the resolution note).
        session_id: Session the verdict is about, when known.
        receipt_id: Receipt that was evaluated or that backs the session.
    """

    status: VerdictStatus
    reason: Optional[FailureReason] = None
    detail: str = ""
    session_id: Optional[str] = None
    receipt_id: Optional[str] = None

    @classmethod
    def verified(
        cls,
        receipt_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Verdict:
        return cls(
            status=VerdictStatus.VERIFIED,
            detail="verified",
            session_id=session_id,
            receipt_id=receipt_id,
        )

    @classmethod
    def rejected(
        cls,
        reason: FailureReason,
        detail: str,
        session_id: Optional[str] = None,
        receipt_id: Optional[str] = None,
    ) -> Verdict:
        return cls(
            status=VerdictStatus.REJECTED,
            reason=reason,
            detail=detail,
            session_id=session_id,
            receipt_id=receipt_id,
        )

    @classmethod
    def inconclusive(
        cls,
        detail: str = "no matching receipt yet",
        session_id: Optional[str] = None,
    ) -> Verdict:
        return cls(
            status=VerdictStatus.INCONCLUSIVE,
            detail=detail,
            session_id=session_id,
        )

    @property
    def is_verified(self) -> bool:
        return self.status is VerdictStatus.VERIFIED

    @property
    def is_rejected(self) -> bool:
        return self.status is VerdictStatus.REJECTED

    @property
    def is_inconclusive(self) -> bool:
        return self.status is VerdictStatus.INCONCLUSIVE

    def about(self, session_id: str) -> Verdict:
        """Same verdict, tagged with the session it concerns."""
        return replace(self, session_id=session_id)
