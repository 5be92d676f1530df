"""Tracking session model — a customer's declared intent to pay."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, JSON, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from bkash_verifier.core.database import Base
from bkash_verifier.core.utils import new_id, utcnow


class SessionStatus(str, Enum):
    """Lifecycle states of a tracking session.

    ``pending`` and ``declared`` are the only non-terminal states.
    """

    PENDING = "pending"
    DECLARED = "declared"
    VERIFIED = "verified"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELED = "canceled"


AWAITING_STATUSES = (SessionStatus.PENDING.value, SessionStatus.DECLARED.value)

TERMINAL_STATUSES = (
    SessionStatus.VERIFIED.value,
    SessionStatus.FAILED.value,
    SessionStatus.EXPIRED.value,
    SessionStatus.CANCELED.value,
)


class TrackingSession(Base):
    """One customer's attempt to pay for one item.

    ``offered_receivers`` is a snapshot of the active receivers taken at
    creation and never rewritten.  ``resolved_receipt_id`` is set if and
    only if the session is verified; ``failure_reason`` if and only if it
    failed.
    """

    __tablename__ = "tracking_sessions"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=new_id,
    )
    item_code: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    ticket_choice: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    amount_minor: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Expected amount in poisha (1/100 taka)",
    )
    offered_receivers: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
    )
    declared_reference: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    customer_info: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )
    form_data: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )
    verification_method: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="auto",
        comment="auto | manual",
    )
    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=SessionStatus.PENDING.value,
        index=True,
        comment="pending | declared | verified | failed | expired | canceled",
    )
    resolved_receipt_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("payment_receipts.id"),
        nullable=True,
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(
        String(40),
        nullable=True,
    )
    resolution_note: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_tracking_status_expires", "status", "expires_at"),
        Index("ix_tracking_resolved_receipt", "resolved_receipt_id"),
        # A receipt pays for at most one verified session.
        Index(
            "uq_tracking_verified_receipt",
            "resolved_receipt_id",
            unique=True,
            postgresql_where=text("status = 'verified'"),
            sqlite_where=text("status = 'verified'"),
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return (
            f"<TrackingSession(id={self.id!r}, status={self.status!r}, "
            f"declared_reference={self.declared_reference!r})>"
        )
