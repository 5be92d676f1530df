"""Payment receipt model — one observed incoming payment per SMS."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bkash_verifier.core.database import Base
from bkash_verifier.core.utils import new_id, utcnow


class PaymentReceipt(Base):
    """A payment the provider told us about via SMS.

    Receipts are immutable once ingested.  ``reference`` (the provider
    TrxID) is unique across the table, which is what makes ingestion
    idempotent.
    """

    __tablename__ = "payment_receipts"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=new_id,
    )
    reference: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        comment="Provider TrxID, trimmed and uppercased",
    )
    amount_minor: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Amount in poisha (1/100 taka)",
    )
    receiver_id: Mapped[str] = mapped_column(
        ForeignKey("receivers.phone"),
        nullable=False,
    )
    sender_id: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
    )
    event_time: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        comment="Payment time as reported by the provider (UTC)",
    )
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        Index("ix_receipt_receiver_time", "receiver_id", "event_time"),
        Index("ix_receipt_amount_time", "amount_minor", "event_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentReceipt(reference={self.reference!r}, "
            f"amount_minor={self.amount_minor}, receiver_id={self.receiver_id!r})>"
        )
