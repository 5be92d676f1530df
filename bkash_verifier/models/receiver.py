"""Receiver model — our inbound bKash accounts."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from bkash_verifier.core.database import Base


class Receiver(Base):
    """A personal bKash number we accept payments to.

    Disabled receivers are no longer offered to new sessions but remain
    recognized, so late receipts sent to them can still be ingested.
    """

    __tablename__ = "receivers"

    phone: Mapped[str] = mapped_column(
        String(20),
        primary_key=True,
    )
    label: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default="active",
        comment="active | disabled",
    )
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Receiver(phone={self.phone!r}, status={self.status!r})>"
