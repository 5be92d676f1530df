"""Receiver registry — which inbound numbers we accept money on."""

from __future__ import annotations

from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from bkash_verifier.core.logging import get_logger
from bkash_verifier.models.receiver import Receiver

logger = get_logger(__name__)


class ReceiverRegistry(Protocol):
    """What the rest of the system needs to know about receivers."""

    def is_recognized(self, receiver_id: str) -> bool: ...

    def list_active(self) -> List[str]: ...


class ReceiverRepository:
    """Database-backed ``ReceiverRegistry`` plus admin operations."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, phone: str) -> Optional[Receiver]:
        return self.db.get(Receiver, phone)

    def is_recognized(self, receiver_id: str) -> bool:
        """Active *or* disabled receivers are recognized for ingestion."""
        return self.get(receiver_id) is not None

    def list_active(self) -> List[str]:
        """Phones of active receivers in a stable order (for snapshotting)."""
        rows = (
            self.db.query(Receiver.phone)
            .filter(Receiver.status == "active")
            .order_by(Receiver.created_at.asc(), Receiver.phone.asc())
            .all()
        )
        return [phone for (phone,) in rows]

    def list_all(self) -> List[Receiver]:
        return self.db.query(Receiver).order_by(Receiver.phone.asc()).all()

    def add(self, phone: str, label: str, notes: Optional[str] = None) -> Receiver:
        receiver = Receiver(phone=phone, label=label, status="active", notes=notes)
        self.db.add(receiver)
        self.db.flush()
        logger.info("Receiver registered: phone=%s label=%s", phone, label)
        return receiver

    def disable(self, phone: str) -> Optional[Receiver]:
        """Stop offering a receiver to new sessions.

        Open sessions keep their own snapshot, so this never affects them.
        """
        receiver = self.get(phone)
        if receiver is None:
            return None
        receiver.status = "disabled"
        self.db.flush()
        logger.info("Receiver disabled: phone=%s", phone)
        return receiver

    def seed(self, phones: List[str]) -> int:
        """Insert missing receivers as active; existing rows are untouched."""
        added = 0
        for phone in phones:
            if self.get(phone) is None:
                self.db.add(
                    Receiver(phone=phone, label="Seeded receiver", status="active")
                )
                added += 1
        self.db.flush()
        if added:
            logger.info("Seeded %d receiver(s)", added)
        return added
