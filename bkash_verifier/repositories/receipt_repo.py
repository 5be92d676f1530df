"""Receipt store — immutable payment receipts keyed by TrxID."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bkash_verifier.core.logging import get_logger
from bkash_verifier.models.receipt import PaymentReceipt

logger = get_logger(__name__)


class ReceiptRepository:
    """Point lookups and idempotent inserts for ``PaymentReceipt``."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, receipt_id: str) -> Optional[PaymentReceipt]:
        return self.db.get(PaymentReceipt, receipt_id)

    def get_by_reference(self, reference: str) -> Optional[PaymentReceipt]:
        return (
            self.db.query(PaymentReceipt)
            .filter(PaymentReceipt.reference == reference)
            .first()
        )

    def insert(
        self,
        reference: str,
        amount_minor: int,
        receiver_id: str,
        sender_id: Optional[str],
        event_time: datetime,
    ) -> Tuple[PaymentReceipt, bool]:
        """Insert a receipt unless its reference already exists.

        The unique constraint on ``reference`` is the arbiter: if a
        concurrent insert wins, the transaction is rolled back and the
        winner's row is returned.  Call with no other pending changes.

        Returns:
            ``(receipt, is_new)``.
        """
        existing = self.get_by_reference(reference)
        if existing is not None:
            return existing, False

        receipt = PaymentReceipt(
            reference=reference,
            amount_minor=amount_minor,
            receiver_id=receiver_id,
            sender_id=sender_id,
            event_time=event_time,
        )
        self.db.add(receipt)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.info("Concurrent insert for trxid=%s, using stored row", reference)
            existing = self.get_by_reference(reference)
            if existing is None:
                raise
            return existing, False

        return receipt, True

    def list(self, page: int = 1, limit: int = 50) -> List[PaymentReceipt]:
        offset = (page - 1) * limit
        return (
            self.db.query(PaymentReceipt)
            .order_by(PaymentReceipt.ingested_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
