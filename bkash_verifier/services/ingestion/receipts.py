"""Receipt ingestion: validate, store idempotently, then match.

The SMS relay on the receiving phone may retry or double-deliver, so
ingesting a TrxID that is already stored is a normal, successful no-op:
the stored receipt comes back with ``is_new=False`` and no matching is
re-run for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from bkash_verifier.core.config import Settings
from bkash_verifier.core.exceptions import ValidationError
from bkash_verifier.core.logging import get_logger
from bkash_verifier.models.receipt import PaymentReceipt
from bkash_verifier.repositories.receipt_repo import ReceiptRepository
from bkash_verifier.repositories.receiver_repo import ReceiverRegistry, ReceiverRepository
from bkash_verifier.schemas.receipt import ParsedSms
from bkash_verifier.services.ingestion.base_parser import BaseSmsParser
from bkash_verifier.services.ingestion.bkash_parser import BkashSmsParser
from bkash_verifier.services.ingestion.normalizer import (
    is_valid_reference,
    normalize_phone,
    normalize_reference,
)
from bkash_verifier.services.verification.engine import MatchEngine
from bkash_verifier.services.verification.fulfillment import FulfillmentSink
from bkash_verifier.services.verification.verdict import Verdict

logger = get_logger(__name__)


@dataclass
class IngestResult:
    """Stored receipt plus what matching did with it."""

    receipt: PaymentReceipt
    is_new: bool
    verdicts: List[Verdict] = field(default_factory=list)


class ReceiptIngestion:
    """Entry point for new receipts, parsed or raw."""

    def __init__(
        self,
        db: Session,
        config: Settings,
        fulfillment: Optional[FulfillmentSink] = None,
        registry: Optional[ReceiverRegistry] = None,
        parser: Optional[BaseSmsParser] = None,
    ) -> None:
        self.db = db
        self.config = config
        self.receipts = ReceiptRepository(db)
        self.registry = registry or ReceiverRepository(db)
        self.parser = parser or BkashSmsParser(config.sms_utc_offset_minutes)
        self.engine = MatchEngine(db, config, fulfillment)

    def ingest(
        self,
        reference: Optional[str],
        amount_minor: Optional[int],
        receiver_id: Optional[str],
        sender_id: Optional[str] = None,
        event_time: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> IngestResult:
        """Store one receipt and, if it is new, resolve sessions waiting on it.

        Raises:
            ValidationError: Missing field, non-positive amount, malformed
                reference, or an unrecognized receiver.
        """
        if not reference or not reference.strip():
            raise ValidationError("reference is required")
        if amount_minor is None:
            raise ValidationError("amount_minor is required")
        if not receiver_id or not receiver_id.strip():
            raise ValidationError("receiver_id is required")
        if event_time is None:
            raise ValidationError("event_time is required")

        canonical = normalize_reference(reference)
        if not is_valid_reference(canonical):
            raise ValidationError(f"Malformed transaction reference: {reference!r}")
        if isinstance(amount_minor, bool) or not isinstance(amount_minor, int):
            raise ValidationError("amount_minor must be an integer")
        if amount_minor <= 0:
            raise ValidationError("amount_minor must be greater than 0")

        receiver = normalize_phone(receiver_id)
        if not self.registry.is_recognized(receiver):
            raise ValidationError(f"Unrecognized receiver: {receiver_id}")

        if event_time.tzinfo is not None:
            event_time = event_time.astimezone(timezone.utc).replace(tzinfo=None)

        receipt, is_new = self.receipts.insert(
            reference=canonical,
            amount_minor=amount_minor,
            receiver_id=receiver,
            sender_id=sender_id,
            event_time=event_time,
        )
        self.db.commit()

        if not is_new:
            logger.info("Receipt already known: trxid=%s id=%s", canonical, receipt.id)
            return IngestResult(receipt=receipt, is_new=False)

        logger.info(
            "Receipt ingested: trxid=%s id=%s amount_minor=%d receiver=%s",
            canonical,
            receipt.id,
            receipt.amount_minor,
            receiver,
        )
        verdicts = self.engine.resolve_for_receipt(receipt.id, now=now)
        return IngestResult(receipt=receipt, is_new=True, verdicts=verdicts)

    def ingest_sms(
        self,
        raw_sms: str,
        receiver_phone: str,
        now: Optional[datetime] = None,
    ) -> tuple[IngestResult, ParsedSms]:
        """Parse a raw provider SMS and ingest it.

        Raises:
            ValidationError: Unknown receiver, or ``SmsParseError`` when a
                field cannot be extracted.
        """
        if not receiver_phone or not self.registry.is_recognized(
            normalize_phone(receiver_phone)
        ):
            raise ValidationError(f"Unrecognized receiver: {receiver_phone}")

        parsed = self.parser.parse(raw_sms)
        result = self.ingest(
            reference=parsed.reference,
            amount_minor=parsed.amount_minor,
            receiver_id=receiver_phone,
            sender_id=parsed.sender_id,
            event_time=parsed.event_time,
            now=now,
        )
        return result, parsed
