"""bKash "money received" SMS parser.

Example SMS:
    You have received Tk 500.00 from 01533817247. Fee Tk 0.00.
    Balance Tk 1,117.78. TrxID CJU0PZQ3U6 at 30/10/2025 21:02
"""

from __future__ import annotations

import re
from datetime import datetime

from bkash_verifier.core.exceptions import SmsParseError
from bkash_verifier.core.logging import get_logger
from bkash_verifier.schemas.receipt import ParsedSms
from bkash_verifier.services.ingestion.base_parser import BaseSmsParser
from bkash_verifier.services.ingestion.normalizer import (
    is_valid_reference,
    normalize_reference,
    parse_sms_timestamp,
    taka_to_minor,
)

logger = get_logger(__name__)

# First "Tk" figure is the received amount; fee and balance come later
_AMOUNT_RE = re.compile(r"Tk\s+([\d,]+\.\d{2})")
_SENDER_RE = re.compile(r"from\s+(\d{11})\b")
_REFERENCE_RE = re.compile(r"TrxID\s+([A-Z0-9]+)", re.IGNORECASE)
_TIMESTAMP_RE = re.compile(r"at\s+(\d{2}/\d{2}/\d{4}\s+\d{2}:\d{2})")


class BkashSmsParser(BaseSmsParser):
    """Parser for bKash personal-account receipt messages.

    Fields are extracted in a fixed order (amount, sender, TrxID,
    timestamp) and the first one missing is reported.
    """

    provider_name: str = "bKash"

    def __init__(self, utc_offset_minutes: int = 0) -> None:
        self.utc_offset_minutes = utc_offset_minutes

    def parse(self, raw_text: str) -> ParsedSms:
        sms = (raw_text or "").strip()
        if not sms:
            raise SmsParseError("raw_sms", "SMS text is empty")

        amount_minor = self._parse_amount(sms)
        sender_id = self._parse_sender(sms)
        reference = self._parse_reference(sms)
        event_time = self._parse_timestamp(sms)

        logger.debug(
            "Parsed SMS: trxid=%s amount_minor=%d sender=%s at=%s",
            reference,
            amount_minor,
            sender_id,
            event_time.isoformat(),
        )
        return ParsedSms(
            reference=reference,
            amount_minor=amount_minor,
            sender_id=sender_id,
            event_time=event_time,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_amount(sms: str) -> int:
        match = _AMOUNT_RE.search(sms)
        if not match:
            raise SmsParseError("amount", "Amount not found in SMS")
        amount_minor = taka_to_minor(match.group(1))
        if amount_minor is None:
            raise SmsParseError("amount", f"Invalid amount format: {match.group(1)}")
        if amount_minor <= 0:
            raise SmsParseError("amount", "Amount must be greater than 0")
        return amount_minor

    @staticmethod
    def _parse_sender(sms: str) -> str:
        match = _SENDER_RE.search(sms)
        if not match:
            raise SmsParseError("sender_phone", "Sender phone number not found in SMS")
        return match.group(1)

    @staticmethod
    def _parse_reference(sms: str) -> str:
        match = _REFERENCE_RE.search(sms)
        if not match:
            raise SmsParseError("trxid", "TrxID not found in SMS")
        reference = normalize_reference(match.group(1))
        if not is_valid_reference(reference):
            raise SmsParseError("trxid", f"Invalid TrxID: {match.group(1)}")
        return reference

    def _parse_timestamp(self, sms: str) -> datetime:
        match = _TIMESTAMP_RE.search(sms)
        if not match:
            raise SmsParseError("timestamp", "Timestamp not found in SMS")
        parsed = parse_sms_timestamp(match.group(1), self.utc_offset_minutes)
        if parsed is None:
            raise SmsParseError("timestamp", f"Invalid date: {match.group(1)}")
        return parsed
