"""Tests for the bKash SMS parser.

These tests exercise parsing logic only — no database required.
"""

from datetime import datetime

import pytest

from bkash_verifier.core.exceptions import SmsParseError, ValidationError
from bkash_verifier.services.ingestion.bkash_parser import BkashSmsParser
from tests.factories import bkash_sms

REAL_SMS = (
    "You have received Tk 500.00 from 01533817247. Fee Tk 0.00. "
    "Balance Tk 1,117.78. TrxID CJU0PZQ3U6 at 30/10/2025 21:02"
)


@pytest.fixture
def parser() -> BkashSmsParser:
    return BkashSmsParser()


# ------------------------------------------------------------------
# Happy-path tests
# ------------------------------------------------------------------


class TestParseValidSms:
    def test_parse_real_message(self, parser: BkashSmsParser):
        parsed = parser.parse(REAL_SMS)

        assert parsed.reference == "CJU0PZQ3U6"
        assert parsed.amount_minor == 50000
        assert parsed.sender_id == "01533817247"
        assert parsed.event_time == datetime(2025, 10, 30, 21, 2)

    def test_first_amount_is_the_payment(self, parser: BkashSmsParser):
        parsed = parser.parse(bkash_sms(amount="2,000.00"))
        assert parsed.amount_minor == 200000

    def test_lowercase_trxid_is_normalized(self, parser: BkashSmsParser):
        parsed = parser.parse(REAL_SMS.replace("TrxID CJU0PZQ3U6", "trxid cju0pzq3u6"))
        assert parsed.reference == "CJU0PZQ3U6"

    def test_provider_offset_applied(self):
        parsed = BkashSmsParser(utc_offset_minutes=360).parse(REAL_SMS)
        assert parsed.event_time == datetime(2025, 10, 30, 15, 2)

    def test_provider_name(self, parser: BkashSmsParser):
        assert parser.provider_name == "bKash"


# ------------------------------------------------------------------
# Failure tests
# ------------------------------------------------------------------


class TestParseInvalidSms:
    @pytest.mark.parametrize(
        "text, field",
        [
            ("", "raw_sms"),
            ("   ", "raw_sms"),
            (REAL_SMS.replace("Tk 500.00", "Tk 500"), "amount"),
            (REAL_SMS.replace("from 01533817247", "from bKash"), "sender_phone"),
            (REAL_SMS.replace("TrxID CJU0PZQ3U6", "Ref none"), "trxid"),
            (REAL_SMS.replace("at 30/10/2025 21:02", ""), "timestamp"),
            (REAL_SMS.replace("30/10/2025", "31/02/2025"), "timestamp"),
        ],
    )
    def test_missing_field_reported(self, parser: BkashSmsParser, text: str, field: str):
        with pytest.raises(SmsParseError) as exc_info:
            parser.parse(text)
        assert exc_info.value.field == field

    def test_zero_amount_rejected(self, parser: BkashSmsParser):
        with pytest.raises(SmsParseError) as exc_info:
            parser.parse(bkash_sms(amount="0.00"))
        assert exc_info.value.field == "amount"

    def test_fields_are_checked_in_order(self, parser: BkashSmsParser):
        # Both amount and TrxID are missing; amount is reported
        with pytest.raises(SmsParseError) as exc_info:
            parser.parse("You have received money from 01533817247.")
        assert exc_info.value.field == "amount"

    def test_parse_error_is_a_validation_error(self, parser: BkashSmsParser):
        with pytest.raises(ValidationError):
            parser.parse("hello")

    @pytest.mark.parametrize("trxid", ["A" * 65, "A" * 70, "CJU"])
    def test_out_of_range_trxid_reported(self, parser: BkashSmsParser, trxid: str):
        with pytest.raises(SmsParseError) as exc_info:
            parser.parse(bkash_sms(trxid=trxid))
        assert exc_info.value.field == "trxid"

    def test_longest_trxid_accepted(self, parser: BkashSmsParser):
        assert parser.parse(bkash_sms(trxid="A" * 64)).reference == "A" * 64
