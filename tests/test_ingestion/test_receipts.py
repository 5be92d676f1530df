"""Tests for receipt ingestion (validation, idempotency, matching)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from bkash_verifier.core.exceptions import SmsParseError, ValidationError
from bkash_verifier.models.receipt import PaymentReceipt
from bkash_verifier.repositories.receiver_repo import ReceiverRepository
from bkash_verifier.services.ingestion.receipts import ReceiptIngestion
from tests.factories import RECEIVER_A, T0, bkash_sms


@pytest.fixture
def ingestion(db_session, config, sink, receivers) -> ReceiptIngestion:
    return ReceiptIngestion(db_session, config, sink)


def _count(db) -> int:
    return db.query(PaymentReceipt).count()


class TestIngest:
    def test_new_receipt_is_stored(self, ingestion, db_session):
        result = ingestion.ingest("cju0pzq3u6", 50000, RECEIVER_A, "01533817247", T0)

        assert result.is_new is True
        assert result.receipt.reference == "CJU0PZQ3U6"
        assert result.receipt.sender_id == "01533817247"
        assert _count(db_session) == 1

    def test_replay_is_idempotent(self, ingestion, db_session):
        first = ingestion.ingest("CJU0PZQ3U6", 50000, RECEIVER_A, None, T0)
        second = ingestion.ingest("CJU0PZQ3U6", 99999, RECEIVER_A, None, T0)

        assert second.is_new is False
        assert second.receipt.id == first.receipt.id
        assert second.receipt.amount_minor == 50000
        assert second.verdicts == []
        assert _count(db_session) == 1

    def test_receiver_phone_is_normalized(self, ingestion):
        result = ingestion.ingest("CJU0PZQ3U6", 50000, "+8801712345678", None, T0)
        assert result.receipt.receiver_id == RECEIVER_A

    def test_disabled_receiver_still_accepted(self, ingestion, db_session):
        ReceiverRepository(db_session).disable(RECEIVER_A)
        db_session.commit()

        result = ingestion.ingest("CJU0PZQ3U6", 50000, RECEIVER_A, None, T0)

        assert result.is_new is True

    def test_aware_event_time_is_stored_as_utc(self, ingestion):
        dhaka = timezone(timedelta(hours=6))
        event_time = datetime(2025, 10, 30, 21, 0, tzinfo=dhaka)

        result = ingestion.ingest("CJU0PZQ3U6", 50000, RECEIVER_A, None, event_time)

        assert result.receipt.event_time == datetime(2025, 10, 30, 15, 0)

    @pytest.mark.parametrize(
        "reference, amount_minor, receiver_id, event_time",
        [
            ("", 50000, RECEIVER_A, T0),
            ("CJU0PZQ3U6", None, RECEIVER_A, T0),
            ("CJU0PZQ3U6", 50000, "", T0),
            ("CJU0PZQ3U6", 50000, RECEIVER_A, None),
            ("CJU-0PZQ", 50000, RECEIVER_A, T0),
            ("CJU0PZQ3U6", 0, RECEIVER_A, T0),
            ("CJU0PZQ3U6", -500, RECEIVER_A, T0),
            ("CJU0PZQ3U6", "abc", RECEIVER_A, T0),
            ("CJU0PZQ3U6", 500.0, RECEIVER_A, T0),
            ("CJU0PZQ3U6", 50000, "01900000000", T0),
        ],
    )
    def test_invalid_input_is_rejected_without_storing(
        self, ingestion, db_session, reference, amount_minor, receiver_id, event_time
    ):
        with pytest.raises(ValidationError):
            ingestion.ingest(reference, amount_minor, receiver_id, None, event_time)
        assert _count(db_session) == 0


class TestIngestSms:
    def test_sms_is_parsed_and_stored(self, ingestion):
        result, parsed = ingestion.ingest_sms(bkash_sms(), RECEIVER_A)

        assert result.is_new is True
        assert parsed.reference == "CJU0PZQ3U6"
        assert result.receipt.amount_minor == 50000
        assert result.receipt.event_time == T0 + timedelta(minutes=3)

    def test_unknown_receiver_checked_before_parsing(self, ingestion, db_session):
        with pytest.raises(ValidationError) as exc_info:
            ingestion.ingest_sms("not an sms at all", "01900000000")
        assert not isinstance(exc_info.value, SmsParseError)
        assert _count(db_session) == 0

    def test_unparseable_sms_reports_field(self, ingestion, db_session):
        with pytest.raises(SmsParseError) as exc_info:
            ingestion.ingest_sms("You have received Tk 500.00 from somebody", RECEIVER_A)
        assert exc_info.value.field == "sender_phone"
        assert _count(db_session) == 0

    def test_sms_replay_returns_stored_receipt(self, ingestion, db_session):
        first, _ = ingestion.ingest_sms(bkash_sms(), RECEIVER_A)
        second, _ = ingestion.ingest_sms(bkash_sms(), RECEIVER_A)

        assert second.is_new is False
        assert second.receipt.id == first.receipt.id
        assert _count(db_session) == 1
