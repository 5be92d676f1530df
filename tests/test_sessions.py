"""Tests for the session lifecycle service."""

from __future__ import annotations

from datetime import timedelta

import pytest

from bkash_verifier.core.exceptions import (
    NoActiveReceiversError,
    SessionNotFoundError,
    SessionStateError,
    ValidationError,
)
from bkash_verifier.models.tracking import SessionStatus, TrackingSession
from bkash_verifier.repositories.receiver_repo import ReceiverRepository
from bkash_verifier.repositories.session_repo import SessionRepository
from bkash_verifier.services.ingestion.receipts import ReceiptIngestion
from bkash_verifier.services.sessions import SessionService
from tests.factories import RECEIVER_A, RECEIVER_B, T0

CUSTOMER = {"name": "Karim", "phone": "01555000222", "email": "karim@example.com"}


class TestCreate:
    def test_snapshot_and_expiry(self, make_session):
        session = make_session()

        assert session.status == SessionStatus.PENDING.value
        assert session.offered_receivers == [RECEIVER_A, RECEIVER_B]
        assert session.expires_at == T0 + timedelta(minutes=60)
        assert session.declared_reference is None

    def test_disabled_receivers_are_not_offered(self, db_session, make_session):
        ReceiverRepository(db_session).disable(RECEIVER_B)
        db_session.commit()

        session = make_session()

        assert session.offered_receivers == [RECEIVER_A]

    def test_snapshot_is_not_rewritten(self, db_session, make_session):
        session = make_session()
        ReceiverRepository(db_session).disable(RECEIVER_A)
        db_session.commit()

        assert db_session.get(TrackingSession, session.id).offered_receivers == [
            RECEIVER_A,
            RECEIVER_B,
        ]

    def test_no_active_receivers(self, db_session, config):
        with pytest.raises(NoActiveReceiversError):
            SessionService(db_session, config).create("EVT", "GA", 50000, CUSTOMER)

    @pytest.mark.parametrize(
        "amount_minor, customer",
        [
            (0, CUSTOMER),
            (-1, CUSTOMER),
            (500.5, CUSTOMER),
            (50000, {"name": "Karim", "phone": "01555000222"}),
        ],
    )
    def test_invalid_input(self, db_session, config, receivers, amount_minor, customer):
        with pytest.raises(ValidationError):
            SessionService(db_session, config).create("EVT", "GA", amount_minor, customer)
        assert db_session.query(TrackingSession).count() == 0


class TestSubmitReference:
    def test_declares_pending_session(self, db_session, config, make_session):
        session = make_session()

        outcome = SessionService(db_session, config).submit_reference(
            session.id, " cju0pzq3u6 ", now=T0 + timedelta(minutes=1)
        )

        stored = db_session.get(TrackingSession, session.id)
        assert stored.status == SessionStatus.DECLARED.value
        assert stored.declared_reference == "CJU0PZQ3U6"
        assert outcome.customer_status == "submitted"

    def test_resubmission_keeps_first_reference(self, db_session, config, make_session):
        session = make_session()
        service = SessionService(db_session, config)
        service.submit_reference(session.id, "FIRST0001", now=T0 + timedelta(minutes=1))

        service.submit_reference(session.id, "SECOND002", now=T0 + timedelta(minutes=2))

        assert db_session.get(TrackingSession, session.id).declared_reference == "FIRST0001"

    def test_verified_session_reports_verified(self, db_session, config, sink, make_session):
        session = make_session()
        service = SessionService(db_session, config, sink)
        service.submit_reference(session.id, "CJU0PZQ3U6", now=T0 + timedelta(minutes=1))
        ReceiptIngestion(db_session, config, sink).ingest(
            "CJU0PZQ3U6", 50000, RECEIVER_A, None, T0 + timedelta(minutes=2)
        )

        outcome = service.submit_reference(
            session.id, "CJU0PZQ3U6", now=T0 + timedelta(minutes=3)
        )

        assert outcome.customer_status == "verified"
        assert len(sink.calls) == 1

    def test_submission_after_deadline_is_rejected(self, db_session, config, make_session):
        session = make_session()

        with pytest.raises(SessionStateError) as exc_info:
            SessionService(db_session, config).submit_reference(
                session.id, "CJU0PZQ3U6", now=T0 + timedelta(minutes=61)
            )

        assert exc_info.value.status == SessionStatus.EXPIRED.value
        stored = db_session.get(TrackingSession, session.id)
        assert stored.status == SessionStatus.PENDING.value
        assert stored.declared_reference is None

    def test_expired_session_is_rejected(self, db_session, config, make_session):
        session = make_session()
        SessionRepository(db_session).expire([session.id], T0 + timedelta(hours=2))
        db_session.commit()

        with pytest.raises(SessionStateError) as exc_info:
            SessionService(db_session, config).submit_reference(
                session.id, "CJU0PZQ3U6", now=T0 + timedelta(minutes=5)
            )
        assert exc_info.value.status == SessionStatus.EXPIRED.value

    def test_canceled_session_is_rejected(self, db_session, config, make_session):
        session = make_session()
        service = SessionService(db_session, config)
        service.cancel(session.id, now=T0)

        with pytest.raises(SessionStateError) as exc_info:
            service.submit_reference(session.id, "CJU0PZQ3U6", now=T0 + timedelta(minutes=1))
        assert exc_info.value.status == SessionStatus.CANCELED.value

    @pytest.mark.parametrize("reference", ["", "   ", "AB", "CJU0-PZQ3"])
    def test_malformed_reference(self, db_session, config, make_session, reference):
        session = make_session()
        with pytest.raises(ValidationError):
            SessionService(db_session, config).submit_reference(session.id, reference, now=T0)

    def test_unknown_session(self, db_session, config):
        with pytest.raises(SessionNotFoundError):
            SessionService(db_session, config).submit_reference("missing", "CJU0PZQ3U6")


class TestCancel:
    def test_cancel_records_note(self, db_session, config, make_session):
        session = make_session()

        canceled = SessionService(db_session, config).cancel(
            session.id, "customer called", now=T0
        )

        assert canceled.status == SessionStatus.CANCELED.value
        assert canceled.resolution_note == "customer called"

    def test_cannot_cancel_terminal_session(self, db_session, config, make_session):
        session = make_session()
        service = SessionService(db_session, config)
        service.cancel(session.id, now=T0)

        with pytest.raises(SessionStateError):
            service.cancel(session.id, now=T0)
