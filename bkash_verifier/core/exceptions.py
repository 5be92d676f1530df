"""Error taxonomy shared by services and routes.

Rule failures are *not* exceptions; they come back as ``Rejected``
verdicts from the match engine.  Everything here is either a caller
mistake (validation, unknown ids, wrong state) or a configuration gap.
"""

from __future__ import annotations


class VerifierError(Exception):
    """Base class for all domain errors raised by the service."""


class ValidationError(VerifierError, ValueError):
    """Caller-fixable input problem; never written to storage."""


class SmsParseError(ValidationError):
    """A receipt SMS could not be parsed.

    Attributes:
        field: Name of the field that failed (amount, sender_phone, ...).
        message: Human-readable explanation.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class SessionNotFoundError(VerifierError):
    """No tracking session with the given id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Tracking session not found: {session_id}")
        self.session_id = session_id


class ReceiptNotFoundError(VerifierError):
    """No payment receipt with the given id."""

    def __init__(self, receipt_id: str) -> None:
        super().__init__(f"Payment receipt not found: {receipt_id}")
        self.receipt_id = receipt_id


class SessionStateError(VerifierError):
    """Operation not allowed for the session's current status."""

    def __init__(self, session_id: str, status: str, message: str) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.status = status


class NoActiveReceiversError(VerifierError):
    """A session cannot be created because no receiver is active."""
