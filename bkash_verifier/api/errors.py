"""Translate domain errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException

from bkash_verifier.core.exceptions import (
    NoActiveReceiversError,
    ReceiptNotFoundError,
    SessionNotFoundError,
    SessionStateError,
    SmsParseError,
    ValidationError,
    VerifierError,
)
from bkash_verifier.models.tracking import SessionStatus


def http_error(exc: VerifierError) -> HTTPException:
    """Map a ``VerifierError`` to the status code callers expect."""
    if isinstance(exc, SmsParseError):
        return HTTPException(
            status_code=400,
            detail={"error": "Failed to parse SMS", "field": exc.field, "message": exc.message},
        )
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (SessionNotFoundError, ReceiptNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, SessionStateError):
        code = 410 if exc.status == SessionStatus.EXPIRED.value else 409
        return HTTPException(status_code=code, detail=str(exc))
    if isinstance(exc, NoActiveReceiversError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail="Internal error")
