"""SQLAlchemy models for the bKash payment verification service."""

from bkash_verifier.models.receiver import Receiver
from bkash_verifier.models.receipt import PaymentReceipt
from bkash_verifier.models.tracking import SessionStatus, TrackingSession

__all__ = [
    "Receiver",
    "PaymentReceipt",
    "SessionStatus",
    "TrackingSession",
]
