"""Test doubles and builders shared across the test suite."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

RECEIVER_A = "01712345678"
RECEIVER_B = "01898765432"
T0 = datetime(2025, 10, 30, 15, 0, 0)


class RecordingSink:
    """Fulfillment sink that remembers every notification."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def notify(self, session_id: str, receipt_id: str, metadata: dict[str, Any]) -> None:
        self.calls.append((session_id, receipt_id, metadata))

    def for_session(self, session_id: str) -> list[tuple[str, str, dict[str, Any]]]:
        return [call for call in self.calls if call[0] == session_id]


class ExplodingSink:
    """Fulfillment sink whose delivery always fails."""

    def __init__(self) -> None:
        self.attempts = 0

    def notify(self, session_id: str, receipt_id: str, metadata: dict[str, Any]) -> None:
        self.attempts += 1
        raise RuntimeError("mail provider unavailable")


def bkash_sms(
    amount: str = "500.00",
    sender: str = "01533817247",
    trxid: str = "CJU0PZQ3U6",
    at: datetime = T0 + timedelta(minutes=3),
) -> str:
    """Render a bKash receipt SMS the way the provider prints it."""
    return (
        f"You have received Tk {amount} from {sender}. Fee Tk 0.00. "
        f"Balance Tk 1,117.78. TrxID {trxid} at {at.strftime('%d/%m/%Y %H:%M')}"
    )
