"""Fulfillment sink: what happens after a payment is verified.

The engine calls ``notify`` once per transition into ``verified``.  It is
best-effort: the engine catches and logs anything a sink raises, and the
verification stays committed either way.

The default sink renders the ticket confirmation email and logs it; a
real mail provider plugs in by implementing the same protocol.
"""

from __future__ import annotations

import uuid
from typing import Any, Protocol

from bkash_verifier.core.logging import get_logger

logger = get_logger(__name__)

TICKET_URL_TEMPLATE = "https://tickets.example.com/generate/{token}"


class FulfillmentSink(Protocol):
    def notify(self, session_id: str, receipt_id: str, metadata: dict[str, Any]) -> None: ...


def format_taka(amount_minor: int) -> str:
    """``50000`` -> ``"500.00"``."""
    return f"{amount_minor // 100}.{amount_minor % 100:02d}"


def render_confirmation_email(
    session_id: str,
    metadata: dict[str, Any],
    ticket_url: str,
) -> tuple[str, str]:
    """Build the (subject, body) of the ticket confirmation email."""
    customer = metadata.get("customer_info") or {}
    name = customer.get("name") or "Valued Customer"
    item = metadata.get("ticket_choice") or metadata.get("item_code", "")
    amount = format_taka(int(metadata.get("amount_minor", 0)))

    subject = f"Your Ticket for {metadata.get('item_code', '')} - Payment Confirmed"
    body = "\n".join(
        [
            f"Hi {name},",
            "",
            "Your payment has been verified and your ticket is ready.",
            "",
            "PAYMENT DETAILS",
            f"  Item: {item}",
            f"  Amount Paid: Tk {amount}",
            f"  Transaction ID: {metadata.get('reference', '')}",
            f"  Tracking ID: {session_id}",
            "",
            "Generate and download your ticket here (valid for 7 days):",
            f"  {ticket_url}",
            "",
            "This is an automated message. Please do not reply.",
        ]
    )
    return subject, body


class LoggingFulfillmentSink:
    """Stand-in mailer: renders the email and writes it to the log."""

    def notify(self, session_id: str, receipt_id: str, metadata: dict[str, Any]) -> None:
        token = uuid.uuid4().hex
        ticket_url = TICKET_URL_TEMPLATE.format(token=token)
        subject, body = render_confirmation_email(session_id, metadata, ticket_url)
        recipient = (metadata.get("customer_info") or {}).get("email", "<unknown>")

        logger.info(
            "Fulfillment email for session=%s receipt=%s\nTo: %s\nSubject: %s\n%s",
            session_id,
            receipt_id,
            recipient,
            subject,
            body,
        )


def get_fulfillment_sink() -> FulfillmentSink:
    """Dependency hook; tests override it with a recording sink."""
    return LoggingFulfillmentSink()
