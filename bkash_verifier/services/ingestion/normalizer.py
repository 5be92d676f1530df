"""Normalizer utility functions for receipt and submission data.

A single place for the small cleanups that both the customer-facing
submission path and the SMS ingestion path must agree on: how a TrxID is
canonicalized, how a phone number is tidied, and how taka strings become
integer minor units.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from bkash_verifier.core.logging import get_logger

logger = get_logger(__name__)

# TrxIDs are short alphanumeric tokens issued by the provider
_REFERENCE_RE = re.compile(r"^[A-Z0-9]{4,64}$")

# Local bKash wallet numbers: 01XXXXXXXXX, optionally with +88 / 88 prefix
_PHONE_PREFIXES: tuple[str, ...] = ("+88", "88")

_SMS_DATE_FORMAT = "%d/%m/%Y %H:%M"


def normalize_reference(reference: str) -> str:
    """Trim surrounding whitespace and uppercase a transaction reference.

    ``" cju0pzq3u6 "``, ``"CJU0PZQ3U6"`` and ``"Cju0Pzq3U6"`` all map to
    ``"CJU0PZQ3U6"``.

    Args:
        reference: Raw TrxID as typed by the customer or found in an SMS.

    Returns:
        Canonical reference string (may be empty).
    """
    return reference.strip().upper()


def is_valid_reference(reference: str) -> bool:
    """Whether a *normalized* reference looks like a provider TrxID."""
    return bool(_REFERENCE_RE.match(reference))


def normalize_phone(phone: str) -> str:
    """Strip whitespace, dashes and the country prefix from a phone number.

    Args:
        phone: Raw phone string, e.g. ``"+880 1785-863769"``.

    Returns:
        The local 11-digit form, e.g. ``"01785863769"``.
    """
    cleaned = re.sub(r"[\s\-]", "", phone.strip())
    for prefix in _PHONE_PREFIXES:
        if cleaned.startswith(prefix) and len(cleaned) == len(prefix) + 11:
            return cleaned[len(prefix):]
    return cleaned


def taka_to_minor(amount: str) -> Optional[int]:
    """Convert a taka string such as ``"2,000.00"`` to poisha.

    Uses Decimal throughout so no float rounding can creep in.

    Returns:
        Integer minor units, or None if the string is not a number.
    """
    try:
        value = Decimal(amount.replace(",", "").strip())
    except (InvalidOperation, ValueError):
        logger.warning("Could not parse amount: %r", amount)
        return None
    return int((value * 100).to_integral_value())


def parse_sms_timestamp(value: str, utc_offset_minutes: int = 0) -> Optional[datetime]:
    """Parse a ``DD/MM/YYYY HH:MM`` SMS timestamp into naive UTC.

    Args:
        value: Timestamp text as printed by the provider.
        utc_offset_minutes: Offset of the provider's wall clock from UTC.

    Returns:
        Naive UTC datetime, or None if the text is not a valid date.
    """
    try:
        local = datetime.strptime(value.strip(), _SMS_DATE_FORMAT)
    except ValueError:
        logger.warning("Could not parse SMS timestamp: %s", value)
        return None
    aware = local.replace(tzinfo=timezone(timedelta(minutes=utc_offset_minutes)))
    return aware.astimezone(timezone.utc).replace(tzinfo=None)
