"""Verification rules — does this receipt pay for this session?

Each ``check_*`` function inspects a (session, receipt) pair and returns
a rejected ``Verdict`` if its rule fails, or ``None`` if the rule holds.
``evaluate`` runs them in a fixed order and stops at the first failure;
the order decides which reason is reported, not whether the pair passes.

The rules are pure: they only read attributes, so plain objects with the
right fields (ORM rows or test stand-ins) work equally well.  The one
rule that needs storage, exclusivity, receives its lookup as a
callable.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from bkash_verifier.services.ingestion.normalizer import normalize_reference
from bkash_verifier.services.verification.verdict import FailureReason, Verdict

# (receipt, session_id) -> id of another verified session holding the receipt
ClaimLookup = Callable[[Any, str], Optional[str]]

DEFAULT_WINDOW_BEFORE = timedelta(hours=1)
DEFAULT_WINDOW_GRACE = timedelta(minutes=15)


# ── Individual rules ────────────────────────────────────────────────


def check_reference(session: Any, receipt: Any) -> Optional[Verdict]:
    """Rule 1: normalized references must be identical."""
    declared = normalize_reference(session.declared_reference or "")
    observed = normalize_reference(receipt.reference)
    if declared and declared == observed:
        return None
    return Verdict.rejected(
        FailureReason.REFERENCE_MISMATCH,
        "reference mismatch",
        receipt_id=receipt.id,
    )


def check_amount(session: Any, receipt: Any) -> Optional[Verdict]:
    """Rule 2: exact integer equality in minor units, no tolerance."""
    expected = int(session.amount_minor)
    actual = int(receipt.amount_minor)
    if expected == actual:
        return None
    return Verdict.rejected(
        FailureReason.AMOUNT_MISMATCH,
        f"amount mismatch: expected {expected} got {actual}",
        receipt_id=receipt.id,
    )


def check_receiver(session: Any, receipt: Any) -> Optional[Verdict]:
    """Rule 3: receipt went to a receiver offered to *this* session.

    Only the snapshot taken at session creation counts; the live receiver
    table is never consulted here.
    """
    offered = set(session.offered_receivers or [])
    if receipt.receiver_id in offered:
        return None
    return Verdict.rejected(
        FailureReason.RECEIVER_NOT_AUTHORIZED,
        "receiver not authorized for this session",
        receipt_id=receipt.id,
    )


def time_window(
    session: Any,
    before: timedelta = DEFAULT_WINDOW_BEFORE,
    grace: timedelta = DEFAULT_WINDOW_GRACE,
) -> tuple[datetime, datetime]:
    """Inclusive ``(earliest, latest)`` event time accepted for a session."""
    return session.created_at - before, session.expires_at + grace


def check_time_window(
    session: Any,
    receipt: Any,
    before: timedelta = DEFAULT_WINDOW_BEFORE,
    grace: timedelta = DEFAULT_WINDOW_GRACE,
) -> Optional[Verdict]:
    """Rule 4: provider event time inside ``[created - before, expires + grace]``."""
    earliest, latest = time_window(session, before, grace)
    if earliest <= receipt.event_time <= latest:
        return None
    return Verdict.rejected(
        FailureReason.OUTSIDE_TIME_WINDOW,
        "outside valid time window",
        receipt_id=receipt.id,
    )


def check_exclusivity(
    session: Any,
    receipt: Any,
    find_claimant: Optional[ClaimLookup],
) -> Optional[Verdict]:
    """Rule 5: no *other* verified session is already backed by this receipt."""
    if find_claimant is None:
        return None
    other_id = find_claimant(receipt, session.id)
    if other_id is None:
        return None
    return Verdict.rejected(
        FailureReason.ALREADY_CLAIMED,
        f"transaction-reference already claimed by session {other_id}",
        receipt_id=receipt.id,
    )


# ── Rule chain ───────────────────────────────────────────────────────


def evaluate(
    session: Any,
    receipt: Any,
    find_claimant: Optional[ClaimLookup] = None,
    window_before: timedelta = DEFAULT_WINDOW_BEFORE,
    window_grace: timedelta = DEFAULT_WINDOW_GRACE,
) -> Verdict:
    """Run rules 1–5 in order and return the first failure or ``Verified``.

    Exclusivity runs last, closest to the point where the caller commits
    the verified status.

    Args:
        session: Session-like object (id, declared_reference, amount_minor,
            offered_receivers, created_at, expires_at).
        receipt: Receipt-like object (id, reference, amount_minor,
            receiver_id, event_time).
        find_claimant: Lookup for rule 5; ``None`` skips the rule.
        window_before: Slack before session creation for rule 4.
        window_grace: Grace after session expiry for rule 4.

    Returns:
        A ``Verdict`` tagged with the session id.
    """
    verdict = (
        check_reference(session, receipt)
        or check_amount(session, receipt)
        or check_receiver(session, receipt)
        or check_time_window(session, receipt, window_before, window_grace)
        or check_exclusivity(session, receipt, find_claimant)
        or Verdict.verified(receipt_id=receipt.id)
    )
    return verdict.about(session.id)
