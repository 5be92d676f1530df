"""Periodic sweep, the backstop that makes matching converge.

Submission and ingestion each try to resolve a session immediately, but
either can miss (SMS delayed, customer typed the TrxID before the SMS
landed, a request died halfway).  The sweep runs on a fixed interval and:

  1. Expires every pending/declared session whose deadline has passed
     (one batch UPDATE, no rule evaluation).
  2. Re-runs ``resolve_for_session`` for every declared session, each in
     its own error boundary so one bad row never blocks the rest.

Every transition it makes is guarded by the session's current status, so
two sweeps overlapping (or a sweep racing the webhook) is harmless.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from bkash_verifier.core.config import Settings
from bkash_verifier.core.logging import get_logger
from bkash_verifier.core.utils import utcnow
from bkash_verifier.repositories.session_repo import SessionRepository
from bkash_verifier.services.verification.engine import MatchEngine
from bkash_verifier.services.verification.fulfillment import FulfillmentSink
from bkash_verifier.services.verification.verdict import FailureReason

logger = get_logger(__name__)


@dataclass
class SweepReport:
    """Counters for one sweep tick."""

    expired_count: int = 0
    verified_count: int = 0
    failed_count: int = 0
    still_pending_count: int = 0
    error_count: int = 0
    processed_count: int = 0
    duration_ms: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class SweepScheduler:
    """Runs one sweep over the session store."""

    def __init__(
        self,
        db: Session,
        config: Settings,
        fulfillment: Optional[FulfillmentSink] = None,
    ) -> None:
        self.db = db
        self.config = config
        self.sessions = SessionRepository(db)
        self.engine = MatchEngine(db, config, fulfillment)

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """Expire overdue sessions, then retry every declared one.

        Args:
            now: Reference time; defaults to the current UTC time.

        Returns:
            A ``SweepReport`` with per-outcome counters.
        """
        started = time.monotonic()
        now = now or utcnow()
        report = SweepReport()

        # Phase 1: time-based expiry. Failures here abort the tick.
        overdue_ids = self.sessions.find_overdue_ids(now)
        report.expired_count = self.sessions.expire(overdue_ids, now)
        self.db.commit()
        if report.expired_count:
            logger.info("Expired %d session(s)", report.expired_count)

        # Phase 2: retry declared sessions one at a time.
        session_ids = [s.id for s in self.sessions.list_awaiting_verification()]
        for session_id in session_ids:
            report.processed_count += 1
            try:
                verdict = self.engine.resolve_for_session(session_id, now=now)
            except Exception:
                self.db.rollback()
                report.error_count += 1
                report.still_pending_count += 1
                logger.exception("Sweep retry failed for session=%s", session_id)
                continue

            if verdict.is_verified:
                report.verified_count += 1
            elif verdict.is_rejected:
                if verdict.reason is not FailureReason.SESSION_CLOSED:
                    report.failed_count += 1
                    logger.info(
                        "Sweep failed session=%s: %s", session_id, verdict.detail
                    )
            else:
                report.still_pending_count += 1

        report.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Sweep complete in %dms: expired=%d verified=%d failed=%d "
            "still_pending=%d errors=%d processed=%d",
            report.duration_ms,
            report.expired_count,
            report.verified_count,
            report.failed_count,
            report.still_pending_count,
            report.error_count,
            report.processed_count,
        )
        return report


def run_sweep_tick(
    db_factory: Callable[[], Session],
    config: Settings,
    fulfillment: Optional[FulfillmentSink] = None,
) -> SweepReport:
    """One sweep with its own database session (for the scheduler)."""
    db = db_factory()
    try:
        return SweepScheduler(db, config, fulfillment).sweep()
    finally:
        db.close()


async def run_periodic_sweep(
    db_factory: Callable[[], Session],
    config: Settings,
    fulfillment: Optional[FulfillmentSink] = None,
) -> None:
    """Sweep every ``config.sweep_interval_seconds`` until cancelled.

    Each tick runs in a worker thread and is awaited before the next
    sleep, so ticks never overlap within one process.
    """
    interval = config.sweep_interval_seconds
    logger.info("Periodic sweep started: interval=%ds", interval)
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(run_sweep_tick, db_factory, config, fulfillment)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Sweep tick failed")
