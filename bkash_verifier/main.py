"""bKash Payment Verifier - Main Application."""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from bkash_verifier.api.routes import receivers, sessions, sweep, webhooks
from bkash_verifier.core.config import settings
from bkash_verifier.core.database import Base, SessionLocal, engine, get_db
from bkash_verifier.core.logging import setup_logging
from bkash_verifier.repositories.receiver_repo import ReceiverRepository
from bkash_verifier.services.ingestion.normalizer import normalize_phone
from bkash_verifier.services.verification.sweep import run_periodic_sweep

logger = setup_logging(settings.log_level)

# Create all tables on startup
logger.info("Creating database tables...")
Base.metadata.create_all(bind=engine)
logger.info("Database tables ready")


def seed_receivers() -> None:
    """Make sure every configured receiver exists before traffic arrives."""
    if not settings.seed_receivers:
        return
    db = SessionLocal()
    try:
        ReceiverRepository(db).seed([normalize_phone(p) for p in settings.seed_receivers])
        db.commit()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    seed_receivers()
    sweep_task = None
    if settings.sweep_enabled:
        sweep_task = asyncio.create_task(run_periodic_sweep(SessionLocal, settings))
    yield
    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task
        logger.info("Periodic sweep stopped")


# -- OpenAPI tag metadata for Swagger grouping --
tags_metadata = [
    {
        "name": "Health",
        "description": "Service health and readiness checks.",
    },
    {
        "name": "Sessions",
        "description": (
            "Open payment sessions at checkout, accept the customer's bKash "
            "TrxID, and inspect, re-resolve or cancel sessions."
        ),
    },
    {
        "name": "Receipts",
        "description": (
            "Ingest payment receipts from the SMS relay (raw bKash SMS or "
            "pre-parsed) and query stored receipts."
        ),
    },
    {
        "name": "Receivers",
        "description": "Manage the bKash numbers customers are asked to pay into.",
    },
    {
        "name": "Sweep",
        "description": "Trigger the expiry-and-retry sweep on demand.",
    },
]


app = FastAPI(
    title="bKash Payment Verifier",
    description=(
        "## SMS-based bKash Payment Verification\n\n"
        "Customers pay a fixed amount to one of our bKash numbers and type the "
        "TrxID they receive. The phone that receives the money relays the "
        "provider SMS here. A payment is verified only when the receipt and "
        "the session agree on reference, amount, receiver and time, and the "
        "receipt has not already paid for another session.\n\n"
        "### Session lifecycle\n"
        "`pending` -> `declared` -> `verified` | `failed`, with `expired` and "
        "`canceled` reachable from both open states.\n\n"
        "### Quick Start\n"
        "```bash\n"
        "# 1. Open a session\n"
        'curl -X POST /api/v1/sessions -H "Content-Type: application/json" '
        '-d \'{"item_code":"EVT-1","ticket_choice":"General","amount_minor":50000,'
        '"customer_info":{"name":"A","phone":"01700000000","email":"a@example.com"}}\'\n\n'
        "# 2. Customer submits the TrxID\n"
        "curl -X POST /api/v1/sessions/<id>/submit-reference -d '{\"reference\":\"8N7A1B2C3D\"}'\n\n"
        "# 3. The SMS relay forwards the bKash SMS\n"
        "curl -X POST /api/v1/webhooks/sms -d '{\"raw_sms\":\"...\",\"receiver_phone\":\"01712345678\"}'\n"
        "```\n"
    ),
    version="1.0.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(sessions.router, prefix="/api/v1/sessions", tags=["Sessions"])
app.include_router(webhooks.router, prefix="/api/v1", tags=["Receipts"])
app.include_router(receivers.router, prefix="/api/v1/receivers", tags=["Receivers"])
app.include_router(sweep.router, prefix="/api/v1/sweep", tags=["Sweep"])


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    """Anything that is not a domain error is a 500, logged with its traceback."""
    logger.error(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


logger.info("bKash Verifier API ready - routes registered")


@app.get("/health", tags=["Health"])
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint.

    Confirms the database answers and reports how many receivers are
    currently offered to new sessions.
    """
    try:
        db.execute(text("SELECT 1"))
        active = len(ReceiverRepository(db).list_active())
    except Exception:
        logger.exception("Health check: database unavailable")
        return {"status": "degraded", "service": "bkash-verifier", "database": "down"}
    return {
        "status": "healthy",
        "service": "bkash-verifier",
        "database": "up",
        "active_receivers": active,
    }
