"""Receiver registry endpoints (admin)."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from bkash_verifier.core.database import get_db
from bkash_verifier.core.logging import get_logger
from bkash_verifier.models.receiver import Receiver
from bkash_verifier.repositories.receiver_repo import ReceiverRepository
from bkash_verifier.schemas.receiver import ReceiverCreate, ReceiverResponse
from bkash_verifier.services.ingestion.normalizer import normalize_phone

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=List[ReceiverResponse])
def list_receivers(db: Session = Depends(get_db)) -> list[Receiver]:
    return ReceiverRepository(db).list_all()


@router.post("", response_model=ReceiverResponse, status_code=201)
def add_receiver(
    body: ReceiverCreate,
    db: Session = Depends(get_db),
) -> Receiver:
    """Register a new inbound number; it is offered to new sessions at once."""
    repo = ReceiverRepository(db)
    phone = normalize_phone(body.phone)
    if repo.get(phone) is not None:
        raise HTTPException(status_code=409, detail=f"Receiver already exists: {phone}")
    receiver = repo.add(phone, body.label, body.notes)
    db.commit()
    db.refresh(receiver)
    return receiver


@router.post("/{phone}/disable", response_model=ReceiverResponse)
def disable_receiver(
    phone: str,
    db: Session = Depends(get_db),
) -> Receiver:
    """Stop offering a receiver; receipts to it are still accepted."""
    receiver = ReceiverRepository(db).disable(normalize_phone(phone))
    if receiver is None:
        raise HTTPException(status_code=404, detail=f"Receiver not found: {phone}")
    db.commit()
    db.refresh(receiver)
    return receiver
