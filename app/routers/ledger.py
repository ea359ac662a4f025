"""
Read-only ledger endpoints (edits belong to the bookkeeping UI).

GET /api/ledger               search / page through journal lines
GET /api/ledger/{journal_id}  one journal line
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.ledger import ExpenseLedgerModel
from app.schemas import LedgerEntryResponse, LedgerListResponse

logger = logging.getLogger(__name__)
router = APIRouter()


# ── GET /api/ledger ──────────────────────────────────────────────────────
@router.get("/ledger", response_model=LedgerListResponse)
def list_ledger(
    q: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    query = db.query(ExpenseLedgerModel)
    q = (q or "").strip()
    if q:
        like = f"%{q}%"
        query = query.filter(
            or_(
                cast(ExpenseLedgerModel.journal_id, String).ilike(like),
                cast(ExpenseLedgerModel.transaction_date, String).ilike(like),
                ExpenseLedgerModel.debit_account.ilike(like),
                ExpenseLedgerModel.debit_vendor.ilike(like),
                ExpenseLedgerModel.credit_account.ilike(like),
                ExpenseLedgerModel.description.ilike(like),
                ExpenseLedgerModel.memo.ilike(like),
                ExpenseLedgerModel.source_receipt_id.ilike(like),
                ExpenseLedgerModel.source_file_name.ilike(like),
            )
        )

    total = query.count()
    rows = (
        query.order_by(ExpenseLedgerModel.created_at.desc(), ExpenseLedgerModel.journal_id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return LedgerListResponse(
        total=total,
        limit=limit,
        offset=offset,
        rows=[LedgerEntryResponse.model_validate(r) for r in rows],
    )


# ── GET /api/ledger/{journal_id} ─────────────────────────────────────────
@router.get("/ledger/{journal_id}", response_model=LedgerEntryResponse)
def get_ledger_entry(journal_id: int, db: Session = Depends(get_db)):
    row = db.query(ExpenseLedgerModel).filter(ExpenseLedgerModel.journal_id == journal_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Ledger entry not found")
    return LedgerEntryResponse.model_validate(row)
