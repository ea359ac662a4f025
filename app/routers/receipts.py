"""
Receipt intake and queue endpoints.

POST /api/receipts/register      register an uploaded receipt (idempotent)
GET  /api/receipts/queue         queue counts + most recent items
POST /api/receipts/reset-errors  make every ERROR item claimable again
"""
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models.receipt_queue import ReceiptQueueModel
from app.pipeline.queue import ReceiptQueue
from app.routers.security import require_cron_secret
from app.schemas import (
    QueueItemResponse,
    QueueOverviewResponse,
    RegisterReceiptRequest,
    RegisterReceiptResponse,
    ResetErrorsResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"ok": False, "error": {"message": message}})


async def raw_body(request: Request) -> bytes:
    """Raw request body, so malformed JSON gets the same 400 envelope."""
    return await request.body()


def transform_queue_item(model: ReceiptQueueModel) -> QueueItemResponse:
    """ReceiptQueueModel → QueueItemResponse"""
    extraction = model.extraction_response or {}
    return QueueItemResponse(
        receipt_id=model.receipt_id,
        file_name=model.file_name,
        mime_type=model.mime_type,
        size_bytes=model.size_bytes,
        status=model.status,
        error_count=model.error_count,
        last_error_message=model.last_error_message,
        next_retry_at=model.next_retry_at,
        uploaded_at=model.uploaded_at,
        processing_started_at=model.processing_started_at,
        processed_at=model.processed_at,
        ledger_journal_id=model.ledger_journal_id,
        suggested_debit_account=extraction.get("suggested_debit_account"),
    )


# ── POST /api/receipts/register ──────────────────────────────────────────
@router.post("/receipts/register", response_model=RegisterReceiptResponse)
def register_receipt(body: bytes = Depends(raw_body), db: Session = Depends(get_db)):
    try:
        payload = json.loads(body or b"null")
    except ValueError as e:
        return _bad_request(f"Invalid JSON body: {e}")
    try:
        req = RegisterReceiptRequest.model_validate(payload)
    except ValidationError as e:
        return _bad_request(str(e))

    if req.mime_type not in settings.ALLOWED_MIME_TYPES:
        return _bad_request(f"Unsupported mimeType: {req.mime_type}")
    if req.size_bytes > settings.MAX_FILE_BYTES:
        return _bad_request(f"sizeBytes exceeds limit of {settings.MAX_FILE_BYTES}")

    receipt_id = str(req.receipt_id)
    ReceiptQueue(db).register(
        receipt_id=receipt_id,
        blob_url=req.blob_url,
        pathname=req.pathname,
        file_name=req.file_name,
        mime_type=req.mime_type,
        size_bytes=req.size_bytes,
    )
    return RegisterReceiptResponse(receiptId=receipt_id)


# ── GET /api/receipts/queue ──────────────────────────────────────────────
@router.get(
    "/receipts/queue",
    response_model=QueueOverviewResponse,
    dependencies=[Depends(require_cron_secret)],
)
def queue_overview(
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    queue = ReceiptQueue(db)
    return QueueOverviewResponse(
        counts=queue.status_counts(),
        items=[transform_queue_item(m) for m in queue.recent(limit)],
    )


# ── POST /api/receipts/reset-errors ──────────────────────────────────────
@router.post(
    "/receipts/reset-errors",
    response_model=ResetErrorsResponse,
    dependencies=[Depends(require_cron_secret)],
)
def reset_errors(db: Session = Depends(get_db)):
    reset = ReceiptQueue(db).reset_errors()
    return ResetErrorsResponse(reset=[transform_queue_item(m) for m in reset])
