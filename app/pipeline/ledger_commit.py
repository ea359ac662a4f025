"""
Ledger commit protocol.

Success: the ledger line is committed first, then the queue item is marked
PROCESSED. Failure: the item goes to ERROR with a fixed backoff and the
failure is appended to ``receipt_processing_errors``.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings, settings as default_settings
from app.database import utcnow
from app.models.ledger import ExpenseLedgerModel, ReceiptProcessingErrorModel
from app.models.receipt_queue import ReceiptQueueModel
from app.pipeline.errors import LedgerCommitError, QueueStatusUpdateError
from app.pipeline.queue import ReceiptQueue
from app.schemas import ReceiptExtract

logger = logging.getLogger(__name__)


def parse_transaction_date(value: str) -> date:
    v = (value or "").strip()
    if "T" in v:
        v = v.split("T", 1)[0]
    try:
        return date.fromisoformat(v[:10])
    except ValueError:
        raise ValueError(f"Invalid transaction_date: {value!r}") from None


def build_ledger_entry(
    item: ReceiptQueueModel,
    extract: ReceiptExtract,
    config: Settings = default_settings,
    now: Optional[datetime] = None,
) -> ExpenseLedgerModel:
    """Map an extraction onto an expense-paid-from-default-account journal line."""
    now = now or utcnow()
    invoice_category = extract.invoice_category or config.DEFAULT_INVOICE_CATEGORY
    return ExpenseLedgerModel(
        transaction_date=parse_transaction_date(extract.transaction_date),
        debit_account=extract.suggested_debit_account or config.DEFAULT_DEBIT_ACCOUNT,
        debit_vendor=extract.store_name,
        debit_amount=extract.total_amount,
        debit_tax=extract.tax_amount,
        debit_invoice_category=invoice_category,
        credit_account=config.DEFAULT_CREDIT_ACCOUNT,
        credit_vendor="",
        credit_amount=extract.total_amount,
        credit_tax=extract.tax_amount,
        credit_invoice_category=invoice_category,
        description=extract.description,
        memo=extract.memo,
        source_receipt_id=item.receipt_id,
        source_file_name=item.file_name,
        source_mime_type=item.mime_type,
        extraction_response=extract.model_dump(),
        created_at=now,
        processed_at=now,
    )


def commit_success(
    db: Session,
    queue: ReceiptQueue,
    item: ReceiptQueueModel,
    extract: ReceiptExtract,
    config: Settings = default_settings,
) -> int:
    """Book ``extract`` for ``item`` and mark the item PROCESSED.

    Returns the new journal id. Raises ``LedgerCommitError`` when nothing was
    booked, ``QueueStatusUpdateError`` when the line is booked but the item
    could not be marked.
    """
    receipt_id = item.receipt_id
    try:
        entry = build_ledger_entry(item, extract, config, now=queue.clock())
        db.add(entry)
        db.flush()
        journal_id = entry.journal_id
        db.commit()
    except (SQLAlchemyError, ValueError) as e:
        db.rollback()
        raise LedgerCommitError(f"Ledger insert failed: {e}") from e

    logger.info("Booked receipt %s as journal %s", receipt_id, journal_id)

    try:
        queue.mark_processed(receipt_id, journal_id, extract.model_dump())
    except SQLAlchemyError as e:
        db.rollback()
        message = f"Ledger journal {journal_id} committed but marking PROCESSED failed: {e}"
        logger.error("Receipt %s: %s", receipt_id, message)
        try:
            queue.note_error_message(receipt_id, message)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Could not record status-update failure for receipt %s", receipt_id)
        raise QueueStatusUpdateError(receipt_id, journal_id, message) from e

    return journal_id


def commit_failure(
    db: Session,
    queue: ReceiptQueue,
    receipt_id: str,
    message: str,
    file_name: Optional[str] = None,
    stack: Optional[str] = None,
    config: Settings = default_settings,
) -> None:
    """Put the item into ERROR with the fixed backoff and log the failure row."""
    db.rollback()
    queue.mark_error(receipt_id, message, config.RETRY_BACKOFF_SECONDS)
    logger.warning(
        "Receipt %s failed (retry in %ds): %s", receipt_id, config.RETRY_BACKOFF_SECONDS, message
    )

    try:
        db.add(
            ReceiptProcessingErrorModel(
                receipt_id=receipt_id,
                file_name=file_name,
                error_message=message,
                stack=stack,
                occurred_at=queue.clock(),
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not append processing error row for receipt %s", receipt_id)
