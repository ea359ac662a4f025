"""
Receipt processing pipeline.

Orchestrates one cron run: lock → reserve → fetch → extract → commit → unlock.
"""
import logging
import traceback
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.config import Settings, settings as default_settings
from app.database import utcnow
from app.pipeline.cron_lock import cron_lock
from app.pipeline.errors import QueueStatusUpdateError, ReceiptProcessingError
from app.pipeline.fetcher import fetch_payload
from app.pipeline.ledger_commit import commit_failure, commit_success
from app.pipeline.queue import ReceiptQueue
from app.schemas import RunSummary

logger = logging.getLogger(__name__)


def process_receipts(
    db: Session,
    extractor,
    fetch: Optional[Callable[[str], bytes]] = None,
    config: Settings = default_settings,
    clock: Callable[[], datetime] = utcnow,
    locked_by: Optional[str] = None,
) -> RunSummary:
    """Run the worker once.

    ``extractor`` needs an ``extract(data, mime_type)`` method returning a
    ``ReceiptExtract``. Item failures are recorded on the queue and counted;
    they never fail the run.
    """
    if fetch is None:
        def fetch(url: str) -> bytes:
            return fetch_payload(
                url, max_bytes=config.MAX_FILE_BYTES, timeout=config.FETCH_TIMEOUT_SECONDS
            )

    with cron_lock(
        db, config.CRON_LOCK_NAME, config.CRON_LOCK_TTL_SECONDS, locked_by, clock=clock
    ) as acquired:
        if not acquired:
            return RunSummary(skipped=True, reason="locked")

        queue = ReceiptQueue(db, clock=clock, max_attempts=config.RESERVE_MAX_ATTEMPTS)
        targets = queue.reserve(config.MAX_FILES_PER_RUN)
        logger.info("Pipeline start: %d receipt(s) reserved", len(targets))

        processed = 0
        failed = 0
        for item in targets:
            receipt_id = item.receipt_id
            file_name = item.file_name
            mime_type = item.mime_type
            blob_url = item.blob_url
            try:
                data = fetch(blob_url)
                extract = extractor.extract(data, mime_type)
                commit_success(db, queue, item, extract, config)
                processed += 1
            except QueueStatusUpdateError:
                # Booked but left in PROCESSING; needs an operator.
                failed += 1
            except Exception as e:
                failed += 1
                if not isinstance(e, ReceiptProcessingError):
                    logger.exception("Unexpected error processing receipt %s", receipt_id)
                commit_failure(
                    db, queue, receipt_id, str(e) or type(e).__name__,
                    file_name=file_name, stack=traceback.format_exc(), config=config,
                )

        logger.info("Pipeline done: processed=%d failed=%d", processed, failed)
        return RunSummary(processed=processed, failed=failed)
