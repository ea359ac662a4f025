"""
Receipt work queue: idempotent registration and skip-locked reservation.

All writes to ``receipt_queue.status`` go through this module.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.receipt_queue import CLAIMABLE_STATUSES, QueueStatus, ReceiptQueueModel

logger = logging.getLogger(__name__)


def dialect_insert(db: Session):
    """Return the dialect ``insert`` that supports ``on_conflict_do_update``."""
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Unsupported database dialect for upserts: {name}")


class ReceiptQueue:
    """Queue store plus lease manager over the ``receipt_queue`` table."""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int = 3,
    ):
        self.db = db
        self.clock = clock
        self.max_attempts = max(1, max_attempts)

    # ── intake ───────────────────────────────────────────────────────────
    def register(
        self,
        receipt_id: str,
        blob_url: str,
        pathname: str,
        file_name: str,
        mime_type: str,
        size_bytes: int,
    ) -> None:
        """Insert an UNPROCESSED item, or refresh payload metadata if it exists.

        Status and retry fields of an existing row are never touched, so this
        is safe to call more than once per upload.
        """
        now = self.clock()
        insert = dialect_insert(self.db)
        stmt = insert(ReceiptQueueModel).values(
            receipt_id=receipt_id,
            blob_url=blob_url,
            pathname=pathname,
            file_name=file_name,
            mime_type=mime_type,
            size_bytes=size_bytes,
            status=QueueStatus.UNPROCESSED.value,
            error_count=0,
            next_retry_at=now,
            uploaded_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ReceiptQueueModel.receipt_id],
            set_={
                "blob_url": stmt.excluded.blob_url,
                "pathname": stmt.excluded.pathname,
                "file_name": stmt.excluded.file_name,
                "mime_type": stmt.excluded.mime_type,
                "size_bytes": stmt.excluded.size_bytes,
            },
        )
        self.db.execute(stmt)
        self.db.commit()
        logger.info("Registered receipt %s (%s, %d bytes)", receipt_id, mime_type, size_bytes)

    # ── lease manager ────────────────────────────────────────────────────
    def _select_candidate_ids(self, limit: int, now: datetime) -> list[str]:
        # SKIP LOCKED is rendered on PostgreSQL and ignored by SQLite, where the
        # guarded update below is the only exclusion.
        stmt = (
            select(ReceiptQueueModel.receipt_id)
            .where(
                ReceiptQueueModel.status.in_(CLAIMABLE_STATUSES),
                ReceiptQueueModel.next_retry_at <= now,
            )
            .order_by(ReceiptQueueModel.uploaded_at.asc(), ReceiptQueueModel.receipt_id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list(self.db.execute(stmt).scalars().all())

    def _claim(self, receipt_ids: list[str], now: datetime) -> list[str]:
        stmt = (
            update(ReceiptQueueModel)
            .where(
                ReceiptQueueModel.receipt_id.in_(receipt_ids),
                ReceiptQueueModel.status.in_(CLAIMABLE_STATUSES),
                ReceiptQueueModel.next_retry_at <= now,
            )
            .values(status=QueueStatus.PROCESSING.value, processing_started_at=now)
            .returning(ReceiptQueueModel.receipt_id)
            .execution_options(synchronize_session=False)
        )
        return list(self.db.execute(stmt).scalars().all())

    def reserve(self, limit: int) -> list[ReceiptQueueModel]:
        """Claim up to ``limit`` eligible items, oldest upload first.

        Each round selects candidates and flips them to PROCESSING with an
        update guarded by the claimable status; rows another caller took in
        between simply drop out of the result. Rounds repeat only while rows
        were lost, up to ``max_attempts``.
        """
        if limit <= 0:
            return []

        claimed: list[str] = []
        for attempt in range(self.max_attempts):
            now = self.clock()
            wanted = limit - len(claimed)
            candidates = self._select_candidate_ids(wanted, now)
            if not candidates:
                self.db.commit()
                break
            won = self._claim(candidates, now)
            self.db.commit()
            claimed.extend(won)

            lost = len(candidates) - len(won)
            if lost:
                logger.debug("Reservation round %d lost %d item(s) to a concurrent caller", attempt + 1, lost)
            if not lost or len(claimed) >= limit:
                break

        if not claimed:
            return []

        items = (
            self.db.query(ReceiptQueueModel)
            .filter(ReceiptQueueModel.receipt_id.in_(claimed))
            .order_by(ReceiptQueueModel.uploaded_at.asc(), ReceiptQueueModel.receipt_id.asc())
            .populate_existing()
            .all()
        )
        logger.info("Reserved %d receipt(s)", len(items))
        return items

    # ── terminal transitions ─────────────────────────────────────────────
    def mark_processed(self, receipt_id: str, journal_id: int, extraction: Optional[dict[str, Any]]) -> None:
        now = self.clock()
        self.db.execute(
            update(ReceiptQueueModel)
            .where(ReceiptQueueModel.receipt_id == receipt_id)
            .values(
                status=QueueStatus.PROCESSED.value,
                processed_at=now,
                ledger_journal_id=journal_id,
                extraction_response=extraction,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def mark_error(self, receipt_id: str, message: str, backoff_seconds: int) -> None:
        now = self.clock()
        self.db.execute(
            update(ReceiptQueueModel)
            .where(ReceiptQueueModel.receipt_id == receipt_id)
            .values(
                status=QueueStatus.ERROR.value,
                error_count=ReceiptQueueModel.error_count + 1,
                last_error_message=message,
                next_retry_at=now + timedelta(seconds=backoff_seconds),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def note_error_message(self, receipt_id: str, message: str) -> None:
        """Record a message on the item without changing its status."""
        self.db.execute(
            update(ReceiptQueueModel)
            .where(ReceiptQueueModel.receipt_id == receipt_id)
            .values(last_error_message=message)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    # ── operator views ───────────────────────────────────────────────────
    def get(self, receipt_id: str) -> Optional[ReceiptQueueModel]:
        return (
            self.db.query(ReceiptQueueModel)
            .filter(ReceiptQueueModel.receipt_id == receipt_id)
            .populate_existing()
            .first()
        )

    def recent(self, limit: int = 20) -> list[ReceiptQueueModel]:
        return (
            self.db.query(ReceiptQueueModel)
            .order_by(ReceiptQueueModel.uploaded_at.desc())
            .limit(limit)
            .populate_existing()
            .all()
        )

    def status_counts(self) -> dict[str, int]:
        rows = (
            self.db.query(ReceiptQueueModel.status, func.count(ReceiptQueueModel.receipt_id))
            .group_by(ReceiptQueueModel.status)
            .all()
        )
        counts = {s.value: 0 for s in QueueStatus}
        counts.update({status: n for status, n in rows})
        return counts

    def reset_errors(self) -> list[ReceiptQueueModel]:
        """Make every ERROR item immediately claimable again (error_count is kept)."""
        now = self.clock()
        reset_ids = list(
            self.db.execute(
                update(ReceiptQueueModel)
                .where(ReceiptQueueModel.status == QueueStatus.ERROR.value)
                .values(
                    status=QueueStatus.UNPROCESSED.value,
                    next_retry_at=now,
                    last_error_message=None,
                )
                .returning(ReceiptQueueModel.receipt_id)
                .execution_options(synchronize_session=False)
            ).scalars().all()
        )
        self.db.commit()
        logger.info("Reset %d errored receipt(s)", len(reset_ids))
        if not reset_ids:
            return []
        return (
            self.db.query(ReceiptQueueModel)
            .filter(ReceiptQueueModel.receipt_id.in_(reset_ids))
            .order_by(ReceiptQueueModel.uploaded_at.asc())
            .populate_existing()
            .all()
        )
