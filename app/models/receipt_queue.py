"""
Receipt work queue model.
"""
from enum import Enum

from sqlalchemy import Column, String, Text, JSON, DateTime, Integer, BigInteger

from app.database import Base, utcnow


class QueueStatus(str, Enum):
    UNPROCESSED = "UNPROCESSED"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    ERROR = "ERROR"


# Only these states can be picked up by a reservation
CLAIMABLE_STATUSES = (QueueStatus.UNPROCESSED.value, QueueStatus.ERROR.value)


class ReceiptQueueModel(Base):
    """One tracking row per uploaded receipt"""
    __tablename__ = "receipt_queue"

    receipt_id = Column(String, primary_key=True)

    # Payload reference (bytes live in blob storage)
    blob_url = Column(Text, nullable=False)
    pathname = Column(Text, nullable=False)
    file_name = Column(Text, nullable=False)
    mime_type = Column(String, nullable=False)
    size_bytes = Column(BigInteger, nullable=False, default=0)

    status = Column(String, nullable=False, default=QueueStatus.UNPROCESSED.value, index=True)

    # Retry bookkeeping
    error_count = Column(Integer, nullable=False, default=0)
    last_error_message = Column(Text)
    next_retry_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    # Outcome
    ledger_journal_id = Column(BigInteger)
    extraction_response = Column(JSON)

    uploaded_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    processing_started_at = Column(DateTime)
    processed_at = Column(DateTime)
