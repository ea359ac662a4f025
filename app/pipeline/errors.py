"""
Item-level failures. The worker catches these per receipt and schedules a retry.
"""


class ReceiptProcessingError(Exception):
    """Base class for failures that affect a single queue item."""


class PayloadFetchError(ReceiptProcessingError):
    pass


class ExtractionError(ReceiptProcessingError):
    pass


class LedgerCommitError(ReceiptProcessingError):
    pass


class QueueStatusUpdateError(Exception):
    """The ledger line is committed but the queue item could not be marked PROCESSED.

    Not a ``ReceiptProcessingError``: retrying the item would try to book the
    same receipt twice.
    """

    def __init__(self, receipt_id: str, journal_id: int, message: str):
        super().__init__(message)
        self.receipt_id = receipt_id
        self.journal_id = journal_id
