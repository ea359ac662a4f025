from app.models.cron_lock import CronLockModel
from app.models.ledger import ExpenseLedgerModel, ReceiptProcessingErrorModel
from app.models.receipt_queue import CLAIMABLE_STATUSES, QueueStatus, ReceiptQueueModel

__all__ = [
    "CLAIMABLE_STATUSES",
    "CronLockModel",
    "ExpenseLedgerModel",
    "QueueStatus",
    "ReceiptProcessingErrorModel",
    "ReceiptQueueModel",
]
