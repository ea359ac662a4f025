from app.schemas.base import (
    LedgerEntryResponse,
    LedgerListResponse,
    QueueItemResponse,
    QueueOverviewResponse,
    ReceiptExtract,
    RegisterReceiptRequest,
    RegisterReceiptResponse,
    ResetErrorsResponse,
    RunSummary,
)

__all__ = [
    "LedgerEntryResponse",
    "LedgerListResponse",
    "QueueItemResponse",
    "QueueOverviewResponse",
    "ReceiptExtract",
    "RegisterReceiptRequest",
    "RegisterReceiptResponse",
    "ResetErrorsResponse",
    "RunSummary",
]
