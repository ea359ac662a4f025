"""
Pydantic v2 contracts for the receipt pipeline.

Request/response envelopes for the HTTP surface plus the structured record
returned by the extraction boundary.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, AnyHttpUrl, TypeAdapter, field_validator


# ---------------------------------------------------------------------------
# Extraction record
# ---------------------------------------------------------------------------

class ReceiptExtract(BaseModel):
    """Fixed-shape record produced by the document-understanding service."""
    store_name: str = ""
    transaction_date: str = Field("", description="YYYY-MM-DD")
    total_amount: int = Field(0, description="Tax-inclusive total, smallest currency unit")
    tax_amount: int = 0
    invoice_category: str = Field("", description="適格 | 区分記載")
    suggested_debit_account: str = ""
    description: str = ""
    memo: str = ""
    items_summary: str = ""

    @field_validator("total_amount", "tax_amount", mode="before")
    @classmethod
    def _non_negative_int(cls, v: Any) -> int:
        if v is None or v == "":
            return 0
        try:
            amount = int(float(v))
        except (TypeError, ValueError, OverflowError):
            return 0
        return max(amount, 0)

    @field_validator(
        "store_name",
        "transaction_date",
        "invoice_category",
        "suggested_debit_account",
        "description",
        "memo",
        "items_summary",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------

_HTTP_URL = TypeAdapter(AnyHttpUrl)


class RegisterReceiptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    receipt_id: UUID = Field(..., alias="receiptId")
    blob_url: str = Field(..., alias="blobUrl")
    pathname: str = Field(..., min_length=1)
    file_name: str = Field(..., alias="fileName", min_length=1)
    mime_type: str = Field(..., alias="mimeType")
    size_bytes: int = Field(..., alias="sizeBytes", ge=0)

    @field_validator("blob_url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        # validate only; the stored reference keeps the client's exact string
        _HTTP_URL.validate_python(v)
        return v


class RegisterReceiptResponse(BaseModel):
    ok: bool = True
    receiptId: str


# ---------------------------------------------------------------------------
# Queue inspection
# ---------------------------------------------------------------------------

class QueueItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    receipt_id: str
    file_name: str
    mime_type: str
    size_bytes: int
    status: str
    error_count: int
    last_error_message: Optional[str] = None
    next_retry_at: datetime
    uploaded_at: datetime
    processing_started_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    ledger_journal_id: Optional[int] = None
    suggested_debit_account: Optional[str] = None


class QueueOverviewResponse(BaseModel):
    counts: dict[str, int] = Field(default_factory=dict)
    items: list[QueueItemResponse] = Field(default_factory=list)


class ResetErrorsResponse(BaseModel):
    ok: bool = True
    reset: list[QueueItemResponse] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Worker run
# ---------------------------------------------------------------------------

class RunSummary(BaseModel):
    ok: bool = True
    skipped: bool = False
    reason: Optional[str] = None
    processed: int = 0
    failed: int = 0


# ---------------------------------------------------------------------------
# Ledger (read side)
# ---------------------------------------------------------------------------

class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    journal_id: int
    transaction_date: date
    debit_account: str
    debit_vendor: Optional[str] = None
    debit_amount: int
    debit_tax: int
    debit_invoice_category: str
    credit_account: str
    credit_vendor: str
    credit_amount: int
    credit_tax: int
    credit_invoice_category: str
    description: Optional[str] = None
    memo: Optional[str] = None
    source_receipt_id: Optional[str] = None
    source_file_name: Optional[str] = None
    source_mime_type: Optional[str] = None
    created_at: datetime
    processed_at: datetime


class LedgerListResponse(BaseModel):
    ok: bool = True
    total: int
    limit: int
    offset: int
    rows: list[LedgerEntryResponse] = Field(default_factory=list)
