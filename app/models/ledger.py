"""
Double-entry expense ledger models.
"""
from sqlalchemy import Column, String, Text, JSON, DateTime, Integer, BigInteger, Date

from app.database import Base, utcnow


class ExpenseLedgerModel(Base):
    """One journal line: expense (debit) paid from an account (credit)"""
    __tablename__ = "expense_ledger"

    journal_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    transaction_date = Column(Date, nullable=False)

    debit_account = Column(String, nullable=False)
    debit_vendor = Column(String)
    debit_amount = Column(BigInteger, nullable=False, default=0)
    debit_tax = Column(BigInteger, nullable=False, default=0)
    debit_invoice_category = Column(String, nullable=False, default="区分記載")  # 適格, 区分記載

    credit_account = Column(String, nullable=False)
    credit_vendor = Column(String, nullable=False, default="")
    credit_amount = Column(BigInteger, nullable=False, default=0)
    credit_tax = Column(BigInteger, nullable=False, default=0)
    credit_invoice_category = Column(String, nullable=False, default="区分記載")

    description = Column(Text)
    memo = Column(Text)

    # Source file linkage; one ledger line per receipt through the pipeline
    source_receipt_id = Column(String, unique=True)
    source_file_name = Column(Text)
    source_mime_type = Column(String)

    extraction_response = Column(JSON)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    processed_at = Column(DateTime, nullable=False, default=utcnow)


class ReceiptProcessingErrorModel(Base):
    """Append-only log of item-level processing failures"""
    __tablename__ = "receipt_processing_errors"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    receipt_id = Column(String, index=True)
    file_name = Column(Text)
    error_message = Column(Text, nullable=False)
    stack = Column(Text)
    occurred_at = Column(DateTime, nullable=False, default=utcnow)
