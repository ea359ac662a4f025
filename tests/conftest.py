"""
Shared pytest fixtures: in-memory SQLite, controllable clock, fake boundaries
and a FastAPI TestClient.
"""
import os
import tempfile
from datetime import datetime, timedelta

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DATA_DIR", os.path.join(tempfile.gettempdir(), "receipt-ledger-tests"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.database import Base, get_db
from app.models import ReceiptQueueModel  # noqa: F401  register models
from app.main import app
from app.pipeline.errors import ExtractionError
from app.pipeline.queue import ReceiptQueue
from app.routers.cron import get_extractor, get_fetcher
from app.schemas import ReceiptExtract

CRON_SECRET = "test-cron-secret-0123456789abcdef"

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeFetcher:
    """Returns the URL as the payload bytes unless told to fail for it."""

    def __init__(self):
        self.failures: dict[str, Exception] = {}
        self.calls: list[str] = []

    def __call__(self, url: str) -> bytes:
        self.calls.append(url)
        if url in self.failures:
            raise self.failures[url]
        return url.encode()


class FakeExtractor:
    """Looks up the outcome by payload bytes, falling back to ``default``."""

    def __init__(self):
        self.default = ReceiptExtract(
            store_name="Cafe X",
            transaction_date="2026-10-01",
            total_amount=1200,
            tax_amount=100,
            invoice_category="適格",
            suggested_debit_account="会議費",
            description="coffee",
        )
        self.outcomes: dict[bytes, object] = {}
        self.calls: list[tuple[bytes, str]] = []

    def extract(self, data: bytes, mime_type: str) -> ReceiptExtract:
        self.calls.append((data, mime_type))
        outcome = self.outcomes.get(data, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def fail_for(self, url: str, message: str = "model returned garbage") -> None:
        self.outcomes[url.encode()] = ExtractionError(message)


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture(autouse=True)
def _cron_secret(monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", CRON_SECRET)


@pytest.fixture()
def make_session():
    sessions = []

    def _make():
        session = _Session()
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.close()


@pytest.fixture()
def db(make_session):
    return make_session()


@pytest.fixture()
def clock():
    return FrozenClock(datetime(2026, 10, 19, 9, 0, 0))


@pytest.fixture()
def queue(db, clock):
    return ReceiptQueue(db, clock=clock)


@pytest.fixture()
def fetcher():
    return FakeFetcher()


@pytest.fixture()
def extractor():
    return FakeExtractor()


@pytest.fixture()
def register(queue):
    """Register a receipt with sensible defaults; returns its blob URL."""

    def _register(receipt_id: str, **overrides) -> str:
        fields = {
            "blob_url": f"https://blob.example.com/{receipt_id}.jpg",
            "pathname": f"receipts/{receipt_id}.jpg",
            "file_name": f"{receipt_id}.jpg",
            "mime_type": "image/jpeg",
            "size_bytes": 2048,
        }
        fields.update(overrides)
        queue.register(receipt_id=receipt_id, **fields)
        return fields["blob_url"]

    return _register


@pytest.fixture()
def client(db, extractor, fetcher):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_extractor] = lambda: extractor
    app.dependency_overrides[get_fetcher] = lambda: fetcher
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}
