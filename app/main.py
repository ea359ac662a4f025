"""
Receipt ledger backend: FastAPI application entry-point.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import Base, engine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(name)-30s  %(levelname)-5s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure data dir + tables exist
    os.makedirs(settings.DATA_DIR, exist_ok=True)
    # Import models so Base.metadata knows about them
    import app.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ready (%s)", engine.url.render_as_string(hide_password=True))
    if not settings.CRON_SECRET:
        logger.warning("CRON_SECRET is empty; the cron trigger will reject every call")

    yield
    engine.dispose()
    logger.info("Shutting down")


app = FastAPI(
    title="Receipt Ledger",
    description="Receipt upload → queued extraction → double-entry ledger line",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"service": "Receipt Ledger", "version": "0.1.0", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# ── Register API routers ─────────────────────────────────────────────────
from app.routers.receipts import router as receipts_router  # noqa: E402
from app.routers.cron import router as cron_router  # noqa: E402
from app.routers.ledger import router as ledger_router  # noqa: E402

app.include_router(receipts_router, prefix="/api", tags=["Receipt Queue"])
app.include_router(cron_router, prefix="/api", tags=["Cron"])
app.include_router(ledger_router, prefix="/api", tags=["Ledger"])
