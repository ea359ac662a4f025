"""
Cron trigger.

GET|POST /api/cron/process-receipts  run the worker once (Bearer CRON_SECRET)
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.pipeline import process_receipts
from app.pipeline.extractor import GeminiExtractor
from app.routers.security import require_cron_secret
from app.schemas import RunSummary

logger = logging.getLogger(__name__)
router = APIRouter()


def get_extractor():
    extractor = GeminiExtractor()
    try:
        yield extractor
    finally:
        extractor.close()


def get_fetcher() -> Optional[Callable[[str], bytes]]:
    """``None`` selects the default HTTP fetcher."""
    return None


@router.api_route(
    "/cron/process-receipts",
    methods=["GET", "POST"],
    response_model=RunSummary,
    response_model_exclude_none=True,
    dependencies=[Depends(require_cron_secret)],
)
def run_process_receipts(
    db: Session = Depends(get_db),
    extractor=Depends(get_extractor),
    fetch=Depends(get_fetcher),
):
    summary = process_receipts(db, extractor, fetch=fetch, config=settings)
    if summary.skipped:
        logger.info("Cron run skipped: %s", summary.reason)
    return summary
