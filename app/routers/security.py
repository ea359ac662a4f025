"""
Shared-secret guard for the cron trigger and operator endpoints.
"""
import logging
import secrets

from fastapi import Header, HTTPException

from app.config import settings

logger = logging.getLogger(__name__)


def require_cron_secret(authorization: str = Header(default="")) -> None:
    """Reject the call unless ``Authorization: Bearer <CRON_SECRET>`` matches."""
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET is not configured; rejecting trigger")
        raise HTTPException(status_code=500, detail="CRON_SECRET is not configured")
    expected = f"Bearer {settings.CRON_SECRET}"
    if not secrets.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="unauthorized")
