"""
Named, TTL-bounded exclusion lock for cron runs.

A lock is held while ``locked_until`` is in the future. A crashed holder
blocks others for at most one TTL window; there is no heartbeat renewal.
"""
from __future__ import annotations

import logging
import os
import socket
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.cron_lock import CronLockModel
from app.pipeline.queue import dialect_insert

logger = logging.getLogger(__name__)


def default_holder_id() -> str:
    return f"cron-{socket.gethostname()}-{os.getpid()}"


def acquire_cron_lock(
    db: Session,
    lock_name: str,
    ttl_seconds: int,
    locked_by: str,
    now: Optional[datetime] = None,
) -> bool:
    """Try to take ``lock_name`` for ``ttl_seconds``.

    One conditional upsert: the row is created if missing and overwritten
    only when the current lease has expired. Returns False, with no write,
    while someone else holds it.
    """
    now = now or utcnow()
    insert = dialect_insert(db)
    stmt = insert(CronLockModel).values(
        lock_name=lock_name,
        locked_until=now + timedelta(seconds=ttl_seconds),
        locked_by=locked_by,
        locked_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[CronLockModel.lock_name],
        set_={
            "locked_until": stmt.excluded.locked_until,
            "locked_by": stmt.excluded.locked_by,
            "locked_at": stmt.excluded.locked_at,
        },
        where=CronLockModel.locked_until <= now,
    ).returning(CronLockModel.lock_name)

    acquired = db.execute(stmt).first() is not None
    db.commit()
    if acquired:
        logger.info("Acquired cron lock %s as %s (ttl=%ds)", lock_name, locked_by, ttl_seconds)
    else:
        logger.info("Cron lock %s is held; %s backs off", lock_name, locked_by)
    return acquired


def release_cron_lock(
    db: Session,
    lock_name: str,
    locked_by: str,
    now: Optional[datetime] = None,
) -> None:
    """Expire the lock immediately, whoever holds it."""
    now = now or utcnow()
    db.execute(
        update(CronLockModel)
        .where(CronLockModel.lock_name == lock_name)
        .values(locked_until=now, locked_by=locked_by, locked_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("Released cron lock %s (%s)", lock_name, locked_by)


@contextmanager
def cron_lock(
    db: Session,
    lock_name: str,
    ttl_seconds: int,
    locked_by: Optional[str] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Iterator[bool]:
    """Yield whether the lock was acquired; release on every exit path if it was."""
    holder = locked_by or default_holder_id()
    acquired = acquire_cron_lock(db, lock_name, ttl_seconds, holder, now=clock())
    try:
        yield acquired
    finally:
        if acquired:
            try:
                db.rollback()
            finally:
                release_cron_lock(db, lock_name, holder, now=clock())
