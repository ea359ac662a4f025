"""
Named TTL lock rows used to serialize cron runs.
"""
from sqlalchemy import Column, String, DateTime

from app.database import Base, utcnow


class CronLockModel(Base):
    __tablename__ = "cron_locks"

    lock_name = Column(String, primary_key=True)
    locked_until = Column(DateTime, nullable=False)  # held iff in the future
    locked_by = Column(String)
    locked_at = Column(DateTime, nullable=False, default=utcnow)
