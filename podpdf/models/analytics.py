"""Append-only analytics records of job outcomes."""

from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.sql import func
from ..database import Base


class AnalyticsRecord(Base):
    """
    One outcome event for a job. Written by the analytics service, never modified.

    Fields:
        status:               success, failed (business failure), failure (transient)
        job_duration_ms:      wall time from message pickup to the event
        webhook_retry_count:  only on records emitted after webhook delivery
    """

    __tablename__ = "analytics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(64), nullable=False, index=True)
    job_type = Column(String(16), nullable=False)
    mode = Column(String(32), nullable=True)
    pages = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False)
    job_duration_ms = Column(Integer, nullable=False, default=0)
    webhook_retry_count = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
