"""Job record model for asynchronous ("long") PDF jobs."""

from sqlalchemy import Column, String, Text, Integer, DateTime, Boolean, JSON
from sqlalchemy.sql import func
from ..database import Base


class JobStatus:
    """Allowed values of ``Job.status``.

    Transitions: pending -> processing -> completed | failed.
    A job never returns to pending or processing once terminal.
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    # Allowed predecessor states for every target state.
    PREDECESSORS = {
        PROCESSING: (PENDING,),
        COMPLETED: (PROCESSING,),
        FAILED: (PENDING, PROCESSING),
    }


class Job(Base):
    """
    One submitted long-running document-to-PDF conversion.

    Created in ``pending`` by the submission path, then mutated exclusively
    by the job processor. Never deleted here; retention is handled elsewhere.
    """

    __tablename__ = "job_details"

    job_id = Column(String(64), primary_key=True)

    # Owner
    user_sub = Column(String(128), nullable=True, index=True)
    user_id = Column(String(64), nullable=True, index=True)

    # Immutable job specification
    job_type = Column(String(16), nullable=False, default="long")
    input_type = Column(String(32), nullable=False)
    content = Column(JSON, nullable=True)
    options = Column(JSON, nullable=True)
    webhook_url = Column(Text, nullable=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default=JobStatus.PENDING)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    # Result (set only on completed)
    pages = Column(Integer, nullable=True)
    truncated = Column(Boolean, nullable=True)
    s3_key = Column(Text, nullable=True)
    s3_url = Column(Text, nullable=True)
    s3_url_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Webhook delivery audit trail
    webhook_delivered = Column(Boolean, nullable=True)
    webhook_delivered_at = Column(DateTime(timezone=True), nullable=True)
    webhook_retry_count = Column(Integer, nullable=True)
    webhook_retry_log = Column(JSON, nullable=True)
