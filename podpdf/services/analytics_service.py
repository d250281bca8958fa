"""Analytics sink: records job outcomes.

Entries are append-only. Recording never raises: analytics failures are
logged and must not change the outcome of the job being measured.

Usage in the processor:
    AnalyticsService(db).record(job_id="...", job_type="long", mode="html",
                                status="success", pages=3, job_duration_ms=812)
"""

import logging
from typing import Optional

import sqlalchemy.exc
from sqlalchemy.orm import Session

from ..models.analytics import AnalyticsRecord

logger = logging.getLogger(__name__)


class AnalyticsService:

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        job_id: str,
        job_type: str,
        status: str,
        mode: Optional[str] = None,
        pages: int = 0,
        job_duration_ms: int = 0,
        webhook_retry_count: Optional[int] = None,
    ) -> None:
        """Append one analytics record. Never raises."""
        try:
            entry = AnalyticsRecord(
                job_id=job_id,
                job_type=job_type,
                mode=mode,
                pages=pages or 0,
                status=status,
                job_duration_ms=int(job_duration_ms or 0),
                webhook_retry_count=webhook_retry_count,
            )
            self.db.add(entry)
            self.db.commit()
            logger.debug("Analytics record created", extra={"status": status})
        except sqlalchemy.exc.SQLAlchemyError as e:
            logger.warning("Failed to write analytics record: %s", e)
            self.db.rollback()

    def get_for_job(self, job_id: str) -> list[AnalyticsRecord]:
        """All analytics records for a job, oldest first."""
        return (
            self.db.query(AnalyticsRecord)
            .filter(AnalyticsRecord.job_id == job_id)
            .order_by(AnalyticsRecord.id.asc())
            .all()
        )
