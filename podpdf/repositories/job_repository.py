"""Job record store.

All mutation of a job goes through two single-statement writes:

- ``activate``: the pending -> processing gate used for deduplication.
- ``update``:   field merge; status changes are gated on the allowed
  predecessor states inside the same UPDATE so a terminal state never regresses.

Neither ever reads the row first and writes it back.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import sqlalchemy.exc
from sqlalchemy import update

from .base import BaseRepository
from ..core.clock import utc_now
from ..exceptions import DatabaseError, JobNotFoundError
from ..models.job import Job, JobStatus

logger = logging.getLogger(__name__)


@dataclass
class ActivationResult:
    """Outcome of ``JobRepository.activate``.

    ``job`` is the record as it stands after the attempt, or None when no
    record exists for the id.
    """
    activated: bool
    job: Optional[Job]


class JobRepository(BaseRepository[Job]):
    """Data access for ``job_details``."""

    model_class = Job
    id_column = "job_id"
    not_found_error = JobNotFoundError

    def get(self, job_id: str) -> Optional[Job]:
        return self.get_by_id_optional(job_id)

    def get_or_raise(self, job_id: str) -> Job:
        return self.get_by_id(job_id)

    def create(
        self,
        job_id: str,
        input_type: str,
        content: Any = None,
        options: Optional[dict] = None,
        webhook_url: Optional[str] = None,
        user_sub: Optional[str] = None,
        user_id: Optional[str] = None,
        job_type: str = "long",
    ) -> Job:
        """Insert a new job in ``pending``."""
        job = Job(
            job_id=job_id,
            user_sub=user_sub,
            user_id=user_id,
            job_type=job_type,
            input_type=input_type,
            content=content,
            options=options or {},
            webhook_url=webhook_url,
            status=JobStatus.PENDING,
            created_at=utc_now(),
        )
        try:
            self.db.add(job)
            self.db.commit()
        except sqlalchemy.exc.SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(f"Failed to create job {job_id}", e) from e
        self.db.refresh(job)
        logger.info("Job record created", extra={"job_id": job_id, "input_type": input_type})
        return job

    def activate(self, job_id: str) -> ActivationResult:
        """Atomically move a job from ``pending`` to ``processing``.

        Exactly one of any number of concurrent callers for the same job sees
        ``activated=True``. The record is returned regardless of the outcome.
        """
        stmt = (
            update(Job)
            .where(Job.job_id == job_id, Job.status == JobStatus.PENDING)
            .values(status=JobStatus.PROCESSING, started_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except sqlalchemy.exc.SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(f"Failed to activate job {job_id}", e) from e

        activated = result.rowcount == 1
        self.db.expire_all()
        job = self.get(job_id)
        if not activated:
            logger.debug(
                "Activation gate closed",
                extra={"job_id": job_id, "current_status": job.status if job else None},
            )
        return ActivationResult(activated=activated, job=job)

    def update(self, job_id: str, **fields: Any) -> bool:
        """Merge *fields* into the job record.

        When ``status`` is among the fields, the write only applies if the
        current status is an allowed predecessor, and ``completed_at`` /
        ``failed_at`` are stamped. Returns True when a row changed.
        """
        if not fields:
            return False

        stmt = update(Job).where(Job.job_id == job_id)
        status = fields.get("status")
        if status is not None:
            if status not in JobStatus.PREDECESSORS:
                raise ValueError(f"Cannot set job status to {status!r}")
            stmt = stmt.where(Job.status.in_(JobStatus.PREDECESSORS[status]))
            if status == JobStatus.COMPLETED:
                fields.setdefault("completed_at", utc_now())
            elif status == JobStatus.FAILED:
                fields.setdefault("failed_at", utc_now())

        try:
            result = self.db.execute(
                stmt.values(**fields).execution_options(synchronize_session=False)
            )
            self.db.commit()
        except sqlalchemy.exc.SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(f"Failed to update job {job_id}", e) from e

        self.db.expire_all()
        changed = result.rowcount == 1
        if status is not None and not changed:
            logger.warning(
                "Status transition rejected",
                extra={"job_id": job_id, "target_status": status},
            )
        return changed
