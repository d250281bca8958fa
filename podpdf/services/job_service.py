"""Service for submitting long-running PDF jobs."""

import uuid
import logging
from typing import Any, Optional
from sqlalchemy.orm import Session

from ..models.job import Job
from ..repositories.job_repository import JobRepository
from .message_queue import SqlMessageQueue

logger = logging.getLogger(__name__)


class JobService:
    """
    Submission side of the long-job pipeline.

    Creates the ``pending`` job record first and only then enqueues the
    message, so a consumer normally finds the record on first delivery.
    """

    def __init__(self, db: Session, queue: SqlMessageQueue):
        self.db = db
        self.queue = queue
        self.jobs = JobRepository(db)

    def submit_long_job(
        self,
        input_type: str,
        content: Any,
        options: Optional[dict] = None,
        webhook_url: Optional[str] = None,
        user_sub: Optional[str] = None,
        user_id: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> Job:
        """
        Create a pending job and enqueue it for processing.

        Args:
            input_type: ``html``, ``markdown`` or ``image``
            content: Document body, opaque per input type
            options: Rendering options passed through to the renderer
            webhook_url: Optional HTTPS endpoint notified on completion
            user_sub: Identity-provider subject of the owner
            user_id: Internal user id (defaults to user_sub)
            job_id: Explicit id, generated when omitted

        Returns:
            The created Job
        """
        job_id = job_id or str(uuid.uuid4())
        user_id = user_id or user_sub

        job = self.jobs.create(
            job_id=job_id,
            input_type=input_type,
            content=content,
            options=options,
            webhook_url=webhook_url,
            user_sub=user_sub,
            user_id=user_id,
        )
        message_id = self.queue.send({
            "job_id": job_id,
            "user_id": user_id,
            "user_sub": user_sub,
            "input_type": input_type,
            "content": content,
            "options": options or {},
            "webhook_url": webhook_url,
        })

        logger.info(f"Queued long job {job_id} (message {message_id})")
        return job
