"""Long job status endpoints."""

import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..repositories.job_repository import JobRepository
from ..schemas.job import JobResponse, WebhookStatusResponse
from ..schemas.webhook import WebhookAttempt

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: str, db: Session = Depends(get_db)):
    """Get a long job by ID. Raises JobNotFoundError (404) when unknown."""
    return JobRepository(db).get_or_raise(job_id)


@router.get("/{job_id}/webhook", response_model=WebhookStatusResponse)
def get_webhook_status(job_id: str, db: Session = Depends(get_db)):
    """Webhook delivery outcome and the full ordered attempt log for a job.

    ``webhook_delivered`` is null until delivery has been attempted (or when
    the job has no webhook URL).
    """
    job = JobRepository(db).get_or_raise(job_id)
    attempts = [WebhookAttempt.model_validate(a) for a in (job.webhook_retry_log or [])]
    return WebhookStatusResponse(
        job_id=job.job_id,
        webhook_url=job.webhook_url,
        webhook_delivered=job.webhook_delivered,
        webhook_delivered_at=job.webhook_delivered_at,
        webhook_retry_count=job.webhook_retry_count,
        attempts=attempts,
    )
