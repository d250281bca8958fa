"""Job processor: drives one queued long job to a terminal state.

Step order for an activated job:
    generate -> upload -> sign URL -> mark completed -> bill -> analytics -> webhook

Redelivery safety comes from the activation gate: only the caller that moves
the record from ``pending`` to ``processing`` runs any side effect. Later
deliveries of the same message observe the record and return without work.

Failure classes:
    page limit   terminal business outcome, recorded and notified, returns normally
    anything else  recorded as ``failed`` best effort, then re-raised so the queue
                   redelivers the message
"""

import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from .account_service import AccountService, PlanCache
from .analytics_service import AnalyticsService
from .artifact_store import ArtifactStore
from .pdf_generator import PdfGenerator
from .webhook_delivery import WebhookDeliveryEngine
from ..core.clock import expiration_timestamp, isoformat, utc_now
from ..core.config import Settings, settings as default_settings
from ..core.logging_config import log_context
from ..exceptions import JobNotFoundError, PageLimitExceededError, PodPdfException
from ..models.job import Job, JobStatus
from ..repositories.job_repository import ActivationResult, JobRepository
from ..schemas.job import JobMessage

logger = logging.getLogger(__name__)

JOB_TYPE = "long"

# error_message column is Text, but keep stored tracebacks readable in the API.
MAX_ERROR_CHARS = 2000


class ProcessOutcome(str, Enum):
    """How a message was resolved without raising."""
    COMPLETED = "COMPLETED"
    DUPLICATE_OR_ALREADY_PROCESSED = "DUPLICATE_OR_ALREADY_PROCESSED"
    PAGE_LIMIT_EXCEEDED = "PAGE_LIMIT_EXCEEDED"
    SKIPPED = "SKIPPED"


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, PodPdfException):
        text = exc.message
    else:
        text = str(exc) or type(exc).__name__
    return text[:MAX_ERROR_CHARS]


class JobProcessor:
    """
    Processes decoded job messages.

    Safe to share between threads: every ``process`` call opens its own
    database session from *session_factory*, and the only shared state is
    read-only configuration plus the thread-safe plan cache.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        generator: PdfGenerator,
        artifact_store: ArtifactStore,
        webhooks: WebhookDeliveryEngine,
        settings: Optional[Settings] = None,
        plan_cache: Optional[PlanCache] = None,
    ):
        self._session_factory = session_factory
        self.generator = generator
        self.artifact_store = artifact_store
        self.webhooks = webhooks
        self.settings = settings or default_settings
        self.plan_cache = plan_cache or PlanCache(self.settings.plan_cache_ttl_seconds)

    def process(self, message: JobMessage) -> ProcessOutcome:
        """Process one job message.

        Returns the outcome for messages that should be acknowledged.
        Raises the original exception when the message should be redelivered.
        """
        started = time.monotonic()
        db = self._session_factory()
        with log_context(job_id=message.job_id):
            try:
                logger.info(
                    "Processing long job",
                    extra={"user_id": message.user_id, "input_type": message.input_type},
                )
                jobs = JobRepository(db)
                activation = jobs.activate(message.job_id)
                if not activation.activated:
                    return self._absorb(message, activation)
                return self._run_activated(db, jobs, message, activation.job, started)
            finally:
                db.close()

    def _absorb(self, message: JobMessage, activation: ActivationResult) -> ProcessOutcome:
        """Resolve a message whose job could not be activated."""
        job = activation.job
        if job is None:
            # The submission path may not have committed the record yet;
            # redeliver and let the queue dead-letter it if it never appears.
            logger.warning("Job record not found, requesting redelivery")
            raise JobNotFoundError(message.job_id, retryable=True)

        if job.status in (JobStatus.COMPLETED, JobStatus.PROCESSING):
            logger.info(
                "Job already processed or being processed, skipping",
                extra={"status": job.status},
            )
            return ProcessOutcome.DUPLICATE_OR_ALREADY_PROCESSED

        logger.warning("Job cannot be started, skipping", extra={"status": job.status})
        return ProcessOutcome.SKIPPED

    def _run_activated(
        self,
        db: Session,
        jobs: JobRepository,
        message: JobMessage,
        job: Job,
        started: float,
    ) -> ProcessOutcome:
        analytics = AnalyticsService(db)
        try:
            return self._run(db, jobs, analytics, message, job, started)
        except Exception as exc:
            logger.error("Error processing long job: %s", exc, exc_info=True)
            self._record_failure(jobs, analytics, message, exc, started)
            raise

    def _run(
        self,
        db: Session,
        jobs: JobRepository,
        analytics: AnalyticsService,
        message: JobMessage,
        job: Job,
        started: float,
    ) -> ProcessOutcome:
        job_id = message.job_id
        created_at = isoformat(job.created_at)

        try:
            result = self.generator.generate(
                message.content,
                message.input_type,
                message.options,
                self.settings.max_longjob_pages,
            )
        except PageLimitExceededError as exc:
            self._finish_page_limit(jobs, analytics, message, exc, created_at, started)
            return ProcessOutcome.PAGE_LIMIT_EXCEEDED

        key = self.artifact_store.upload(job_id, result.pdf)
        ttl = self.settings.signed_url_ttl_seconds
        signed_url = self.artifact_store.signed_url(key, ttl)
        expires_at = expiration_timestamp(ttl)

        accounts = AccountService(db, self.plan_cache, self.settings.default_plan_id)
        user = accounts.get_user_account(message.user_sub)
        plan = accounts.get_plan(user.plan_id) if user else None

        completed_at = utc_now()
        jobs.update(
            job_id,
            status=JobStatus.COMPLETED,
            pages=result.pages,
            truncated=False,
            s3_key=key,
            s3_url=signed_url,
            s3_url_expires_at=expires_at,
            completed_at=completed_at,
        )

        if user is not None:
            accounts.record_pdf_usage(user, plan)

        analytics.record(
            job_id=job_id,
            job_type=JOB_TYPE,
            mode=message.input_type,
            pages=result.pages,
            status="success",
            job_duration_ms=self._elapsed_ms(started),
        )

        if message.webhook_url:
            payload = {
                "job_id": job_id,
                "status": JobStatus.COMPLETED,
                "s3_url": signed_url,
                "s3_url_expires_at": isoformat(expires_at),
                "pages": result.pages,
                "mode": message.input_type,
                "truncated": False,
                "created_at": created_at,
                "completed_at": isoformat(completed_at),
            }
            delivery = self._notify(jobs, job_id, message.webhook_url, payload, "job.completed")
            analytics.record(
                job_id=job_id,
                job_type=JOB_TYPE,
                mode=message.input_type,
                pages=result.pages,
                status="success",
                job_duration_ms=self._elapsed_ms(started),
                webhook_retry_count=delivery.retry_count,
            )

        logger.info(
            "Long job processed successfully",
            extra={"pages": result.pages, "duration_ms": self._elapsed_ms(started)},
        )
        return ProcessOutcome.COMPLETED

    def _finish_page_limit(
        self,
        jobs: JobRepository,
        analytics: AnalyticsService,
        message: JobMessage,
        exc: PageLimitExceededError,
        created_at: Optional[str],
        started: float,
    ) -> None:
        job_id = message.job_id
        failed_at = utc_now()
        jobs.update(
            job_id,
            status=JobStatus.FAILED,
            error_message=exc.message,
            failed_at=failed_at,
        )
        analytics.record(
            job_id=job_id,
            job_type=JOB_TYPE,
            mode=message.input_type,
            status="failed",
            job_duration_ms=self._elapsed_ms(started),
        )

        if message.webhook_url:
            payload = {
                "job_id": job_id,
                "status": JobStatus.FAILED,
                "error_message": exc.message,
                "created_at": created_at,
                "failed_at": isoformat(failed_at),
            }
            self._notify(jobs, job_id, message.webhook_url, payload, "job.failed")

        logger.error(
            "PDF generation failed - page limit exceeded",
            extra={"page_count": exc.page_count, "max_pages": exc.max_pages},
        )

    def _notify(
        self,
        jobs: JobRepository,
        job_id: str,
        url: str,
        payload: Dict[str, Any],
        event: str,
    ):
        """Deliver a webhook and persist its audit trail on the job record."""
        delivery = self.webhooks.deliver(url, payload, event=event)
        jobs.update(job_id, **delivery.to_record_fields())
        if delivery.delivered:
            logger.info("Webhook delivered successfully", extra={"retry_count": delivery.retry_count})
        else:
            logger.warning(
                "Webhook delivery failed after all retries",
                extra={"retry_count": delivery.retry_count},
            )
        return delivery

    def _record_failure(
        self,
        jobs: JobRepository,
        analytics: AnalyticsService,
        message: JobMessage,
        exc: BaseException,
        started: float,
    ) -> None:
        """Mark the job failed after an unexpected error. Never raises."""
        try:
            jobs.update(
                message.job_id,
                status=JobStatus.FAILED,
                error_message=_error_text(exc),
            )
            analytics.record(
                job_id=message.job_id,
                job_type=JOB_TYPE,
                mode=message.input_type,
                status="failure",
                job_duration_ms=self._elapsed_ms(started),
            )
        except Exception as cleanup_error:
            # The original error is re-raised by the caller either way.
            logger.error("Error updating job record on failure: %s", cleanup_error)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
