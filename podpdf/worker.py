"""
Polling worker for long PDF jobs.

Receives batches from the job queue every poll, runs each batch through the
BatchConsumer, and deletes the messages that settled. Messages whose processing
raised a retryable error are left alone and reappear after the visibility
timeout; the queue dead-letters them after too many receives.

Usage:
    podpdf-worker
"""

import logging
import signal
import threading
from typing import Optional

from .core.config import Settings, settings as default_settings
from .core.logging_config import setup_logging
from .database import SessionLocal, init_db
from .services.account_service import PlanCache
from .services.artifact_store import LocalArtifactStore
from .services.batch_consumer import BatchConsumer, BatchResult
from .services.job_processor import JobProcessor
from .services.message_queue import SqlMessageQueue
from .services.pdf_generator import HttpPdfGenerator
from .services.webhook_delivery import WebhookDeliveryEngine

logger = logging.getLogger("podpdf.worker")


def build_consumer(settings: Settings) -> BatchConsumer:
    """Wire the processor and its collaborators from configuration."""
    generator = HttpPdfGenerator(
        settings.renderer_url,
        timeout=settings.renderer_timeout_seconds,
        page_limit_tolerance=settings.page_limit_tolerance,
    )
    store = LocalArtifactStore(
        root=settings.artifact_dir,
        base_url=settings.artifact_base_url,
        signing_secret=settings.artifact_signing_secret,
    )
    webhooks = WebhookDeliveryEngine(
        timeout=settings.webhook_timeout_seconds,
        retry_delays=settings.get_webhook_retry_delays(),
        user_agent=settings.webhook_user_agent,
        require_https=settings.webhook_require_https,
    )
    processor = JobProcessor(
        SessionLocal,
        generator,
        store,
        webhooks,
        settings=settings,
        plan_cache=PlanCache(settings.plan_cache_ttl_seconds),
    )
    return BatchConsumer(processor, max_workers=settings.worker_max_concurrency)


def run_once(consumer: BatchConsumer, settings: Settings) -> Optional[BatchResult]:
    """Receive and process one batch. Returns None when the queue was empty."""
    db = SessionLocal()
    try:
        queue = SqlMessageQueue(
            db,
            visibility_timeout=settings.queue_visibility_timeout_seconds,
            max_receive_count=settings.queue_max_receive_count,
        )
        messages = queue.receive(settings.queue_batch_size)
        if not messages:
            return None

        result = consumer.consume(messages)
        for message_id in result.acknowledged_ids:
            queue.delete(message_id)
        if result.redeliver_ids:
            logger.warning(f"{len(result.redeliver_ids)} message(s) left for redelivery")
        return result
    finally:
        db.close()


def main() -> None:
    """Poll the queue until interrupted."""
    settings = default_settings
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)
    settings.validate_production_config()
    init_db()

    stop = threading.Event()

    def _handle_sigterm(signum, frame):
        logger.info("SIGTERM received, finishing current batch")
        stop.set()

    signal.signal(signal.SIGTERM, _handle_sigterm)

    consumer = build_consumer(settings)
    interval = settings.worker_poll_interval_seconds
    logger.info(f"Worker started, polling every {interval}s")

    while not stop.is_set():
        try:
            if run_once(consumer, settings) is None:
                stop.wait(interval)
        except KeyboardInterrupt:
            break
        except Exception as e:
            logger.error(f"Worker error: {e}", exc_info=True)
            stop.wait(interval)

    logger.info("Worker shutting down")


if __name__ == "__main__":
    main()
