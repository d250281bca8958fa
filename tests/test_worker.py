"""Tests for the worker's poll step and component wiring."""

from podpdf.core.config import settings
from podpdf.exceptions import RenderError
from podpdf.models.job import JobStatus
from podpdf.services.batch_consumer import BatchConsumer
from podpdf.services.job_service import JobService
from podpdf.services.message_queue import SqlMessageQueue
from podpdf.services.pdf_generator import HttpPdfGenerator
from podpdf.worker import build_consumer, run_once
from tests.conftest import reload_job


class TestRunOnce:

    def test_empty_queue_returns_none(self, processor):
        assert run_once(BatchConsumer(processor), settings) is None

    def test_acknowledged_messages_are_deleted(self, db, processor):
        queue = SqlMessageQueue(db)
        job = JobService(db, queue).submit_long_job(input_type="html", content="<p>a</p>")

        result = run_once(BatchConsumer(processor), settings)

        assert result.acknowledged_ids and not result.redeliver_ids
        assert reload_job(db, job.job_id).status == JobStatus.COMPLETED
        assert queue.depth() == 0

    def test_failed_messages_stay_queued(self, db, processor, generator):
        queue = SqlMessageQueue(db)
        JobService(db, queue).submit_long_job(input_type="html", content="<p>bad</p>")
        generator.errors["<p>bad</p>"] = RenderError("renderer crashed")

        result = run_once(BatchConsumer(processor), settings)

        assert len(result.redeliver_ids) == 1
        assert queue.depth() == 1


class TestBuildConsumer:

    def test_wires_configured_collaborators(self):
        consumer = build_consumer(settings)
        processor = consumer.processor
        assert isinstance(processor.generator, HttpPdfGenerator)
        assert processor.generator.page_limit_tolerance == settings.page_limit_tolerance
        assert processor.webhooks.retry_delays == (1.0, 2.0, 4.0)
        assert processor.webhooks.timeout == settings.webhook_timeout_seconds
        assert consumer.max_workers == settings.worker_max_concurrency
