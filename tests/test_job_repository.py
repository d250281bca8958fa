"""Tests for JobRepository: the activation gate and gated status updates."""

import threading

import pytest

from podpdf.database import SessionLocal
from podpdf.exceptions import JobNotFoundError
from podpdf.models.job import JobStatus
from podpdf.repositories.job_repository import JobRepository
from tests.conftest import make_job, reload_job


class TestActivate:
    """pending -> processing happens at most once."""

    def test_activates_pending_job(self, db):
        make_job(db)
        result = JobRepository(db).activate("job-1")
        assert result.activated is True
        assert result.job.status == JobStatus.PROCESSING
        assert result.job.started_at is not None

    def test_second_activation_is_rejected(self, db):
        make_job(db)
        repo = JobRepository(db)
        repo.activate("job-1")
        second = repo.activate("job-1")
        assert second.activated is False
        assert second.job.status == JobStatus.PROCESSING

    def test_missing_job_returns_none(self, db):
        result = JobRepository(db).activate("nope")
        assert result.activated is False
        assert result.job is None

    def test_terminal_job_is_not_reactivated(self, db):
        make_job(db)
        repo = JobRepository(db)
        repo.activate("job-1")
        repo.update("job-1", status=JobStatus.COMPLETED, pages=1)
        result = repo.activate("job-1")
        assert result.activated is False
        assert result.job.status == JobStatus.COMPLETED

    def test_concurrent_activation_has_single_winner(self, db):
        make_job(db)
        barrier = threading.Barrier(8)
        outcomes = []
        lock = threading.Lock()

        def _activate():
            session = SessionLocal()
            try:
                barrier.wait()
                result = JobRepository(session).activate("job-1")
                with lock:
                    outcomes.append(result.activated)
            finally:
                session.close()

        threads = [threading.Thread(target=_activate) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count(True) == 1
        assert outcomes.count(False) == 7


class TestUpdate:

    def test_merges_plain_fields(self, db):
        make_job(db)
        repo = JobRepository(db)
        assert repo.update("job-1", webhook_delivered=True, webhook_retry_count=2) is True
        job = reload_job(db, "job-1")
        assert job.webhook_delivered is True
        assert job.webhook_retry_count == 2
        assert job.status == JobStatus.PENDING

    def test_completed_stamps_completed_at(self, db):
        make_job(db)
        repo = JobRepository(db)
        repo.activate("job-1")
        assert repo.update("job-1", status=JobStatus.COMPLETED, pages=4) is True
        job = reload_job(db, "job-1")
        assert job.status == JobStatus.COMPLETED
        assert job.completed_at is not None
        assert job.pages == 4

    def test_completed_requires_processing(self, db):
        make_job(db)
        assert JobRepository(db).update("job-1", status=JobStatus.COMPLETED) is False
        assert reload_job(db, "job-1").status == JobStatus.PENDING

    def test_failed_never_overwrites_completed(self, db):
        make_job(db)
        repo = JobRepository(db)
        repo.activate("job-1")
        repo.update("job-1", status=JobStatus.COMPLETED)
        assert repo.update("job-1", status=JobStatus.FAILED, error_message="late") is False
        job = reload_job(db, "job-1")
        assert job.status == JobStatus.COMPLETED
        assert job.error_message is None

    def test_cannot_return_to_pending(self, db):
        make_job(db)
        with pytest.raises(ValueError):
            JobRepository(db).update("job-1", status=JobStatus.PENDING)

    def test_empty_update_is_noop(self, db):
        make_job(db)
        assert JobRepository(db).update("job-1") is False


class TestGet:

    def test_get_or_raise_missing(self, db):
        with pytest.raises(JobNotFoundError):
            JobRepository(db).get_or_raise("missing")

    def test_create_stores_specification(self, db):
        make_job(db, options={"format": "A4"})
        job = JobRepository(db).get("job-1")
        assert job.status == JobStatus.PENDING
        assert job.options == {"format": "A4"}
        assert job.job_type == "long"
