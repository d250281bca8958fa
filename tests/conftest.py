"""Shared test fixtures for the podpdf test suite.

All tests use a throwaway SQLite database in a temporary directory. Each test
gets clean tables via DELETE, ensuring complete isolation. Tables are created
by ``init_db`` when ``podpdf.main`` is imported.

External HTTP (renderer, webhook endpoints) is never touched: collaborators
are replaced by the fakes below or by ``unittest.mock`` sessions.
"""

import os
import tempfile

# Point the app at the test database and artifact dir before any app imports.
_TEST_DIR = tempfile.mkdtemp(prefix="podpdf-test-")
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite:///{os.path.join(_TEST_DIR, 'podpdf_test.db')}",
)
os.environ["LOG_FORMAT"] = "text"
os.environ["ARTIFACT_DIR"] = os.path.join(_TEST_DIR, "artifacts")
os.environ["ARTIFACT_BASE_URL"] = "http://testserver"
os.environ["ARTIFACT_SIGNING_SECRET"] = "test-signing-secret"

import threading
import time
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from podpdf.database import Base, get_db, SessionLocal
from podpdf.main import app
from podpdf.core.config import settings
from podpdf.models.job import Job
from podpdf.repositories.job_repository import JobRepository
from podpdf.schemas.job import JobMessage
from podpdf.schemas.webhook import WebhookAttempt
from podpdf.services.account_service import PlanCache
from podpdf.services.artifact_store import LocalArtifactStore
from podpdf.services.job_processor import JobProcessor
from podpdf.services.pdf_generator import PdfResult
from podpdf.services.webhook_delivery import DeliveryResult


@pytest.fixture(autouse=True)
def _clean_tables():
    """Delete all rows before each test for isolation.

    Runs before the test (not after) so test failures leave data
    available for debugging.
    """
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture()
def db():
    """Per-test database session."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def client(db):
    """FastAPI TestClient with the DB dependency overridden to use the test session."""

    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

def make_pdf(*branches: int) -> bytes:
    """Build a minimal valid PDF with a two-level page tree.

    The root node has one intermediate node per entry of *branches*, each
    holding that many blank pages. Objects are written root first, so the
    last /Count in the file belongs to the last branch, not the document.
    """
    objects: Dict[int, str] = {}
    kid_ids = []
    next_id = 3
    for size in branches:
        node_id = next_id
        page_ids = list(range(node_id + 1, node_id + 1 + size))
        next_id = node_id + 1 + size
        for page_id in page_ids:
            objects[page_id] = f"<< /Type /Page /Parent {node_id} 0 R >>"
        kids = " ".join(f"{page_id} 0 R" for page_id in page_ids)
        objects[node_id] = f"<< /Type /Pages /Parent 2 0 R /Kids [{kids}] /Count {size} >>"
        kid_ids.append(node_id)
    objects[1] = "<< /Type /Catalog /Pages 2 0 R >>"
    root_kids = " ".join(f"{kid} 0 R" for kid in kid_ids)
    objects[2] = (
        f"<< /Type /Pages /Kids [{root_kids}] /Count {sum(branches)} "
        "/MediaBox [0 0 612 792] >>"
    )

    out = bytearray(b"%PDF-1.4\n")
    offsets = {}
    for object_id in sorted(objects):
        offsets[object_id] = len(out)
        out += f"{object_id} 0 obj\n{objects[object_id]}\nendobj\n".encode()
    xref_offset = len(out)
    size = max(objects) + 1
    out += f"xref\n0 {size}\n".encode()
    out += b"0000000000 65535 f \n"
    for object_id in range(1, size):
        out += f"{offsets[object_id]:010d} 00000 n \n".encode()
    out += f"trailer\n<< /Size {size} /Root 1 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n".encode()
    return bytes(out)


FAKE_PDF = make_pdf(3)


class FakeGenerator:
    """PDF generator double. Records calls; raises per-job errors when configured."""

    def __init__(self, pages: int = 3, delay: float = 0.0):
        self.pages = pages
        self.delay = delay
        self.errors: Dict[str, BaseException] = {}
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def generate(self, content: Any, input_type: str, options: Dict[str, Any], max_pages: int) -> PdfResult:
        with self._lock:
            self.calls.append(content)
        if self.delay:
            time.sleep(self.delay)
        error = self.errors.get(content)
        if error is not None:
            raise error
        return PdfResult(pdf=FAKE_PDF, pages=self.pages)


class FakeWebhooks:
    """Webhook engine double returning a fixed outcome."""

    def __init__(self, delivered: bool = True, retry_count: int = 0):
        self.delivered = delivered
        self.retry_count = retry_count
        self.deliveries: List[Dict[str, Any]] = []

    def deliver(self, url: str, payload: Dict[str, Any], event: Optional[str] = None) -> DeliveryResult:
        self.deliveries.append({"url": url, "payload": payload, "event": event})
        attempts = [
            WebhookAttempt(
                attempt=i + 1,
                timestamp="2026-01-01T00:00:00.000Z",
                success=self.delivered and i == self.retry_count,
                status_code=200 if self.delivered and i == self.retry_count else 500,
                error=None if self.delivered and i == self.retry_count else "HTTP 500",
            )
            for i in range(self.retry_count + 1)
        ]
        return DeliveryResult(self.delivered, self.retry_count, attempts, "delivery-1")


@pytest.fixture()
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def webhooks() -> FakeWebhooks:
    return FakeWebhooks()


@pytest.fixture()
def artifact_store(tmp_path) -> LocalArtifactStore:
    return LocalArtifactStore(
        root=str(tmp_path / "artifacts"),
        base_url="http://testserver",
        signing_secret=settings.artifact_signing_secret,
    )


@pytest.fixture()
def processor(generator, artifact_store, webhooks) -> JobProcessor:
    return JobProcessor(
        SessionLocal,
        generator,
        artifact_store,
        webhooks,
        settings=settings,
        plan_cache=PlanCache(ttl_seconds=300),
    )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def make_job(
    db,
    job_id: str = "job-1",
    content: str = "<h1>Hello</h1>",
    webhook_url: Optional[str] = "https://hooks.example.com/pdf",
    user_sub: Optional[str] = "sub-1",
    **overrides,
) -> Job:
    """Insert a pending job record."""
    return JobRepository(db).create(
        job_id=job_id,
        input_type=overrides.pop("input_type", "html"),
        content=content,
        options=overrides.pop("options", {}),
        webhook_url=webhook_url,
        user_sub=user_sub,
        **overrides,
    )


def make_message(job: Job, **overrides) -> JobMessage:
    """Queue message body matching *job*."""
    body = {
        "job_id": job.job_id,
        "user_sub": job.user_sub,
        "input_type": job.input_type,
        "content": job.content,
        "options": job.options,
        "webhook_url": job.webhook_url,
    }
    body.update(overrides)
    return JobMessage.model_validate(body)


def reload_job(db, job_id: str) -> Optional[Job]:
    """Read the current state of a job, bypassing the session's identity map."""
    db.expire_all()
    return db.get(Job, job_id)
