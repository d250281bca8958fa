"""Pipeline services: collaborators, webhook delivery, processing and queueing."""

from .account_service import AccountService, PlanCache
from .analytics_service import AnalyticsService
from .artifact_store import ArtifactStore, LocalArtifactStore
from .batch_consumer import BatchConsumer, BatchResult, MessageResult
from .job_processor import JobProcessor, ProcessOutcome
from .job_service import JobService
from .message_queue import ReceivedMessage, SqlMessageQueue
from .pdf_generator import HttpPdfGenerator, PdfGenerator, PdfResult, count_pages
from .webhook_delivery import DeliveryResult, WebhookDeliveryEngine

__all__ = [
    "AccountService",
    "PlanCache",
    "AnalyticsService",
    "ArtifactStore",
    "LocalArtifactStore",
    "BatchConsumer",
    "BatchResult",
    "MessageResult",
    "JobProcessor",
    "ProcessOutcome",
    "JobService",
    "ReceivedMessage",
    "SqlMessageQueue",
    "HttpPdfGenerator",
    "PdfGenerator",
    "PdfResult",
    "count_pages",
    "DeliveryResult",
    "WebhookDeliveryEngine",
]
