"""Pydantic schemas."""

from .job import JobMessage, JobResponse, WebhookStatusResponse
from .webhook import WebhookAttempt

__all__ = ["JobMessage", "JobResponse", "WebhookStatusResponse", "WebhookAttempt"]
