"""Webhook delivery schemas."""

from pydantic import BaseModel
from typing import Optional


class WebhookAttempt(BaseModel):
    """One POST attempt to a webhook endpoint. Part of the job's audit trail."""
    attempt: int
    timestamp: str
    success: bool
    status_code: int = 0
    error: Optional[str] = None
    duration_ms: int = 0
