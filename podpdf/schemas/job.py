"""Job message and job status schemas."""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import datetime
from typing import Any, Dict, List, Optional

from .webhook import WebhookAttempt


class JobMessage(BaseModel):
    """Body of one long-job queue message."""
    model_config = ConfigDict(extra="ignore")

    job_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    user_sub: Optional[str] = None
    input_type: str = "html"
    content: Any = None
    options: Dict[str, Any] = Field(default_factory=dict)
    webhook_url: Optional[str] = None

    @model_validator(mode="after")
    def _default_user_id(self) -> "JobMessage":
        # Older producers only sent user_sub.
        if self.user_id is None:
            self.user_id = self.user_sub
        return self

    @model_validator(mode="before")
    @classmethod
    def _null_options(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("options") is None:
            data = {**data, "options": {}}
        return data


class JobResponse(BaseModel):
    """Schema for job status as seen by a polling client."""
    job_id: str
    status: str
    job_type: str
    input_type: str
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    pages: Optional[int] = None
    truncated: Optional[bool] = None
    s3_url: Optional[str] = None
    s3_url_expires_at: Optional[datetime] = None
    error_message: Optional[str] = None
    webhook_url: Optional[str] = None
    webhook_delivered: Optional[bool] = None
    webhook_delivered_at: Optional[datetime] = None
    webhook_retry_count: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class WebhookStatusResponse(BaseModel):
    """Webhook delivery outcome and attempt log for one job."""
    job_id: str
    webhook_url: Optional[str] = None
    webhook_delivered: Optional[bool] = None
    webhook_delivered_at: Optional[datetime] = None
    webhook_retry_count: Optional[int] = None
    attempts: List[WebhookAttempt] = Field(default_factory=list)
