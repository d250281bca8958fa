"""Database models."""

from .job import Job, JobStatus
from .analytics import AnalyticsRecord
from .account import UserAccount, Plan
from .queue_message import QueueMessage

__all__ = [
    "Job", "JobStatus",
    "AnalyticsRecord",
    "UserAccount", "Plan",
    "QueueMessage",
]
