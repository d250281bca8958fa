"""Data access layer."""

from .base import BaseRepository
from .job_repository import JobRepository, ActivationResult

__all__ = ["BaseRepository", "JobRepository", "ActivationResult"]
