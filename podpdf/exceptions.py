"""Custom exception hierarchy for podpdf."""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for job outcomes and API responses."""

    # Job processing outcomes
    DUPLICATE_OR_ALREADY_PROCESSED = "DUPLICATE_OR_ALREADY_PROCESSED"
    PAGE_LIMIT_EXCEEDED = "PAGE_LIMIT_EXCEEDED"
    TRANSIENT_FAILURE = "TRANSIENT_FAILURE"

    # Job errors
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    INVALID_MESSAGE = "INVALID_MESSAGE"

    # Collaborator errors
    RENDER_FAILED = "RENDER_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"

    # Artifact download errors
    ARTIFACT_NOT_FOUND = "ARTIFACT_NOT_FOUND"
    INVALID_DOWNLOAD_TOKEN = "INVALID_DOWNLOAD_TOKEN"

    # Database errors
    DATABASE_ERROR = "DATABASE_ERROR"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class PodPdfException(Exception):
    """
    Base exception for all podpdf errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Whether the queue should redeliver the message that raised it
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            status_code: HTTP status code to return
            details: Optional additional context/details
            retryable: True when a fresh attempt may succeed
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON response.

        Returns:
            Dictionary with error, message, and details fields
        """
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class PageLimitExceededError(PodPdfException):
    """Rendered document is longer than the caller's plan allows."""

    def __init__(self, page_count: int, max_pages: int):
        super().__init__(
            f"PDF page count ({page_count}) exceeds maximum allowed pages ({max_pages})",
            ErrorCode.PAGE_LIMIT_EXCEEDED,
            status_code=400,
            details={"page_count": page_count, "max_pages": max_pages},
            retryable=False,
        )
        self.page_count = page_count
        self.max_pages = max_pages


class RenderError(PodPdfException):
    """Rendering service failed or could not be reached."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(
            f"PDF generation failed: {message}",
            ErrorCode.RENDER_FAILED,
            status_code=502,
            details={"renderer_status": status_code} if status_code else {},
            retryable=True,
        )


class StorageError(PodPdfException):
    """Artifact upload or signed-URL issuance failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)
        super().__init__(
            message,
            ErrorCode.STORAGE_ERROR,
            status_code=502,
            details=details,
            retryable=True,
        )


class JobNotFoundError(PodPdfException):
    """Job record not found in database."""

    def __init__(self, job_id: str, retryable: bool = False):
        super().__init__(
            f"Job not found: {job_id}",
            ErrorCode.JOB_NOT_FOUND,
            status_code=404,
            details={"job_id": job_id},
            retryable=retryable,
        )


class InvalidMessageError(PodPdfException):
    """Queue message body cannot be decoded into a job message."""

    def __init__(self, message: str, message_id: Optional[str] = None):
        super().__init__(
            f"Invalid job message: {message}",
            ErrorCode.INVALID_MESSAGE,
            status_code=400,
            details={"message_id": message_id} if message_id else {},
            retryable=False,
        )


class ArtifactNotFoundError(PodPdfException):
    """Requested artifact does not exist in the store."""

    def __init__(self, key: str):
        super().__init__(
            f"Artifact not found: {key}",
            ErrorCode.ARTIFACT_NOT_FOUND,
            status_code=404,
            details={"key": key},
        )


class InvalidDownloadTokenError(PodPdfException):
    """Download token is missing, forged, expired or issued for another key."""

    def __init__(self, message: str = "Download link is invalid or has expired"):
        super().__init__(
            message,
            ErrorCode.INVALID_DOWNLOAD_TOKEN,
            status_code=403,
        )


class DatabaseError(PodPdfException):
    """Database operation failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message,
            ErrorCode.DATABASE_ERROR,
            status_code=500,
            details=details,
            retryable=True,
        )


def is_retryable(exc: BaseException) -> bool:
    """Whether the message that produced *exc* should be redelivered.

    Exceptions outside the podpdf hierarchy (driver errors, crashes in a
    collaborator) are treated as transient.
    """
    return bool(getattr(exc, "retryable", True))
