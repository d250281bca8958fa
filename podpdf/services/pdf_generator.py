"""PDF generation through the rendering service.

The rendering engine itself (headless browser, Markdown and image layout)
runs as a separate HTTP service. This module owns the contract the job
processor relies on: bytes + page count on success, and a classified error
on failure so the processor can tell a business outcome (page limit) from a
transient fault (renderer crash, timeout).
"""

import io
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import requests
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from ..exceptions import PageLimitExceededError, RenderError

logger = logging.getLogger(__name__)


@dataclass
class PdfResult:
    pdf: bytes
    pages: int
    truncated: bool = False


class PdfGenerator(Protocol):
    def generate(
        self,
        content: Any,
        input_type: str,
        options: Dict[str, Any],
        max_pages: int,
    ) -> PdfResult:
        ...


def count_pages(pdf: bytes) -> int:
    """Number of pages in *pdf*, read from its page tree.

    Raises:
        RenderError: the bytes are not a readable PDF.
    """
    try:
        return len(PdfReader(io.BytesIO(pdf), strict=False).pages)
    except (PyPdfError, ValueError, KeyError, TypeError) as exc:
        raise RenderError(f"renderer returned an unreadable PDF: {exc}", status_code=200) from exc


class HttpPdfGenerator:
    """Client for the rendering service.

    Args:
        renderer_url: Base URL of the rendering service.
        timeout: Seconds to wait for one render.
        page_limit_tolerance: Extra pages accepted beyond ``max_pages``.
    """

    def __init__(
        self,
        renderer_url: str,
        timeout: float = 120,
        page_limit_tolerance: int = 0,
        session: Optional[requests.Session] = None,
    ):
        self.renderer_url = renderer_url.rstrip("/")
        self.timeout = timeout
        self.page_limit_tolerance = page_limit_tolerance
        self._session = session or requests.Session()

    def generate(
        self,
        content: Any,
        input_type: str,
        options: Dict[str, Any],
        max_pages: int,
    ) -> PdfResult:
        """Render *content* to PDF.

        Raises:
            PageLimitExceededError: document is longer than *max_pages* allows.
            RenderError: any other failure (retryable).
        """
        endpoint = f"{self.renderer_url}/render"
        body = {
            "input_type": input_type,
            "content": content,
            "options": options or {},
            "max_pages": max_pages,
        }

        try:
            response = self._session.post(endpoint, json=body, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise RenderError(f"renderer timed out after {self.timeout}s") from exc
        except requests.exceptions.RequestException as exc:
            raise RenderError(f"renderer unavailable: {type(exc).__name__}: {exc}") from exc

        if response.status_code == 422:
            self._raise_for_page_limit(response, max_pages)

        if response.status_code != 200:
            raise RenderError(
                f"renderer returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        pdf = response.content
        if not pdf:
            raise RenderError("renderer returned an empty document", status_code=200)

        header = response.headers.get("X-Page-Count")
        pages = int(header) if header and header.isdigit() else count_pages(pdf)

        if pages > max_pages + self.page_limit_tolerance:
            logger.warning(
                "PDF exceeds page limit",
                extra={"pages": pages, "max_pages": max_pages},
            )
            raise PageLimitExceededError(pages, max_pages)

        logger.info(
            "PDF generated",
            extra={"input_type": input_type, "pages": pages, "pdf_size_bytes": len(pdf)},
        )
        return PdfResult(pdf=pdf, pages=pages, truncated=False)

    @staticmethod
    def _raise_for_page_limit(response: requests.Response, max_pages: int) -> None:
        """Translate the renderer's structured 422 into PageLimitExceededError."""
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error") == "PAGE_LIMIT_EXCEEDED":
            raise PageLimitExceededError(
                int(data.get("page_count", 0)),
                int(data.get("max_pages", max_pages)),
            )
        raise RenderError("renderer rejected the document (HTTP 422)", status_code=422)
