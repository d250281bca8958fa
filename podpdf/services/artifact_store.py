"""Artifact storage for generated PDFs.

``LocalArtifactStore`` keeps one file per job under a root directory and
hands out time-limited download links signed with ``core.url_signing``.
The API's ``/artifacts/{key}`` route is the other half of the contract.
"""

import logging
import os
import re
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from ..core.url_signing import create_download_token
from ..exceptions import ArtifactNotFoundError, StorageError

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class ArtifactStore(Protocol):
    def upload(self, job_id: str, pdf: bytes) -> str:
        ...

    def signed_url(self, key: str, expires_in: int = 3600) -> str:
        ...


class LocalArtifactStore:
    """Filesystem-backed artifact store.

    Args:
        root: Directory holding ``<job_id>.pdf`` files. Created on demand.
        base_url: Public base URL of the API serving ``/artifacts``.
        signing_secret: HMAC key for download tokens.
    """

    def __init__(self, root: str, base_url: str, signing_secret: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.signing_secret = signing_secret

    def _path_for(self, key: str) -> Path:
        if not _SAFE_KEY.match(key) or ".." in key:
            raise ArtifactNotFoundError(key)
        return self.root / key

    def upload(self, job_id: str, pdf: bytes) -> str:
        """Persist *pdf* and return its storage key."""
        key = f"{job_id}.pdf"
        try:
            path = self._path_for(key)
        except ArtifactNotFoundError as exc:
            raise StorageError(f"Invalid artifact key for job {job_id}") from exc

        tmp = path.with_suffix(".pdf.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(pdf)
            os.replace(tmp, path)
        except OSError as e:
            logger.error("Artifact upload failed", extra={"key": key, "error": str(e)})
            raise StorageError(f"Failed to store PDF: {e}", e) from e

        logger.info("PDF stored", extra={"key": key, "size_bytes": len(pdf)})
        return key

    def signed_url(self, key: str, expires_in: int = 3600) -> str:
        """Return a download URL for *key* valid for *expires_in* seconds."""
        if not self.exists(key):
            raise StorageError(f"Failed to generate signed URL: no artifact {key}")
        token = create_download_token(key, self.signing_secret, expires_in)
        return f"{self.base_url}/artifacts/{quote(key)}?token={token}"

    def exists(self, key: str) -> bool:
        try:
            return self._path_for(key).is_file()
        except ArtifactNotFoundError:
            return False

    def path(self, key: str) -> Path:
        """Filesystem path of an existing artifact. Raises ArtifactNotFoundError."""
        path = self._path_for(key)
        if not path.is_file():
            raise ArtifactNotFoundError(key)
        return path
