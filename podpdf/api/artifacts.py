"""Signed artifact download endpoint.

Download links are issued by ``LocalArtifactStore.signed_url`` and carry a
token bound to one key and an absolute expiry. No database lookup is needed
to serve them.
"""

import logging
from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from ..core.config import settings
from ..core.url_signing import verify_download_token
from ..exceptions import InvalidDownloadTokenError
from ..services.artifact_store import LocalArtifactStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/artifacts", tags=["artifacts"])


def get_artifact_store() -> LocalArtifactStore:
    """Artifact store dependency, overridable in tests."""
    return LocalArtifactStore(
        root=settings.artifact_dir,
        base_url=settings.artifact_base_url,
        signing_secret=settings.artifact_signing_secret,
    )


@router.get("/{key}")
def download_artifact(
    key: str,
    token: str = Query("", description="Signed download token"),
    store: LocalArtifactStore = Depends(get_artifact_store),
):
    """Serve a stored PDF if *token* is valid for *key* and unexpired.

    403 for a missing, forged, expired or mismatched token; 404 when the
    token is valid but the artifact no longer exists.
    """
    grant = verify_download_token(token, key, store.signing_secret) if token else None
    if grant is None:
        raise InvalidDownloadTokenError()

    path = store.path(key)
    logger.info("Serving artifact", extra={"key": key})
    return FileResponse(path, media_type="application/pdf", filename=key)
