"""Pure functions for creating and verifying signed artifact download tokens.

Stateless encode and decode only. A token binds one artifact key to an
absolute expiry and is signed with HMAC-SHA256, so a download link can be
validated without any database lookup.
"""

import hashlib
import hmac
import base64
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class DownloadGrant:
    """Decoded token payload. Immutable."""
    key: str
    exp: datetime


def create_download_token(
    key: str,
    secret: str,
    expires_in: int = 3600,
    now: Optional[float] = None,
) -> str:
    """Create a signed token granting read access to *key*.

    Args:
        key: Artifact key (e.g. ``"<job_id>.pdf"``).
        secret: HMAC signing key.
        expires_in: Seconds until expiry.
        now: Current epoch seconds (injectable for testing).

    Returns:
        URL-safe token string.
    """
    issued = time.time() if now is None else now
    payload = {
        "key": key,
        "iat": int(issued),
        "exp": int(issued + expires_in),
    }
    body = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
    signature = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return b".".join([body, _b64encode(signature)]).decode()


def verify_download_token(
    token: str,
    key: str,
    secret: str,
    now: Optional[float] = None,
) -> Optional[DownloadGrant]:
    """Verify that *token* is valid, unexpired and issued for *key*.

    Returns ``None`` on any validation failure (bad signature, expired,
    wrong key, malformed) rather than raising; callers decide what to do
    with absence.
    """
    try:
        parts = token.encode().split(b".")
        if len(parts) != 2:
            return None

        expected_sig = hmac.new(secret.encode(), parts[0], hashlib.sha256).digest()
        if not hmac.compare_digest(expected_sig, _b64decode(parts[1])):
            return None

        payload = json.loads(_b64decode(parts[0]))
        exp = payload.get("exp", 0)
        current = time.time() if now is None else now
        if current > exp:
            return None
        if payload.get("key") != key:
            return None

        return DownloadGrant(key=key, exp=datetime.fromtimestamp(exp, tz=timezone.utc))
    except (json.JSONDecodeError, KeyError, ValueError, IndexError, TypeError):
        return None


# --- base64url helpers (no padding, URL-safe) ---

def _b64encode(data: bytes) -> bytes:
    return base64.urlsafe_b64encode(data).rstrip(b"=")


def _b64decode(data: bytes) -> bytes:
    padding = 4 - len(data) % 4
    if padding != 4:
        data += b"=" * padding
    return base64.urlsafe_b64decode(data)
