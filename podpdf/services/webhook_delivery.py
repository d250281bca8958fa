"""Webhook delivery with bounded retries and a per-attempt audit trail.

Deep module: callers pass a URL and a payload, get a ``DeliveryResult`` back.
It never raises for delivery problems: an unreachable or failing endpoint is
an outcome recorded in the attempt log, not an error of the job.

Policy:
  - 1 initial attempt + one retry per entry of the backoff table (1s, 2s, 4s)
  - each attempt has a hard wall-clock deadline; on expiry the attempt is
    abandoned and recorded with status 0
  - only the status line and headers are read; the response is closed
    without reading its body
  - success iff the response status is 2xx; stop at the first success
"""

import json
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import requests

from ..core.clock import isoformat, utc_now
from ..schemas.webhook import WebhookAttempt

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAYS = (1.0, 2.0, 4.0)
DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class DeliveryResult:
    """Outcome of one ``deliver`` call.

    ``retry_count`` counts retries actually performed, not the initial attempt.
    """
    delivered: bool
    retry_count: int
    retry_log: List[WebhookAttempt] = field(default_factory=list)
    delivery_id: str = ""

    def to_record_fields(self, delivered_at: Optional[datetime] = None) -> Dict[str, Any]:
        """Job record fields describing this delivery."""
        return {
            "webhook_delivered": self.delivered,
            "webhook_delivered_at": (delivered_at or utc_now()) if self.delivered else None,
            "webhook_retry_count": self.retry_count,
            "webhook_retry_log": [a.model_dump() for a in self.retry_log],
        }


class WebhookDeliveryEngine:
    """POSTs JSON payloads to caller-supplied endpoints.

    Args:
        timeout: Hard per-attempt timeout in seconds.
        retry_delays: Seconds to wait before each retry; its length is the
            number of retries.
        user_agent: ``User-Agent`` header value.
        require_https: Refuse non-HTTPS URLs without touching the network.
        session_factory: Builds the ``requests.Session`` shared by the attempts
            of one delivery.
        sleep / clock / now: Injectable for deterministic tests.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retry_delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
        user_agent: str = "PodPDF-Webhook/1.0",
        require_https: bool = True,
        session_factory: Callable[[], requests.Session] = requests.Session,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
    ):
        self.timeout = timeout
        self.retry_delays = tuple(retry_delays)
        self.user_agent = user_agent
        self.require_https = require_https
        self._session_factory = session_factory
        self._sleep = sleep
        self._clock = clock
        self._now = now

    @property
    def max_attempts(self) -> int:
        return len(self.retry_delays) + 1

    def deliver(self, url: str, payload: Dict[str, Any], event: Optional[str] = None) -> DeliveryResult:
        """Deliver *payload* to *url*, retrying on failure.

        Returns the full ordered attempt log whether or not delivery succeeded.
        """
        delivery_id = str(uuid.uuid4())
        retry_log: List[WebhookAttempt] = []

        if self.require_https and urlparse(url).scheme != "https":
            retry_log.append(WebhookAttempt(
                attempt=1,
                timestamp=isoformat(self._now()),
                success=False,
                status_code=0,
                error="Webhook URL must use HTTPS",
            ))
            logger.warning("Refusing non-HTTPS webhook URL", extra={"delivery_id": delivery_id})
            return DeliveryResult(False, 0, retry_log, delivery_id)

        body = json.dumps(payload, default=str)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            "X-Webhook-Delivery-Id": delivery_id,
            "X-Webhook-Timestamp": isoformat(self._now()),
        }
        if event:
            headers["X-Webhook-Event"] = event

        session = self._session_factory()
        # An abandoned attempt keeps its thread until its socket times out, so
        # each attempt may need a thread of its own.
        executor = ThreadPoolExecutor(max_workers=self.max_attempts, thread_name_prefix="webhook-attempt")
        try:
            for attempt in range(self.max_attempts):
                started = self._clock()
                status_code, error = self._post_once(executor, session, url, body, headers)
                duration_ms = int((self._clock() - started) * 1000)
                success = 200 <= status_code < 300

                retry_log.append(WebhookAttempt(
                    attempt=attempt + 1,
                    timestamp=isoformat(self._now()),
                    success=success,
                    status_code=status_code,
                    error=None if success else error,
                    duration_ms=duration_ms,
                ))

                if success:
                    logger.info(
                        "Webhook delivered",
                        extra={"delivery_id": delivery_id, "attempt": attempt + 1, "status_code": status_code},
                    )
                    return DeliveryResult(True, attempt, retry_log, delivery_id)

                logger.warning(
                    "Webhook attempt %d/%d failed: %s",
                    attempt + 1, self.max_attempts, error,
                    extra={"delivery_id": delivery_id, "status_code": status_code},
                )
                if attempt < self.max_attempts - 1:
                    self._sleep(self.retry_delays[attempt])
        finally:
            session.close()
            executor.shutdown(wait=False)

        logger.error(
            "Webhook delivery failed after %d attempts", self.max_attempts,
            extra={"delivery_id": delivery_id},
        )
        return DeliveryResult(False, self.max_attempts - 1, retry_log, delivery_id)

    def _post_once(
        self,
        executor: ThreadPoolExecutor,
        session: requests.Session,
        url: str,
        body: str,
        headers: Dict[str, str],
    ) -> Tuple[int, Optional[str]]:
        """One POST under a hard deadline. Returns ``(status_code, error)``.

        ``requests`` timeouts apply per socket operation, so the call runs on
        the delivery's executor and is abandoned once the wall-clock deadline
        passes. The abandoned call still ends on its own socket timeout.
        """
        future = executor.submit(self._send, session, url, body, headers)
        try:
            status_code = future.result(timeout=self.timeout)
        except (FuturesTimeoutError, requests.exceptions.Timeout):
            return 0, "Request timeout"
        except (requests.exceptions.RequestException, OSError) as exc:
            return 0, str(exc) or type(exc).__name__
        if 200 <= status_code < 300:
            return status_code, None
        return status_code, f"HTTP {status_code}"

    def _send(self, session: requests.Session, url: str, body: str, headers: Dict[str, str]) -> int:
        # stream=True returns once the status line and headers are in; the
        # body is never read, so a slow body cannot hold the attempt open.
        response = session.post(url, data=body, headers=headers, timeout=self.timeout, stream=True)
        try:
            return response.status_code
        finally:
            response.close()
