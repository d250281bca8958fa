"""Batch consumer: fans a batch of queue messages out to the job processor.

Every message runs in its own task and the batch waits for all of them to
settle. A failing message never short-circuits its siblings; it is reported
for redelivery and the queue's own redelivery mechanism takes it from there.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from pydantic import ValidationError

from .job_processor import JobProcessor, ProcessOutcome
from ..core.logging_config import log_context
from ..exceptions import ErrorCode, InvalidMessageError, is_retryable
from ..schemas.job import JobMessage

logger = logging.getLogger(__name__)


class Message(Protocol):
    message_id: str
    body: str


@dataclass
class MessageResult:
    """Resolution of one message in a batch.

    ``outcome`` is set when processing returned; ``error`` and ``error_code``
    when it raised. Failures left for redelivery carry ``TRANSIENT_FAILURE``.
    """
    message_id: str
    outcome: Optional[ProcessOutcome] = None
    error: Optional[BaseException] = None
    error_code: Optional[ErrorCode] = None
    retryable: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    results: List[MessageResult] = field(default_factory=list)

    @property
    def acknowledged_ids(self) -> List[str]:
        """Messages to delete from the queue."""
        return [r.message_id for r in self.results if not r.retryable]

    @property
    def redeliver_ids(self) -> List[str]:
        """Messages to leave on the queue for redelivery."""
        return [r.message_id for r in self.results if r.retryable]

    def batch_item_failures(self) -> Dict[str, List[Dict[str, str]]]:
        """Partial batch response in the hosted-queue wire shape."""
        return {"batchItemFailures": [{"itemIdentifier": mid} for mid in self.redeliver_ids]}


class BatchConsumer:
    """Runs each message of a batch through ``JobProcessor.process`` concurrently."""

    def __init__(self, processor: JobProcessor, max_workers: int = 10):
        self.processor = processor
        self.max_workers = max_workers

    def consume(self, messages: Sequence[Message]) -> BatchResult:
        """Process *messages* and wait until every one has settled."""
        if not messages:
            return BatchResult()

        logger.info("Processing batch of %d message(s)", len(messages))
        workers = min(self.max_workers, len(messages))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="job") as executor:
            futures = [executor.submit(self._handle, message) for message in messages]
            # _handle never raises, so result() only joins.
            results = [future.result() for future in futures]

        batch = BatchResult(results=results)
        failed = len(batch.redeliver_ids)
        logger.info(
            "Batch processed",
            extra={"total": len(results), "acknowledged": len(results) - failed, "redeliver": failed},
        )
        return batch

    def _handle(self, message: Message) -> MessageResult:
        with log_context(message_id=message.message_id):
            try:
                job_message = self._decode(message)
                outcome = self.processor.process(job_message)
                return MessageResult(message_id=message.message_id, outcome=outcome)
            except Exception as exc:
                retryable = is_retryable(exc)
                if retryable:
                    error_code = ErrorCode.TRANSIENT_FAILURE
                else:
                    error_code = getattr(exc, "error_code", ErrorCode.INTERNAL_ERROR)
                logger.error(
                    "Message processing failed: %s", exc,
                    extra={"retryable": retryable, "error_code": error_code.value},
                )
                return MessageResult(
                    message_id=message.message_id,
                    error=exc,
                    error_code=error_code,
                    retryable=retryable,
                )

    @staticmethod
    def _decode(message: Message) -> JobMessage:
        try:
            return JobMessage.model_validate_json(message.body)
        except ValidationError as exc:
            raise InvalidMessageError(
                f"{exc.error_count()} validation error(s)", message.message_id
            ) from exc

