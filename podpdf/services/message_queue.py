"""SQL-backed job queue with at-least-once delivery.

Semantics follow a hosted queue with a visibility timeout:
  - ``receive`` hides each returned message for ``visibility_timeout`` seconds
  - only ``delete`` acknowledges a message; anything not deleted reappears
  - a message received ``max_receive_count`` times without being deleted is
    moved to the dead-letter set instead of being returned again

Claiming is a conditional UPDATE keyed on the receive count read with the
candidate row, so two workers polling the same table never receive the same
message in the same visibility window.
"""

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Union

import sqlalchemy.exc
from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..core.clock import utc_now
from ..exceptions import DatabaseError
from ..models.queue_message import QueueMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceivedMessage:
    """A claimed message, detached from the session that received it."""
    message_id: str
    body: str
    receive_count: int


class SqlMessageQueue:
    """Queue over the ``queue_messages`` table."""

    def __init__(
        self,
        db: Session,
        visibility_timeout: int = 300,
        max_receive_count: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.visibility_timeout = visibility_timeout
        self.max_receive_count = max_receive_count
        self._clock = clock

    def send(self, body: Union[str, dict], delay_seconds: int = 0) -> str:
        """Enqueue *body* (a JSON string or a dict) and return its message id."""
        if not isinstance(body, str):
            body = json.dumps(body, default=str)
        now = self._clock()
        message = QueueMessage(
            message_id=str(uuid.uuid4()),
            body=body,
            receive_count=0,
            visible_after=now + timedelta(seconds=delay_seconds),
            dead_lettered=False,
            sent_at=now,
        )
        try:
            self.db.add(message)
            self.db.commit()
        except sqlalchemy.exc.SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError("Failed to enqueue message", e) from e
        logger.debug("Message enqueued", extra={"message_id": message.message_id})
        return message.message_id

    def receive(self, max_messages: int = 10) -> List[ReceivedMessage]:
        """Claim up to *max_messages* visible messages, oldest first."""
        now = self._clock()
        try:
            candidates = (
                self.db.query(QueueMessage)
                .filter(
                    QueueMessage.dead_lettered.is_(False),
                    QueueMessage.visible_after <= now,
                )
                .order_by(QueueMessage.sent_at.asc())
                .limit(max_messages)
                .all()
            )
            snapshot = [(m.message_id, m.body, m.receive_count) for m in candidates]

            claimed: List[ReceivedMessage] = []
            for message_id, body, receive_count in snapshot:
                if receive_count >= self.max_receive_count:
                    self._dead_letter(message_id, receive_count)
                    continue
                if self._claim(message_id, receive_count, now):
                    claimed.append(ReceivedMessage(message_id, body, receive_count + 1))
            self.db.commit()
        except sqlalchemy.exc.SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError("Failed to receive messages", e) from e

        if claimed:
            logger.debug("Received %d message(s)", len(claimed))
        return claimed

    def _claim(self, message_id: str, receive_count: int, now: datetime) -> bool:
        result = self.db.execute(
            update(QueueMessage)
            .where(
                QueueMessage.message_id == message_id,
                QueueMessage.receive_count == receive_count,
                QueueMessage.dead_lettered.is_(False),
            )
            .values(
                receive_count=receive_count + 1,
                visible_after=now + timedelta(seconds=self.visibility_timeout),
                last_received_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _dead_letter(self, message_id: str, receive_count: int) -> None:
        result = self.db.execute(
            update(QueueMessage)
            .where(
                QueueMessage.message_id == message_id,
                QueueMessage.receive_count == receive_count,
            )
            .values(dead_lettered=True)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.warning(
                "Message dead-lettered after %d receives", receive_count,
                extra={"message_id": message_id},
            )

    def delete(self, message_id: str) -> bool:
        """Acknowledge a message. Returns False when it was already gone."""
        try:
            deleted = (
                self.db.query(QueueMessage)
                .filter(QueueMessage.message_id == message_id)
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except sqlalchemy.exc.SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(f"Failed to delete message {message_id}", e) from e
        return deleted == 1

    def depth(self) -> int:
        """Number of live (not dead-lettered) messages, visible or in flight."""
        return (
            self.db.query(func.count(QueueMessage.message_id))
            .filter(QueueMessage.dead_lettered.is_(False))
            .scalar()
        ) or 0

    def dead_letters(self) -> List[QueueMessage]:
        """Dead-lettered messages, oldest first."""
        return (
            self.db.query(QueueMessage)
            .filter(QueueMessage.dead_lettered.is_(True))
            .order_by(QueueMessage.sent_at.asc())
            .all()
        )
