"""Queue message model backing the at-least-once job queue."""

from sqlalchemy import Column, String, Text, Integer, DateTime, Boolean
from sqlalchemy.sql import func
from ..database import Base


class QueueMessage(Base):
    """
    One message on the long-job queue.

    A message is visible when ``visible_after`` is in the past. Receiving it
    pushes ``visible_after`` forward by the visibility timeout; only deleting it
    acknowledges it. Messages received more than the configured maximum are
    parked with ``dead_lettered=True``.
    """

    __tablename__ = "queue_messages"

    message_id = Column(String(64), primary_key=True)
    body = Column(Text, nullable=False)
    receive_count = Column(Integer, nullable=False, default=0)
    visible_after = Column(DateTime(timezone=True), nullable=False, index=True)
    dead_lettered = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime(timezone=True), server_default=func.now())
    last_received_at = Column(DateTime(timezone=True), nullable=True)
