"""User account and plan models used for usage counting and billing."""

from sqlalchemy import Column, String, DateTime, Boolean, Integer, Numeric
from sqlalchemy.sql import func
from ..database import Base


class UserAccount(Base):
    """Account owning jobs. Looked up by the identity provider's subject."""

    __tablename__ = "users"

    user_id = Column(String(64), primary_key=True)
    user_sub = Column(String(128), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=True)
    plan_id = Column(String(64), nullable=True)
    total_pdf_count = Column(Integer, nullable=False, default=0)
    free_credits_remaining = Column(Integer, nullable=False, default=0)
    credits_balance = Column(Numeric(12, 4), nullable=False, default=0)
    credits_last_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Plan(Base):
    """Plan configuration.

    type:
        free:  only the PDF counter is incremented
        paid:  free credits are consumed first, then price_per_pdf is
                deducted from the account's credits_balance
    """

    __tablename__ = "plans"

    plan_id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    type = Column(String(16), nullable=False, default="free")
    monthly_quota = Column(Integer, nullable=True)
    price_per_pdf = Column(Numeric(12, 4), nullable=False, default=0)
    rate_limit_per_minute = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
