"""Account lookup, plan lookup and usage / billing counters.

Plans change rarely and are read for every completed job, so they are held in
a process-scoped ``PlanCache``:

- filled lazily on first use of a plan id,
- re-read once an entry is older than the configured TTL,
- cleared only on process restart (or an explicit ``clear()``, used by tests).
"""

import logging
import threading
import time
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple

import sqlalchemy.exc
from sqlalchemy import update
from sqlalchemy.orm import Session

from ..core.clock import utc_now
from ..models.account import Plan, UserAccount

logger = logging.getLogger(__name__)


class PlanCache:
    """Thread-safe TTL cache of plan rows, keyed by plan id.

    Entries are detached snapshots (plain dicts), so they can be shared
    between sessions and threads.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Optional[dict]]] = {}
        self._lock = threading.Lock()

    def get(self, plan_id: str, loader: Callable[[str], Optional[dict]]) -> Optional[dict]:
        now = self._clock()
        with self._lock:
            cached = self._entries.get(plan_id)
            if cached and now - cached[0] < self._ttl:
                return cached[1]
        value = loader(plan_id)
        with self._lock:
            self._entries[plan_id] = (now, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def _plan_snapshot(plan: Plan) -> dict:
    return {
        "plan_id": plan.plan_id,
        "name": plan.name,
        "type": plan.type,
        "monthly_quota": plan.monthly_quota,
        "price_per_pdf": Decimal(plan.price_per_pdf or 0),
        "rate_limit_per_minute": plan.rate_limit_per_minute,
        "is_active": plan.is_active,
    }


class AccountService:
    """
    Reads accounts and plans, and records PDF usage against an account.

    Usage recording follows the billing rules of the plan:
      free (or unknown) plan: increment ``total_pdf_count`` only
      paid plan:              consume one free credit if any remain, otherwise
                               deduct ``price_per_pdf`` from ``credits_balance``
                               when the balance covers it
    """

    def __init__(self, db: Session, plan_cache: PlanCache, default_plan_id: str = "free-basic"):
        self.db = db
        self.plan_cache = plan_cache
        self.default_plan_id = default_plan_id

    def get_user_account(self, user_sub: Optional[str]) -> Optional[UserAccount]:
        """Find the account for an identity-provider subject."""
        if not user_sub:
            return None
        return self.db.query(UserAccount).filter(UserAccount.user_sub == user_sub).first()

    def get_plan(self, plan_id: Optional[str]) -> Optional[dict]:
        """Plan snapshot for *plan_id* (default plan when empty), or None."""
        return self.plan_cache.get(plan_id or self.default_plan_id, self._load_plan)

    def _load_plan(self, plan_id: str) -> Optional[dict]:
        try:
            plan = self.db.query(Plan).filter(Plan.plan_id == plan_id).first()
        except sqlalchemy.exc.SQLAlchemyError as e:
            logger.warning("Failed to load plan %s: %s", plan_id, e)
            self.db.rollback()
            return None
        return _plan_snapshot(plan) if plan else None

    def record_pdf_usage(self, user: UserAccount, plan: Optional[dict]) -> bool:
        """Count one generated PDF against *user*. Never raises.

        Returns True when a counter was updated.
        """
        user_id = user.user_id
        try:
            if not plan or plan.get("type") != "paid":
                changed = self._increment(user_id)
            else:
                changed = self._consume_free_credit(user_id) or self._deduct_credits(
                    user_id, plan["price_per_pdf"]
                )
                if not changed:
                    logger.warning(
                        "Insufficient credits to bill PDF",
                        extra={"user_id": user_id, "plan_id": plan.get("plan_id")},
                    )
            return changed
        except sqlalchemy.exc.SQLAlchemyError as e:
            logger.error("Error recording PDF usage: %s", e, extra={"user_id": user_id})
            self.db.rollback()
            return False

    def _execute(self, stmt) -> bool:
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        self.db.commit()
        return result.rowcount == 1

    def _increment(self, user_id: str) -> bool:
        return self._execute(
            update(UserAccount)
            .where(UserAccount.user_id == user_id)
            .values(total_pdf_count=UserAccount.total_pdf_count + 1)
        )

    def _consume_free_credit(self, user_id: str) -> bool:
        return self._execute(
            update(UserAccount)
            .where(UserAccount.user_id == user_id, UserAccount.free_credits_remaining > 0)
            .values(
                free_credits_remaining=UserAccount.free_credits_remaining - 1,
                total_pdf_count=UserAccount.total_pdf_count + 1,
            )
        )

    def _deduct_credits(self, user_id: str, cost: Decimal) -> bool:
        # Conditional on the balance so concurrent jobs cannot overdraw it.
        return self._execute(
            update(UserAccount)
            .where(UserAccount.user_id == user_id, UserAccount.credits_balance >= cost)
            .values(
                credits_balance=UserAccount.credits_balance - cost,
                credits_last_updated_at=utc_now(),
                total_pdf_count=UserAccount.total_pdf_count + 1,
            )
        )
