import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from shortlink_app.exceptions import NotFoundError, QuotaExhaustedError
from shortlink_app.models.user import User
from shortlink_app.services.entitlements import PlanTier, parse_plan

logger = structlog.get_logger(__name__)


class UserService:
    """Read-only view of owners plus generation credit accounting"""

    def __init__(self, db: Session):
        self.db = db

    def get_plan(self, user_id: int) -> PlanTier:
        """
        Plan tier of a link owner.

        Used on the public redirect path, so a missing owner is logged and
        treated as FREE instead of failing the redirect.
        """
        user = self.db.get(User, user_id)
        if user is None:
            logger.warning("link_owner_missing", user_id=user_id)
            return PlanTier.FREE
        return parse_plan(user.plan_tier)

    def get_available_credits(self, user_id: int) -> int:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User Not Found")
        return user.available_credits

    def ensure_credits(self, user_id: int) -> None:
        if self.get_available_credits(user_id) <= 0:
            raise QuotaExhaustedError()

    def consume_credit(self, user_id: int) -> None:
        """Atomically spend one credit; never goes below zero"""
        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.available_credits > 0)
            .values(available_credits=User.available_credits - 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 0:
            raise QuotaExhaustedError()

    def refund_credit(self, user_id: int) -> None:
        """Give back a credit spent on a link that was never created"""
        self.db.rollback()
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(available_credits=User.available_credits + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        logger.info("credit_refunded", user_id=user_id)
