import logging
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import DailyUsage, utc_today
from services import subscription
from services.database_service import get_database_service

logger = logging.getLogger(__name__)

# usage counter -> tier feature that limits it (None: tracked only)
FEATURE_TO_LIMIT_KEY = {
    "questions_attempted": "questions_per_month",
    "ai_chat_messages": "ai_tutor_messages",
    "cat_sessions": "cat_simulations",
    "flashcards_reviewed": None,
}

MONTHLY_FEATURES = {"questions_attempted"}


def _today() -> date:
    return utc_today()


class UsageService:
    """Per-user daily usage counters checked against subscription limits."""

    def __init__(self):
        self.db_service = get_database_service()

    def _get_or_create_today(self, session: Session, user_id: str) -> DailyUsage:
        today = _today()
        record = (
            session.query(DailyUsage)
            .filter(DailyUsage.user_id == user_id, DailyUsage.usage_date == today)
            .one_or_none()
        )
        if record is None:
            record = DailyUsage(
                user_id=user_id,
                usage_date=today,
                questions_attempted=0,
                ai_chat_messages=0,
                flashcards_reviewed=0,
                cat_sessions=0,
            )
            session.add(record)
            session.flush()
        return record

    def get_current_usage(self, session: Session, user_id: str, feature: str) -> int:
        """Monthly features sum the current month, the rest read today's row."""
        if feature not in FEATURE_TO_LIMIT_KEY:
            raise ValueError(f"Unknown usage feature: {feature}")

        column = getattr(DailyUsage, feature)
        if feature in MONTHLY_FEATURES:
            start_of_month = _today().replace(day=1)
            total = (
                session.query(func.coalesce(func.sum(column), 0))
                .filter(DailyUsage.user_id == user_id, DailyUsage.usage_date >= start_of_month)
                .scalar()
            )
            return int(total or 0)

        record = (
            session.query(DailyUsage)
            .filter(DailyUsage.user_id == user_id, DailyUsage.usage_date == _today())
            .one_or_none()
        )
        return getattr(record, feature) if record else 0

    def _increment(self, session: Session, user_id: str, feature: str) -> None:
        record = self._get_or_create_today(session, user_id)
        setattr(record, feature, (getattr(record, feature) or 0) + 1)

    def check_and_increment(self, session: Session, user_id: str, feature: str, tier: str) -> Dict[str, Any]:
        """Increment feature usage if the tier allows it.

        Returns ``{"allowed", "remaining", "limit"}``; nothing is incremented
        when the request is denied.
        """
        if feature not in FEATURE_TO_LIMIT_KEY:
            return {"allowed": False, "remaining": 0, "limit": 0}

        limit_key = FEATURE_TO_LIMIT_KEY[feature]
        feature_limit = -1 if limit_key is None else subscription.get_limit(tier, limit_key)

        if feature_limit == -1:
            self._increment(session, user_id, feature)
            return {"allowed": True, "remaining": -1, "limit": -1}

        if feature_limit == 0:
            return {"allowed": False, "remaining": 0, "limit": 0}

        current = self.get_current_usage(session, user_id, feature)
        check = subscription.check_usage_limit(tier, limit_key, current)
        if not check["allowed"]:
            logger.info(f"Usage limit reached for user {user_id}: {feature} {current}/{check['limit']}")
            return {"allowed": False, "remaining": 0, "limit": check["limit"]}

        self._increment(session, user_id, feature)
        return {"allowed": True, "remaining": check["remaining"] - 1, "limit": check["limit"]}

    def remaining(self, session: Session, user_id: str, feature: str, tier: str) -> int:
        """Remaining allowance without consuming it; -1 means unlimited."""
        limit_key = FEATURE_TO_LIMIT_KEY.get(feature)
        if limit_key is None:
            return -1
        limit = subscription.get_limit(tier, limit_key)
        if limit == -1:
            return -1
        return max(0, limit - self.get_current_usage(session, user_id, feature))

    def get_usage_summary(self, user_id: str, tier: str, session: Optional[Session] = None) -> Dict[str, Dict[str, Any]]:
        if session is None:
            with self.db_service.session_scope() as own_session:
                return self.get_usage_summary(user_id, tier, own_session)

        summary = {}
        for feature, limit_key in FEATURE_TO_LIMIT_KEY.items():
            current = self.get_current_usage(session, user_id, feature)
            limit = -1 if limit_key is None else subscription.get_limit(tier, limit_key)
            summary[feature] = {
                "current": current,
                "limit": limit,
                "remaining": -1 if limit == -1 else max(0, limit - current),
                "period": "monthly" if feature in MONTHLY_FEATURES else "daily",
            }
        return summary


usage_service: Optional[UsageService] = None


def get_usage_service() -> UsageService:
    global usage_service
    if usage_service is None:
        usage_service = UsageService()
    return usage_service
