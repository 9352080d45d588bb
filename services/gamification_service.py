import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import (
    Achievement,
    CATSession,
    DiscussionPost,
    FlashcardProgress,
    QuizSession,
    StudyActivity,
    User,
    UserAchievement,
    utc_today,
)
from services.cache_service import get_cache_service
from services.database_service import get_database_service
from services.exceptions import AppError, NotFoundError
from services.notification_service import get_notification_service

logger = logging.getLogger(__name__)

LEVEL_THRESHOLDS = {
    1: 0,
    2: 100,
    3: 300,
    4: 600,
    5: 1000,
    6: 1500,
    7: 2500,
    8: 4000,
    9: 6000,
    10: 10000,
}

XP_ACTIONS = {
    "quiz_complete": 25,
    "cat_complete": 50,
    "flashcard_review": 5,
    "discussion_post": 15,
    "discussion_reply": 10,
    "daily_login": 10,
    "streak_bonus": 0,  # 5 per streak day, see _xp_for
}

# the rest are awarded by the server as side effects
CLIENT_ACTIONS = ("daily_login", "streak_bonus")

STREAK_MILESTONES = (7, 14, 30, 60, 100, 200, 365)


def level_for_xp(xp_total: int) -> int:
    level = 1
    for candidate, threshold in sorted(LEVEL_THRESHOLDS.items()):
        if xp_total >= threshold:
            level = candidate
    return level


def level_progress(xp_total: int) -> Dict[str, Any]:
    level = level_for_xp(xp_total)
    current_floor = LEVEL_THRESHOLDS[level]
    next_threshold = LEVEL_THRESHOLDS.get(level + 1)
    if next_threshold is None:
        return {"level": level, "next_level_xp": None, "xp_to_next_level": 0, "progress_percent": 100}
    span = next_threshold - current_floor
    return {
        "level": level,
        "next_level_xp": next_threshold,
        "xp_to_next_level": next_threshold - xp_total,
        "progress_percent": round((xp_total - current_floor) / span * 100),
    }


def _day_bounds(day: date):
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class GamificationService:
    """XP, levels, streaks and achievements."""

    def __init__(self):
        self.db_service = get_database_service()
        self.notifications = get_notification_service()

    def _xp_for(self, action: str, user: User) -> int:
        if action == "streak_bonus":
            return max(5, user.current_streak * 5)
        return XP_ACTIONS[action]

    def award_xp(self, session: Session, user_id: str, action: str) -> Dict[str, Any]:
        """Grant XP for action inside the caller's transaction.

        Handles daily_login streak bookkeeping, level-ups, achievement
        unlocks and the notifications that go with them.
        """
        if action not in XP_ACTIONS:
            raise AppError(f"Invalid action. Valid actions: {', '.join(XP_ACTIONS)}")

        user = session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        previous_level = user.level
        streak_updated = False

        if action == "daily_login":
            today = utc_today()
            if user.last_active_date == today:
                return self._award_result(user, 0, previous_level, [], "Daily login already recorded today")

            if user.last_active_date == today - timedelta(days=1):
                user.current_streak = (user.current_streak or 0) + 1
            else:
                user.current_streak = 1
            user.longest_streak = max(user.longest_streak or 0, user.current_streak)
            user.last_active_date = today
            streak_updated = True

        xp_awarded = self._xp_for(action, user)
        user.xp_total = (user.xp_total or 0) + xp_awarded
        user.level = level_for_xp(user.xp_total)

        new_achievements = self._check_achievements(session, user)

        if user.level > previous_level:
            self.notifications.notify(
                session, user_id, "gamification",
                f"Level Up! You're now Level {user.level}",
                f"Congratulations! You've reached Level {user.level} with {user.xp_total} XP.",
                "/progress/achievements",
            )

        if streak_updated and user.current_streak in STREAK_MILESTONES:
            self.notifications.notify(
                session, user_id, "gamification",
                f"{user.current_streak}-Day Streak Milestone!",
                f"Amazing dedication! You've studied for {user.current_streak} consecutive days.",
                "/progress/achievements",
            )

        logger.info(f"Awarded {xp_awarded} XP to user {user_id} for {action}")
        return self._award_result(user, xp_awarded, previous_level, new_achievements)

    def _award_result(self, user: User, xp_awarded: int, previous_level: int,
                      new_achievements: List[Dict[str, Any]], message: Optional[str] = None) -> Dict[str, Any]:
        result = {
            "xp_awarded": xp_awarded,
            "xp_total": user.xp_total,
            "level": user.level,
            "leveled_up": user.level > previous_level,
            "previous_level": previous_level,
            "current_streak": user.current_streak,
            "longest_streak": user.longest_streak,
            "new_achievements": new_achievements,
        }
        if message:
            result["message"] = message
        return result

    def _achievement_value(self, session: Session, user: User, achievement_type: str) -> Optional[int]:
        if achievement_type == "xp_total":
            return user.xp_total
        if achievement_type == "level_reached":
            return user.level
        if achievement_type == "streak_days":
            return max(user.current_streak or 0, user.longest_streak or 0)
        if achievement_type == "quizzes_completed":
            return session.query(QuizSession).filter(
                QuizSession.user_id == user.id, QuizSession.status == "completed"
            ).count()
        if achievement_type == "cat_completed":
            return session.query(CATSession).filter(
                CATSession.user_id == user.id, CATSession.status == "completed"
            ).count()
        if achievement_type == "cat_passed":
            return session.query(CATSession).filter(
                CATSession.user_id == user.id, CATSession.result == "pass"
            ).count()
        if achievement_type == "flashcards_reviewed":
            total = session.query(func.coalesce(func.sum(FlashcardProgress.total_reviews), 0)).filter(
                FlashcardProgress.user_id == user.id
            ).scalar()
            return int(total or 0)
        if achievement_type == "discussion_posts":
            return session.query(DiscussionPost).filter(
                DiscussionPost.author_id == user.id, DiscussionPost.status != "deleted"
            ).count()
        return None

    def _check_achievements(self, session: Session, user: User) -> List[Dict[str, Any]]:
        session.flush()
        unlocked_ids = {
            achievement_id
            for (achievement_id,) in session.query(UserAchievement.achievement_id)
            .filter(UserAchievement.user_id == user.id)
            .all()
        }
        pending = [
            a for a in session.query(Achievement).filter(Achievement.is_active.is_(True)).all()
            if a.id not in unlocked_ids
        ]

        newly_unlocked = []
        # rewards can push xp/level past further thresholds, so repeat until stable
        progressed = True
        while progressed and pending:
            progressed = False
            values: Dict[str, Optional[int]] = {}
            for achievement in list(pending):
                if achievement.achievement_type not in values:
                    values[achievement.achievement_type] = self._achievement_value(
                        session, user, achievement.achievement_type
                    )
                value = values[achievement.achievement_type]
                if value is None or value < (achievement.threshold_value or 0):
                    continue

                session.add(UserAchievement(user_id=user.id, achievement_id=achievement.id))
                pending.remove(achievement)
                user.xp_total += achievement.xp_reward or 0
                user.level = level_for_xp(user.xp_total)
                self.notifications.notify(
                    session, user.id, "achievement",
                    f"Achievement Unlocked: {achievement.name}",
                    f"{achievement.description or achievement.name} (+{achievement.xp_reward} XP)",
                    "/progress/achievements",
                )
                newly_unlocked.append({
                    "id": achievement.id,
                    "code": achievement.code,
                    "name": achievement.name,
                    "xp_reward": achievement.xp_reward,
                })
                progressed = True

        return newly_unlocked

    def claim_xp(self, user_id: str, action: str) -> Dict[str, Any]:
        """Client-initiated awards: daily login and the once-a-day streak bonus."""
        if action not in CLIENT_ACTIONS:
            raise AppError(f"Invalid action. Valid actions: {', '.join(CLIENT_ACTIONS)}")

        with self.db_service.session_scope() as session:
            if action == "streak_bonus":
                start, end = _day_bounds(utc_today())
                claimed = session.query(StudyActivity).filter(
                    StudyActivity.user_id == user_id,
                    StudyActivity.activity_type == "streak_bonus",
                    StudyActivity.created_at >= start,
                    StudyActivity.created_at < end,
                ).first()
                if claimed:
                    user = session.get(User, user_id)
                    return self._award_result(user, 0, user.level, [], "Streak bonus already claimed today")
                session.add(StudyActivity(user_id=user_id, activity_type="streak_bonus", title="Streak bonus"))

            return self.award_xp(session, user_id, action)

    def get_summary(self, user_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            user = session.get(User, user_id)
            if not user:
                raise NotFoundError("User not found")

            unlocked = {
                ua.achievement_id: ua.unlocked_at
                for ua in session.query(UserAchievement).filter(UserAchievement.user_id == user_id).all()
            }
            achievements = []
            for achievement in (
                session.query(Achievement)
                .filter(Achievement.is_active.is_(True))
                .order_by(Achievement.achievement_type, Achievement.threshold_value)
                .all()
            ):
                unlocked_at = unlocked.get(achievement.id)
                achievements.append({
                    "id": achievement.id,
                    "code": achievement.code,
                    "name": achievement.name,
                    "description": achievement.description,
                    "achievement_type": achievement.achievement_type,
                    "threshold_value": achievement.threshold_value,
                    "xp_reward": achievement.xp_reward,
                    "unlocked": unlocked_at is not None,
                    "unlocked_at": unlocked_at.isoformat() if unlocked_at else None,
                })

            return {
                "xp_total": user.xp_total,
                **level_progress(user.xp_total),
                "current_streak": user.current_streak,
                "longest_streak": user.longest_streak,
                "last_active_date": user.last_active_date.isoformat() if user.last_active_date else None,
                "achievements": achievements,
                "achievements_unlocked": len(unlocked),
            }

    def get_leaderboard(self, limit: int = 10) -> List[Dict[str, Any]]:
        cache_service = get_cache_service()
        cached = cache_service.get_cached_leaderboard(limit)
        if cached is not None:
            return cached

        with self.db_service.session_scope() as session:
            users = (
                session.query(User)
                .filter(User.is_active.is_(True))
                .order_by(User.xp_total.desc(), User.created_at)
                .limit(limit)
                .all()
            )
            entries = [
                {
                    "rank": rank,
                    "user_id": u.id,
                    "full_name": u.full_name,
                    "xp_total": u.xp_total,
                    "level": u.level,
                    "current_streak": u.current_streak,
                }
                for rank, u in enumerate(users, start=1)
            ]

        cache_service.cache_leaderboard(limit, entries)
        return entries


gamification_service: Optional[GamificationService] = None


def get_gamification_service() -> GamificationService:
    global gamification_service
    if gamification_service is None:
        gamification_service = GamificationService()
    return gamification_service
