"""Database models for the NCLEX prep API."""

from .db_models import (
    Base,
    utcnow,
    utc_today,
    new_id,
    User,
    Category,
    Question,
    QuizSession,
    QuizResponse,
    CATSession,
    CATResponse,
    FlashcardDeck,
    Flashcard,
    FlashcardProgress,
    DiscussionCategory,
    DiscussionPost,
    DiscussionComment,
    DiscussionReaction,
    StudyPlan,
    StudyPlanTask,
    StudyGroup,
    StudyGroupMember,
    StudyGroupMessage,
    StudyActivity,
    DailyUsage,
    Achievement,
    UserAchievement,
    Notification,
    TutorMessage,
)

__all__ = [
    "Base",
    "utcnow",
    "utc_today",
    "new_id",
    "User",
    "Category",
    "Question",
    "QuizSession",
    "QuizResponse",
    "CATSession",
    "CATResponse",
    "FlashcardDeck",
    "Flashcard",
    "FlashcardProgress",
    "DiscussionCategory",
    "DiscussionPost",
    "DiscussionComment",
    "DiscussionReaction",
    "StudyPlan",
    "StudyPlanTask",
    "StudyGroup",
    "StudyGroupMember",
    "StudyGroupMessage",
    "StudyActivity",
    "DailyUsage",
    "Achievement",
    "UserAchievement",
    "Notification",
    "TutorMessage",
]
