import uuid
from datetime import date, datetime, timezone
from sqlalchemy import (
    Column, String, Text, DateTime, Date, Integer, Float, Boolean, JSON,
    ForeignKey, UniqueConstraint, Index,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so everything is stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    return utcnow().date()


def new_id() -> str:
    return str(uuid.uuid4())


class User(Base):

    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="student")
    subscription_tier = Column(String(20), nullable=False, default="Free")
    is_active = Column(Boolean, nullable=False, default=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    has_completed_onboarding = Column(Boolean, nullable=False, default=False)
    exam_type = Column(String(4), nullable=False, default="RN")
    target_exam_date = Column(Date, nullable=True)
    settings = Column(JSON, nullable=False, default=dict)
    xp_total = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_active_date = Column(Date, nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Category(Base):

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)


class Question(Base):

    __tablename__ = "questions"

    id = Column(String(64), primary_key=True, default=new_id)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(32), nullable=False, default="multiple_choice")
    options = Column(JSON, nullable=True)
    correct_answers = Column(JSON, nullable=True)
    correct_order = Column(JSON, nullable=True)
    hot_spot_data = Column(JSON, nullable=True)
    scenario = Column(Text, nullable=True)
    explanation = Column(Text, nullable=True)
    rationale = Column(Text, nullable=True)
    difficulty = Column(String(10), nullable=False, default="medium")
    discrimination = Column(Float, nullable=False, default=1.0)
    difficulty_irt = Column(Float, nullable=False, default=0.0)
    guessing = Column(Float, nullable=False, default=0.2)
    times_used = Column(Integer, nullable=False, default=0)
    times_correct = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class QuizSession(Base):

    __tablename__ = "quiz_sessions"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="in_progress")
    question_ids = Column(JSON, nullable=False)
    filters = Column(JSON, nullable=False, default=dict)
    total_questions = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer, nullable=False, default=0)
    score = Column(Integer, nullable=True)
    time_limit_seconds = Column(Integer, nullable=True)
    total_time_seconds = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)


class QuizResponse(Base):

    __tablename__ = "quiz_responses"
    __table_args__ = (UniqueConstraint("session_id", "question_id", name="uq_quiz_response_question"),)

    id = Column(String(64), primary_key=True, default=new_id)
    session_id = Column(String(64), ForeignKey("quiz_sessions.id"), nullable=False, index=True)
    question_id = Column(String(64), ForeignKey("questions.id"), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    user_answer = Column(JSON, nullable=True)
    is_correct = Column(Boolean, nullable=False, default=False)
    score = Column(Float, nullable=False, default=0.0)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    question_index = Column(Integer, nullable=False, default=0)
    answered_at = Column(DateTime, default=utcnow, nullable=False)


class CATSession(Base):

    __tablename__ = "cat_sessions"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="in_progress")
    result = Column(String(20), nullable=True)
    stop_reason = Column(String(40), nullable=True)
    current_ability = Column(Float, nullable=False, default=0.0)
    standard_error = Column(Float, nullable=False, default=1.0)
    confidence_interval_lower = Column(Float, nullable=True)
    confidence_interval_upper = Column(Float, nullable=True)
    passing_probability = Column(Float, nullable=False, default=0.5)
    questions_answered = Column(Integer, nullable=False, default=0)
    questions_correct = Column(Integer, nullable=False, default=0)
    min_questions = Column(Integer, nullable=False, default=60)
    max_questions = Column(Integer, nullable=False, default=145)
    time_limit_seconds = Column(Integer, nullable=False, default=18000)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    current_question_id = Column(String(64), ForeignKey("questions.id"), nullable=True)
    category_performance = Column(JSON, nullable=False, default=dict)
    difficulty_distribution = Column(JSON, nullable=False, default=dict)
    started_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)


class CATResponse(Base):

    __tablename__ = "cat_responses"

    id = Column(String(64), primary_key=True, default=new_id)
    session_id = Column(String(64), ForeignKey("cat_sessions.id"), nullable=False, index=True)
    question_id = Column(String(64), ForeignKey("questions.id"), nullable=False)
    user_answer = Column(JSON, nullable=True)
    is_correct = Column(Boolean, nullable=False, default=False)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    ability_before = Column(Float, nullable=False)
    ability_after = Column(Float, nullable=False)
    se_before = Column(Float, nullable=False)
    se_after = Column(Float, nullable=False)
    irt_discrimination = Column(Float, nullable=False)
    irt_difficulty = Column(Float, nullable=False)
    irt_guessing = Column(Float, nullable=False)
    question_number = Column(Integer, nullable=False)
    answered_at = Column(DateTime, default=utcnow, nullable=False)


class FlashcardDeck(Base):

    __tablename__ = "flashcard_decks"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    card_count = Column(Integer, nullable=False, default=0)
    mastered_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Flashcard(Base):

    __tablename__ = "flashcards"

    id = Column(String(64), primary_key=True, default=new_id)
    deck_id = Column(String(64), ForeignKey("flashcard_decks.id"), nullable=False, index=True)
    front = Column(Text, nullable=False)
    back = Column(Text, nullable=False)
    sequence_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class FlashcardProgress(Base):

    __tablename__ = "flashcard_progress"
    __table_args__ = (UniqueConstraint("user_id", "flashcard_id", name="uq_flashcard_progress_user_card"),)

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    flashcard_id = Column(String(64), ForeignKey("flashcards.id"), nullable=False)
    ease_factor = Column(Float, nullable=False, default=2.5)
    interval_days = Column(Integer, nullable=False, default=0)
    repetitions = Column(Integer, nullable=False, default=0)
    next_review_date = Column(Date, nullable=True)
    last_review_date = Column(DateTime, nullable=True)
    total_reviews = Column(Integer, nullable=False, default=0)
    correct_reviews = Column(Integer, nullable=False, default=0)
    mastery_level = Column(String(20), nullable=False, default="new")


class DiscussionCategory(Base):

    __tablename__ = "discussion_categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    slug = Column(String(120), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    post_count = Column(Integer, nullable=False, default=0)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)


class DiscussionPost(Base):

    __tablename__ = "discussion_posts"

    id = Column(String(64), primary_key=True, default=new_id)
    author_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("discussion_categories.id"), nullable=False)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    slug = Column(String(320), unique=True, nullable=False, index=True)
    post_type = Column(String(20), nullable=False, default="discussion")
    status = Column(String(20), nullable=False, default="published")
    view_count = Column(Integer, nullable=False, default=0)
    like_count = Column(Integer, nullable=False, default=0)
    comment_count = Column(Integer, nullable=False, default=0)
    is_pinned = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class DiscussionComment(Base):

    __tablename__ = "discussion_comments"

    id = Column(String(64), primary_key=True, default=new_id)
    post_id = Column(String(64), ForeignKey("discussion_posts.id"), nullable=False, index=True)
    author_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    parent_id = Column(String(64), ForeignKey("discussion_comments.id"), nullable=True)
    content = Column(Text, nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class DiscussionReaction(Base):

    __tablename__ = "discussion_reactions"
    __table_args__ = (UniqueConstraint("user_id", "post_id", "reaction_type", name="uq_reaction_user_post"),)

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    post_id = Column(String(64), ForeignKey("discussion_posts.id"), nullable=False, index=True)
    reaction_type = Column(String(20), nullable=False, default="like")
    created_at = Column(DateTime, default=utcnow, nullable=False)


class StudyPlan(Base):

    __tablename__ = "study_plans"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False)
    target_date = Column(Date, nullable=False)
    daily_study_minutes = Column(Integer, nullable=False, default=120)
    focus_areas = Column(JSON, nullable=False, default=list)
    weak_areas = Column(JSON, nullable=False, default=list)
    study_days = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, default=utcnow, nullable=False)


class StudyPlanTask(Base):

    __tablename__ = "study_plan_tasks"

    id = Column(String(64), primary_key=True, default=new_id)
    plan_id = Column(String(64), ForeignKey("study_plans.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    task_type = Column(String(20), nullable=False)
    category_code = Column(String(20), nullable=True)
    scheduled_date = Column(Date, nullable=False)
    estimated_minutes = Column(Integer, nullable=False, default=45)
    actual_minutes = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    completed_at = Column(DateTime, nullable=True)


class StudyGroup(Base):

    __tablename__ = "study_groups"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_by = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    category_code = Column(String(20), nullable=True, index=True)
    max_members = Column(Integer, nullable=False, default=6)
    member_count = Column(Integer, nullable=False, default=0)
    is_public = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class StudyGroupMember(Base):

    __tablename__ = "study_group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_member"),)

    id = Column(String(64), primary_key=True, default=new_id)
    group_id = Column(String(64), ForeignKey("study_groups.id"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="member")
    joined_at = Column(DateTime, default=utcnow, nullable=False)


class StudyGroupMessage(Base):

    __tablename__ = "study_group_messages"

    id = Column(String(64), primary_key=True, default=new_id)
    group_id = Column(String(64), ForeignKey("study_groups.id"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class StudyActivity(Base):

    __tablename__ = "study_activities"
    __table_args__ = (Index("ix_study_activity_user_type", "user_id", "activity_type"),)

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    activity_type = Column(String(40), nullable=False)
    title = Column(String(255), nullable=False)
    session_id = Column(String(64), nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=0)
    questions_attempted = Column(Integer, nullable=False, default=0)
    questions_correct = Column(Integer, nullable=False, default=0)
    score = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class DailyUsage(Base):

    __tablename__ = "daily_usage"
    __table_args__ = (UniqueConstraint("user_id", "usage_date", name="uq_daily_usage_user_date"),)

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    usage_date = Column(Date, nullable=False)
    questions_attempted = Column(Integer, nullable=False, default=0)
    ai_chat_messages = Column(Integer, nullable=False, default=0)
    flashcards_reviewed = Column(Integer, nullable=False, default=0)
    cat_sessions = Column(Integer, nullable=False, default=0)


class Achievement(Base):

    __tablename__ = "achievements"

    id = Column(String(64), primary_key=True, default=new_id)
    code = Column(String(64), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    achievement_type = Column(String(40), nullable=False)
    threshold_value = Column(Integer, nullable=True)
    xp_reward = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)


class UserAchievement(Base):

    __tablename__ = "user_achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),)

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    achievement_id = Column(String(64), ForeignKey("achievements.id"), nullable=False)
    unlocked_at = Column(DateTime, default=utcnow, nullable=False)


class Notification(Base):

    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(40), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    action_url = Column(String(255), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class TutorMessage(Base):

    __tablename__ = "tutor_messages"

    id = Column(String(64), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    conversation_id = Column(String(64), nullable=False, index=True)
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
