import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from models import Category, Flashcard, FlashcardDeck, FlashcardProgress, User, utc_today, utcnow
from services import subscription
from services.database_service import get_database_service
from services.exceptions import NotFoundError, PermissionDeniedError, UsageLimitError
from services.gamification_service import get_gamification_service
from services.usage_service import get_usage_service

logger = logging.getLogger(__name__)

MIN_EASE_FACTOR = 1.3


@dataclass
class ReviewSchedule:
    ease_factor: float
    interval_days: int
    repetitions: int


def calculate_sm2(quality: int, ease_factor: float = 2.5, interval_days: int = 1,
                  repetitions: int = 0) -> ReviewSchedule:
    """SM-2: the new interval uses the current ease factor, which is updated after."""
    if quality >= 3:
        if repetitions == 0:
            interval_days = 1
        elif repetitions == 1:
            interval_days = 6
        else:
            interval_days = round(interval_days * ease_factor)
        repetitions += 1
    else:
        repetitions = 0
        interval_days = 1

    ease_factor = ease_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    return ReviewSchedule(max(MIN_EASE_FACTOR, ease_factor), interval_days, repetitions)


def mastery_for(repetitions: int) -> str:
    if repetitions >= 5:
        return "mastered"
    if repetitions >= 3:
        return "learned"
    if repetitions >= 1:
        return "reviewing"
    return "new"


class FlashcardService:
    """Flashcard decks and SM-2 spaced repetition reviews."""

    def __init__(self):
        self.db_service = get_database_service()
        self.usage = get_usage_service()
        self.gamification = get_gamification_service()

    def _serialize_deck(self, deck: FlashcardDeck, user_id: str) -> Dict[str, Any]:
        return {
            "id": deck.id,
            "title": deck.title,
            "description": deck.description,
            "category_id": deck.category_id,
            "is_public": deck.is_public,
            "is_owner": deck.user_id == user_id,
            "card_count": deck.card_count,
            "mastered_count": deck.mastered_count,
            "created_at": deck.created_at.isoformat() if deck.created_at else None,
        }

    def _serialize_card(self, card: Flashcard, progress: Optional[FlashcardProgress] = None) -> Dict[str, Any]:
        payload = {
            "id": card.id,
            "deck_id": card.deck_id,
            "front": card.front,
            "back": card.back,
            "sequence_order": card.sequence_order,
        }
        if progress is not None:
            payload["progress"] = {
                "ease_factor": progress.ease_factor,
                "interval_days": progress.interval_days,
                "repetitions": progress.repetitions,
                "next_review_date": progress.next_review_date.isoformat() if progress.next_review_date else None,
                "mastery_level": progress.mastery_level,
            }
        return payload

    def _visible_deck(self, session: Session, user_id: str, deck_id: str) -> FlashcardDeck:
        deck = session.get(FlashcardDeck, deck_id)
        if not deck or (deck.user_id != user_id and not deck.is_public):
            raise NotFoundError("Deck not found")
        return deck

    def _progress_by_card(self, session: Session, user_id: str, card_ids: List[str]) -> Dict[str, FlashcardProgress]:
        if not card_ids:
            return {}
        rows = session.query(FlashcardProgress).filter(
            FlashcardProgress.user_id == user_id, FlashcardProgress.flashcard_id.in_(card_ids)
        ).all()
        return {p.flashcard_id: p for p in rows}

    def _active_cards(self, session: Session, deck_id: str) -> List[Flashcard]:
        return (
            session.query(Flashcard)
            .filter(Flashcard.deck_id == deck_id, Flashcard.is_active.is_(True))
            .order_by(Flashcard.sequence_order)
            .all()
        )

    def list_decks(self, user_id: str) -> List[Dict[str, Any]]:
        with self.db_service.session_scope() as session:
            decks = (
                session.query(FlashcardDeck)
                .filter(or_(FlashcardDeck.user_id == user_id, FlashcardDeck.is_public.is_(True)))
                .order_by(FlashcardDeck.created_at.desc())
                .all()
            )
            return [self._serialize_deck(d, user_id) for d in decks]

    def create_deck(self, user_id: str, title: str, description: Optional[str] = None,
                    category_code: Optional[str] = None, is_public: bool = False) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            user = session.get(User, user_id)
            owned = session.query(FlashcardDeck).filter(FlashcardDeck.user_id == user_id).count()
            check = subscription.check_usage_limit(user.subscription_tier, "flashcard_decks", owned)
            if not check["allowed"]:
                raise UsageLimitError("flashcard_decks", check["limit"], 0,
                                      "Flashcard deck limit reached. Upgrade your plan for unlimited decks.")

            category_id = None
            if category_code:
                category = session.query(Category).filter(Category.code == category_code).first()
                if not category:
                    raise NotFoundError(f"Unknown category: {category_code}")
                category_id = category.id

            deck = FlashcardDeck(
                user_id=user_id,
                title=title.strip(),
                description=description,
                category_id=category_id,
                is_public=is_public,
            )
            session.add(deck)
            session.flush()
            logger.info(f"Created flashcard deck {deck.id} for user {user_id}")
            return self._serialize_deck(deck, user_id)

    def get_deck(self, user_id: str, deck_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            deck = self._visible_deck(session, user_id, deck_id)
            cards = self._active_cards(session, deck.id)
            progress = self._progress_by_card(session, user_id, [c.id for c in cards])
            today = utc_today()

            stats = {"total": len(cards), "new": 0, "learning": 0, "mature": 0, "due": 0}
            for card in cards:
                p = progress.get(card.id)
                if p is None or p.mastery_level == "new":
                    stats["new"] += 1
                elif p.mastery_level == "mastered":
                    stats["mature"] += 1
                else:
                    stats["learning"] += 1
                if p is None or p.next_review_date is None or p.next_review_date <= today:
                    stats["due"] += 1

            return {
                **self._serialize_deck(deck, user_id),
                "stats": stats,
                "cards": [self._serialize_card(c, progress.get(c.id)) for c in cards],
            }

    def add_card(self, user_id: str, deck_id: str, front: str, back: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            deck = self._visible_deck(session, user_id, deck_id)
            if deck.user_id != user_id:
                raise PermissionDeniedError("Only the deck owner can add cards")

            card = Flashcard(deck_id=deck.id, front=front.strip(), back=back.strip(),
                             sequence_order=deck.card_count)
            session.add(card)
            deck.card_count += 1
            session.flush()
            return self._serialize_card(card)

    def get_due_cards(self, user_id: str, deck_id: str) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            deck = self._visible_deck(session, user_id, deck_id)
            cards = self._active_cards(session, deck.id)
            progress = self._progress_by_card(session, user_id, [c.id for c in cards])
            today = utc_today()

            due = [
                c for c in cards
                if c.id not in progress
                or progress[c.id].next_review_date is None
                or progress[c.id].next_review_date <= today
            ]
            return {
                "total_cards": len(cards),
                "due_cards": len(due),
                "cards": [self._serialize_card(c, progress.get(c.id)) for c in due],
            }

    def review_card(self, user_id: str, deck_id: str, flashcard_id: str, quality: int) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            deck = self._visible_deck(session, user_id, deck_id)
            card = session.get(Flashcard, flashcard_id)
            if not card or card.deck_id != deck.id:
                raise NotFoundError("Card not found")

            progress = (
                session.query(FlashcardProgress)
                .filter(FlashcardProgress.user_id == user_id, FlashcardProgress.flashcard_id == flashcard_id)
                .one_or_none()
            )
            if progress is None:
                progress = FlashcardProgress(
                    user_id=user_id,
                    flashcard_id=flashcard_id,
                    ease_factor=2.5,
                    interval_days=1,
                    repetitions=0,
                    total_reviews=0,
                    correct_reviews=0,
                )
                session.add(progress)

            schedule = calculate_sm2(quality, progress.ease_factor, progress.interval_days or 1,
                                     progress.repetitions)
            next_review = utc_today() + timedelta(days=schedule.interval_days)

            progress.ease_factor = schedule.ease_factor
            progress.interval_days = schedule.interval_days
            progress.repetitions = schedule.repetitions
            progress.next_review_date = next_review
            progress.last_review_date = utcnow()
            progress.total_reviews += 1
            progress.correct_reviews += 1 if quality >= 3 else 0
            progress.mastery_level = mastery_for(schedule.repetitions)
            session.flush()

            if deck.user_id == user_id:
                deck.mastered_count = (
                    session.query(FlashcardProgress)
                    .join(Flashcard, Flashcard.id == FlashcardProgress.flashcard_id)
                    .filter(
                        Flashcard.deck_id == deck.id,
                        FlashcardProgress.user_id == user_id,
                        FlashcardProgress.mastery_level == "mastered",
                    )
                    .count()
                )

            user = session.get(User, user_id)
            self.usage.check_and_increment(session, user_id, "flashcards_reviewed", user.subscription_tier)
            xp = self.gamification.award_xp(session, user_id, "flashcard_review")

            return {
                "flashcard_id": flashcard_id,
                "next_review_date": next_review.isoformat(),
                "interval_days": schedule.interval_days,
                "ease_factor": schedule.ease_factor,
                "repetitions": schedule.repetitions,
                "mastery_level": progress.mastery_level,
                "xp_awarded": xp["xp_awarded"],
            }


flashcard_service: Optional[FlashcardService] = None


def get_flashcard_service() -> FlashcardService:
    global flashcard_service
    if flashcard_service is None:
        flashcard_service = FlashcardService()
    return flashcard_service
