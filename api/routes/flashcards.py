import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from api.deps import get_current_user
from models import User
from services.exceptions import AppError
from services.flashcard_service import get_flashcard_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/flashcards", tags=["flashcards"])


class CreateDeckRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    category_code: Optional[str] = None
    is_public: bool = False


class AddCardRequest(BaseModel):
    front: str = Field(min_length=1, max_length=5000)
    back: str = Field(min_length=1, max_length=5000)


class ReviewRequest(BaseModel):
    flashcard_id: str
    quality: int = Field(ge=0, le=5)


@router.get("/decks")
async def list_decks(user: User = Depends(get_current_user)):
    try:
        return {"decks": get_flashcard_service().list_decks(user.id)}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching decks: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch decks")


@router.post("/decks", status_code=201)
async def create_deck(request: CreateDeckRequest, user: User = Depends(get_current_user)):
    try:
        return get_flashcard_service().create_deck(
            user.id, request.title, request.description, request.category_code, request.is_public
        )
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error creating deck: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create deck")


@router.get("/decks/{deck_id}")
async def get_deck(deck_id: str, user: User = Depends(get_current_user)):
    try:
        return get_flashcard_service().get_deck(user.id, deck_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching deck {deck_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch deck")


@router.post("/decks/{deck_id}/cards", status_code=201)
async def add_card(deck_id: str, request: AddCardRequest, user: User = Depends(get_current_user)):
    try:
        return get_flashcard_service().add_card(user.id, deck_id, request.front, request.back)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error adding card to deck {deck_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to add card")


@router.get("/decks/{deck_id}/review")
async def get_due_cards(deck_id: str, user: User = Depends(get_current_user)):
    try:
        return get_flashcard_service().get_due_cards(user.id, deck_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching due cards for deck {deck_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch due cards")


@router.post("/decks/{deck_id}/review")
async def review_card(deck_id: str, request: ReviewRequest, user: User = Depends(get_current_user)):
    try:
        return get_flashcard_service().review_card(user.id, deck_id, request.flashcard_id, request.quality)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error reviewing card in deck {deck_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to record review")
