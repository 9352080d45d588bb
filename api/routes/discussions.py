import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from api.deps import get_current_user, is_admin
from models import User
from services.discussion_service import SORT_OPTIONS, get_discussion_service
from services.exceptions import AppError
from services.text_utils import sanitize_user_input

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/discussions", tags=["discussions"])


class CreatePostRequest(BaseModel):
    category_id: int
    title: str = Field(min_length=3, max_length=255)
    content: str = Field(min_length=1, max_length=10000)
    post_type: Literal["discussion", "question", "tip", "success_story"] = "discussion"


class CreateCommentRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    parent_id: Optional[str] = None


@router.get("/categories")
async def list_categories():
    try:
        return {"categories": get_discussion_service().list_categories()}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching discussion categories: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch categories")


@router.get("")
async def list_posts(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = None,
    sort: str = "newest",
):
    try:
        if sort not in SORT_OPTIONS:
            raise AppError(f"Invalid sort. Valid options: {', '.join(SORT_OPTIONS)}")
        if search:
            search = sanitize_user_input(search, max_length=200)

        posts, total = get_discussion_service().list_posts(page, limit, category, search, sort)
        return {"posts": posts, "total": total, "page": page, "limit": limit}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching posts: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch posts")


@router.post("", status_code=201)
async def create_post(request: CreatePostRequest, user: User = Depends(get_current_user)):
    try:
        return get_discussion_service().create_post(
            user.id, request.category_id, request.title, request.content, request.post_type
        )
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error creating post: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create post")


@router.delete("/comments/{comment_id}", status_code=204)
async def delete_comment(comment_id: str, user: User = Depends(get_current_user)):
    try:
        get_discussion_service().delete_comment(user.id, is_admin(user), comment_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error deleting comment {comment_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to delete comment")


@router.get("/{slug}")
async def get_post(slug: str):
    try:
        return get_discussion_service().get_post(slug)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching post {slug}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch post")


@router.post("/{slug}/comments", status_code=201)
async def add_comment(slug: str, request: CreateCommentRequest, user: User = Depends(get_current_user)):
    try:
        return get_discussion_service().add_comment(user.id, slug, request.content, request.parent_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error adding comment to {slug}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to add comment")


@router.post("/{slug}/like")
async def toggle_like(slug: str, user: User = Depends(get_current_user)):
    try:
        return get_discussion_service().toggle_like(user.id, slug)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error toggling like on {slug}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update like")


@router.delete("/{slug}", status_code=204)
async def delete_post(slug: str, user: User = Depends(get_current_user)):
    try:
        get_discussion_service().delete_post(user.id, is_admin(user), slug)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error deleting post {slug}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to delete post")
