import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from api.deps import get_current_user, is_admin
from models import User
from services.exceptions import AppError
from services.study_group_service import get_study_group_service
from services.text_utils import sanitize_user_input

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/study-groups", tags=["study-groups"])


class CreateGroupRequest(BaseModel):
    name: str = Field(min_length=3, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    category_code: Optional[str] = None
    max_members: int = Field(default=6, ge=2, le=50)
    is_public: bool = True


class PostMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


@router.post("", status_code=201)
async def create_group(request: CreateGroupRequest, user: User = Depends(get_current_user)):
    """
    Create a study group; the creator becomes its first member
    """
    try:
        return get_study_group_service().create_group(
            user.id,
            request.name,
            description=request.description,
            category_code=request.category_code,
            max_members=request.max_members,
            is_public=request.is_public,
        )
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error creating study group: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create study group")


@router.get("")
async def list_groups(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    category: Optional[str] = None,
    search: Optional[str] = None,
    user: User = Depends(get_current_user),
):
    try:
        if search:
            search = sanitize_user_input(search, max_length=200)

        groups, total = get_study_group_service().list_groups(user.id, page, limit, search, category)
        return {"groups": groups, "total": total, "page": page, "limit": limit}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching study groups: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch study groups")


@router.get("/mine")
async def my_groups(user: User = Depends(get_current_user)):
    try:
        return {"groups": get_study_group_service().my_groups(user.id)}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching study groups for {user.id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch study groups")


@router.get("/{group_id}")
async def get_group(group_id: str, user: User = Depends(get_current_user)):
    try:
        return get_study_group_service().get_group(user.id, group_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching study group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch study group")


@router.post("/{group_id}/join", status_code=201)
async def join_group(group_id: str, user: User = Depends(get_current_user)):
    try:
        return get_study_group_service().join_group(user.id, group_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error joining study group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to join study group")


@router.post("/{group_id}/leave", status_code=204)
async def leave_group(group_id: str, user: User = Depends(get_current_user)):
    try:
        get_study_group_service().leave_group(user.id, group_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error leaving study group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to leave study group")


@router.delete("/{group_id}", status_code=204)
async def delete_group(group_id: str, user: User = Depends(get_current_user)):
    try:
        get_study_group_service().delete_group(user.id, is_admin(user), group_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error deleting study group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to delete study group")


@router.get("/{group_id}/messages")
async def list_messages(group_id: str, limit: int = Query(default=50, ge=1, le=200),
                        user: User = Depends(get_current_user)):
    try:
        return {"messages": get_study_group_service().list_messages(user.id, group_id, limit)}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching messages for study group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch messages")


@router.post("/{group_id}/messages", status_code=201)
async def post_message(group_id: str, request: PostMessageRequest, user: User = Depends(get_current_user)):
    try:
        return get_study_group_service().post_message(user.id, group_id, request.content)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error posting to study group {group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to post message")
