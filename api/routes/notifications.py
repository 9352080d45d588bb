import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from api.deps import get_current_user
from models import User
from services.exceptions import AppError
from services.notification_service import get_notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(get_current_user),
):
    try:
        return get_notification_service().list_notifications(user.id, unread_only, limit)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching notifications: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch notifications")


@router.post("/read-all")
async def mark_all_read(user: User = Depends(get_current_user)):
    try:
        return {"updated": get_notification_service().mark_all_read(user.id)}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error marking notifications read: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update notifications")


@router.post("/{notification_id}/read")
async def mark_read(notification_id: str, user: User = Depends(get_current_user)):
    try:
        return get_notification_service().mark_read(user.id, notification_id)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error marking notification {notification_id} read: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update notification")
