import logging
from datetime import date
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from api.deps import get_current_user
from models import User
from services import subscription
from services.auth_service import check_password_length, get_auth_service
from services.exceptions import AppError
from services.usage_service import get_usage_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/account", tags=["account"])


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    exam_type: Optional[Literal["RN", "PN"]] = None
    target_exam_date: Optional[date] = None
    has_completed_onboarding: Optional[bool] = None
    settings: Optional[Dict[str, Any]] = None

    @field_validator("full_name", "exam_type", "has_completed_onboarding")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=72)
    new_password: str = Field(min_length=8, max_length=72)

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, value):
        return check_password_length(value)


@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user)):
    return get_auth_service().serialize_user(user)


@router.patch("/profile")
async def update_profile(request: ProfileUpdateRequest, user: User = Depends(get_current_user)):
    try:
        changes = request.model_dump(exclude_unset=True)
        return get_auth_service().update_profile(user.id, changes)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error updating profile for {user.id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to update profile")


@router.post("/password")
async def change_password(request: ChangePasswordRequest, user: User = Depends(get_current_user)):
    try:
        get_auth_service().change_password(user.id, request.current_password, request.new_password)
        return {"message": "Password updated"}
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error changing password for {user.id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to change password")


@router.get("/subscription")
async def get_subscription(user: User = Depends(get_current_user)):
    try:
        tier = subscription.normalize_tier(user.subscription_tier)
        return {
            "tier": tier,
            "features": subscription.get_tier_features(tier),
            "usage": get_usage_service().get_usage_summary(user.id, tier),
        }
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error fetching subscription for {user.id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch subscription")
