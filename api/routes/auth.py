import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field, field_validator

from api.deps import get_current_user
from models import User
from services.auth_service import check_password_length, get_auth_service
from services.exceptions import AppError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    full_name: str = Field(min_length=1, max_length=255)
    exam_type: Literal["RN", "PN"] = "RN"

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value):
        return check_password_length(value)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=72)


@router.post("/signup", status_code=201)
async def signup(request: SignupRequest):
    try:
        return get_auth_service().signup(request.email, request.password, request.full_name, request.exam_type)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error creating account: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to create account")


@router.post("/login")
async def login(request: LoginRequest):
    try:
        return get_auth_service().login(request.email, request.password)
    except (HTTPException, AppError):
        raise
    except Exception as e:
        logger.error(f"Error during login: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to log in")


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return get_auth_service().serialize_user(user)
