import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
import jwt
from sqlalchemy.orm import Session

from config import Config
from models import User, utcnow
from services.cache_service import get_cache_service
from services.database_service import get_database_service
from services.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
)
from services.subscription import normalize_tier

logger = logging.getLogger(__name__)

LOGIN_WINDOW_SECONDS = 15 * 60
# bcrypt only hashes the first 72 bytes and rejects longer input
MAX_PASSWORD_BYTES = 72
PROFILE_FIELDS = ("full_name", "exam_type", "target_exam_date", "has_completed_onboarding", "settings")


def check_password_length(password: str) -> str:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return password


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class AuthService:
    """Accounts, password hashing and bearer tokens."""

    def __init__(self):
        self.db_service = get_database_service()

    def serialize_user(self, user: User) -> Dict[str, Any]:
        return {
            "id": user.id,
            "email": user.email,
            "full_name": user.full_name,
            "role": user.role,
            "subscription_tier": normalize_tier(user.subscription_tier),
            "exam_type": user.exam_type,
            "target_exam_date": user.target_exam_date.isoformat() if user.target_exam_date else None,
            "has_completed_onboarding": user.has_completed_onboarding,
            "email_verified": user.email_verified,
            "settings": user.settings or {},
            "xp_total": user.xp_total,
            "level": user.level,
            "current_streak": user.current_streak,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        }

    def create_access_token(self, user: User, expires_minutes: Optional[int] = None) -> str:
        expire = utcnow() + timedelta(minutes=expires_minutes or Config.ACCESS_TOKEN_EXPIRE_MINUTES)
        payload = {
            "sub": user.id,
            "role": user.role,
            "tier": normalize_tier(user.subscription_tier),
            "exp": expire,
        }
        return jwt.encode(payload, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid authentication token")

        if not payload.get("sub"):
            raise AuthenticationError("Invalid authentication token")
        return payload

    def _token_response(self, user: User) -> Dict[str, Any]:
        return {
            "access_token": self.create_access_token(user),
            "token_type": "bearer",
            "user": self.serialize_user(user),
        }

    def signup(self, email: str, password: str, full_name: str, exam_type: str = "RN") -> Dict[str, Any]:
        email = email.strip().lower()
        with self.db_service.session_scope() as session:
            if session.query(User).filter(User.email == email).first():
                raise ConflictError("An account with this email already exists")

            user = User(
                email=email,
                password_hash=hash_password(password),
                full_name=full_name.strip(),
                exam_type=exam_type,
                settings={},
            )
            session.add(user)
            session.flush()
            logger.info(f"Created user account {user.id}")
            return self._token_response(user)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        email = email.strip().lower()
        cache_service = get_cache_service()
        if not cache_service.increment_rate_limit(f"login:{email}", limit=Config.LOGIN_RATE_LIMIT,
                                                  window=LOGIN_WINDOW_SECONDS):
            raise RateLimitError("Too many login attempts. Please try again later.")

        with self.db_service.session_scope() as session:
            user = session.query(User).filter(User.email == email).first()
            if not user or not verify_password(password, user.password_hash):
                logger.info(f"Failed login attempt for {email}")
                raise AuthenticationError("Invalid email or password")
            if not user.is_active:
                raise PermissionDeniedError("Account is disabled")

            user.last_login = utcnow()
            return self._token_response(user)

    def get_user(self, session: Session, user_id: str) -> User:
        user = session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def get_user_by_token(self, token: str) -> User:
        """Resolve a bearer token to a fresh, detached user row."""
        payload = self.decode_access_token(token)
        with self.db_service.session_scope() as session:
            user = session.get(User, payload["sub"])
            if not user:
                raise AuthenticationError("User no longer exists")
            if not user.is_active:
                raise PermissionDeniedError("Account is disabled")
            return user

    def update_profile(self, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        with self.db_service.session_scope() as session:
            user = self.get_user(session, user_id)
            for field in PROFILE_FIELDS:
                if field in changes:
                    value = changes[field]
                    if field == "full_name" and value is not None:
                        value = value.strip()
                    if field == "settings":
                        value = {**(user.settings or {}), **(value or {})}
                    setattr(user, field, value)
            return self.serialize_user(user)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        with self.db_service.session_scope() as session:
            user = self.get_user(session, user_id)
            if not verify_password(current_password, user.password_hash):
                raise AuthenticationError("Current password is incorrect")
            user.password_hash = hash_password(new_password)
            logger.info(f"Password changed for user {user_id}")


auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    global auth_service
    if auth_service is None:
        auth_service = AuthService()
    return auth_service
