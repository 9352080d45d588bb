from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from models import User
from services.auth_service import get_auth_service
from services.exceptions import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    """Load the caller on every request so role and tier changes apply at once."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    return get_auth_service().get_user_by_token(credentials.credentials)


def is_admin(user: User) -> bool:
    return user.role == "admin"
