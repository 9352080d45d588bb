"""Domain errors raised by the service layer and rendered by the API error handlers."""

from typing import Any, Dict, Optional


class AppError(Exception):
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class PermissionDeniedError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class UsageLimitError(AppError):
    """Raised when a subscription tier limit blocks an action."""

    status_code = 403
    code = "USAGE_LIMIT_REACHED"

    def __init__(self, feature: str, limit: int, remaining: int = 0, message: Optional[str] = None):
        super().__init__(
            message or f"Usage limit reached for {feature}. Upgrade your plan for more access.",
            details={"feature": feature, "limit": limit, "remaining": remaining},
        )
        self.feature = feature


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMITED"


class ServiceUnavailableError(AppError):
    status_code = 503
    code = "SERVICE_UNAVAILABLE"
