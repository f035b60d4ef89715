"""
Error taxonomy for the Token Lifecycle service.

Every failure raised by the Authentication Service, the Credential Store, the
Refresh Token Ledger and the Access Control Gate is one of the kinds below.
Each kind carries the HTTP status the API layer maps it to and a generic
detail message that never reveals which specific check failed.
"""
from typing import Optional


class AuthError(Exception):
    """Base exception for authentication-related errors."""

    status_code: int = 400
    default_detail: str = "Authentication error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ConflictError(AuthError):
    """Raised when an identity with the same email already exists."""
    status_code = 409
    default_detail = "Email is already registered"


class UnauthorizedError(AuthError):
    """Raised for bad credentials and invalid, expired, revoked or replayed tokens."""
    status_code = 401
    default_detail = "Authentication required"


class ForbiddenError(AuthError):
    """Raised for deactivated accounts and insufficient roles."""
    status_code = 403
    default_detail = "You do not have permission to perform this action"


class NotFoundError(AuthError):
    """Raised when an identity addressed by id does not exist."""
    status_code = 404
    default_detail = "User not found"


class UnavailableError(AuthError):
    """Raised when storage times out or fails transiently."""
    status_code = 503
    default_detail = "Service temporarily unavailable"
