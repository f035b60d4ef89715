"""
Access control gate for the Token Lifecycle service.

Per-request capability check: ``authenticate`` turns a bearer access token
into claims, ``authorize`` checks the claims' role against an allowed set.
Verification is pure and lock-free; no storage is consulted.
"""
import logging
import time
from typing import Any, Callable, Dict, Iterable, Optional, Union

from token_lifecycle.config import (TOKEN_TYPE_ACCESS, Settings, get_settings,
                                    get_signing_secret)
from token_lifecycle.errors import ForbiddenError, UnauthorizedError
from token_lifecycle.models import UserRole
from token_lifecycle.token import TokenError, TokenExpiredError, verify_token

logger = logging.getLogger(__name__)

RoleLike = Union[UserRole, str]


def _role_value(role: RoleLike) -> str:
    return role.value if isinstance(role, UserRole) else str(role)


class AccessGate:
    """
    Verifies access tokens and enforces role membership.
    """

    def __init__(self, settings: Optional[Settings] = None, clock: Optional[Callable[[], float]] = None):
        self.settings = settings or get_settings()
        self.clock = clock or time.time

    # PUBLIC_INTERFACE
    @staticmethod
    def parse_bearer(authorization: Optional[str]) -> str:
        """
        Extract the token from an ``Authorization: Bearer <token>`` header.

        Raises:
            UnauthorizedError: If the header is missing or not a bearer token.
        """
        if not authorization:
            raise UnauthorizedError("Access denied. No token provided.")
        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise UnauthorizedError("Access denied. No token provided.")
        return token.strip()

    # PUBLIC_INTERFACE
    def authenticate(self, token: Optional[str]) -> Dict[str, Any]:
        """
        Verify an access token and return its claims.

        Raises:
            UnauthorizedError: If the token is missing, malformed, wrongly
                signed, not an access token, or expired.
        """
        if not token:
            raise UnauthorizedError("Access denied. No token provided.")
        try:
            return verify_token(
                token,
                get_signing_secret(TOKEN_TYPE_ACCESS, self.settings),
                TOKEN_TYPE_ACCESS,
                now=self.clock(),
                algorithm=self.settings.JWT_ALGORITHM,
            )
        except TokenExpiredError:
            raise UnauthorizedError("Invalid or expired access token")
        except TokenError as e:
            logger.warning(f"Access token rejected: {str(e)}")
            raise UnauthorizedError("Invalid or expired access token")

    # PUBLIC_INTERFACE
    def authorize(self, claims: Optional[Dict[str, Any]], allowed_roles: Iterable[RoleLike]) -> None:
        """
        Check that the authenticated caller holds one of the allowed roles.

        Args:
            claims: Claims returned by ``authenticate``.
            allowed_roles: Roles that may proceed.

        Raises:
            UnauthorizedError: If called without authenticated claims.
            ForbiddenError: If the caller's role is not allowed.
        """
        if not claims:
            raise UnauthorizedError("Authentication required")

        allowed = {_role_value(role) for role in allowed_roles}
        if claims.get("role") not in allowed:
            logger.warning(f"User {claims.get('sub')} with role {claims.get('role')} denied; requires {sorted(allowed)}")
            raise ForbiddenError()
