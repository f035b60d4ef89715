"""
Dependency injection for the Token Lifecycle service.

This module provides FastAPI dependency functions for the authentication
service, bearer-token authentication and role-based authorization.
"""
from typing import Any, Callable, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from token_lifecycle.auth import AuthenticationService, build_auth_service
from token_lifecycle.config import settings
from token_lifecycle.database import get_database
from token_lifecycle.errors import UnauthorizedError
from token_lifecycle.gate import AccessGate, RoleLike
from token_lifecycle.models import Identity

# Security scheme for JWT tokens
security = HTTPBearer(auto_error=False)

_auth_service: Optional[AuthenticationService] = None
_access_gate: Optional[AccessGate] = None


# PUBLIC_INTERFACE
def get_auth_service() -> AuthenticationService:
    """Authentication service bound to the default database."""
    global _auth_service
    if _auth_service is None:
        _auth_service = build_auth_service(get_database(), settings)
    return _auth_service


# PUBLIC_INTERFACE
def get_access_gate() -> AccessGate:
    """Access gate using the configured access token secret."""
    global _access_gate
    if _access_gate is None:
        _access_gate = AccessGate(settings)
    return _access_gate


# PUBLIC_INTERFACE
def reset_dependencies() -> None:
    """Forget the cached service and gate, e.g. after re-initializing the database."""
    global _auth_service, _access_gate
    _auth_service = None
    _access_gate = None


# PUBLIC_INTERFACE
async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    gate: AccessGate = Depends(get_access_gate),
) -> Dict[str, Any]:
    """
    Get the verified claims of the bearer access token.

    Raises:
        UnauthorizedError: If no valid bearer token is presented.
    """
    if not credentials:
        raise UnauthorizedError("Access denied. No token provided.")
    return gate.authenticate(credentials.credentials)


# PUBLIC_INTERFACE
def get_current_identity(
    claims: Dict[str, Any] = Depends(get_current_claims),
    service: AuthenticationService = Depends(get_auth_service),
) -> Identity:
    """
    Get the identity of the authenticated caller.

    Raises:
        NotFoundError: If the user behind a still-valid token is gone.
    """
    return service.get_identity(int(claims["sub"]))


# PUBLIC_INTERFACE
def require_roles(*roles: RoleLike) -> Callable:
    """
    Build a dependency that only lets the given roles through.

    Example:
        ``@router.post("/x", dependencies=[Depends(require_roles(UserRole.ADMIN))])``
    """
    async def role_checker(
        claims: Dict[str, Any] = Depends(get_current_claims),
        gate: AccessGate = Depends(get_access_gate),
    ) -> Dict[str, Any]:
        gate.authorize(claims, roles)
        return claims

    return role_checker
