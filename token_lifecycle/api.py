"""
API routers and Pydantic models for the Token Lifecycle service.

This module provides the FastAPI routers with authentication and user
administration endpoints and the Pydantic models for request/response
validation. Service errors propagate unchanged; ``main.py`` maps each
error kind to its status code.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from token_lifecycle.auth import AuthenticationService, AuthResult, TokenPair
from token_lifecycle.dependencies import (get_auth_service,
                                         get_current_claims,
                                         get_current_identity, require_roles)
from token_lifecycle.models import Identity, UserRole

# Create API routers
router = APIRouter(tags=["authentication"])
users_router = APIRouter(tags=["users"])


# Pydantic models for request/response
class UserRegistrationRequest(BaseModel):
    """Request model for user registration."""
    name: str = Field(..., min_length=2, max_length=50, description="Display name")
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=6, max_length=128, description="Password")

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        """Trim the name before its length is checked."""
        return v.strip() if isinstance(v, str) else v


class UserLoginRequest(BaseModel):
    """Request model for user login."""
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, max_length=128, description="User password")


class TokenRefreshRequest(BaseModel):
    """Request model for token refresh."""
    refresh_token: str = Field(..., min_length=1, description="JWT refresh token")


class LogoutRequest(BaseModel):
    """Request model for logout."""
    refresh_token: str = Field(..., description="JWT refresh token to revoke")


class PasswordChangeRequest(BaseModel):
    """Request model for password change."""
    current_password: str = Field(..., description="Current password")
    new_password: str = Field(..., min_length=6, max_length=128, description="New password")


class UserUpdateRequest(BaseModel):
    """Request model for administrative user updates."""
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def at_least_one_field(self):
        if self.name is None and self.email is None and self.role is None:
            raise ValueError("At least one of name, email or role must be provided")
        return self


class UserResponse(BaseModel):
    """Public view of a user."""
    id: int
    name: str
    email: str
    role: UserRole
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_identity(cls, identity: Identity) -> "UserResponse":
        return cls(
            id=identity.id,
            name=identity.name,
            email=identity.email,
            role=identity.role,
            is_active=identity.is_active,
            created_at=identity.created_at,
            updated_at=identity.updated_at,
        )


class TokenResponse(BaseModel):
    """Response model for token operations."""
    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")
    token_type: str = Field("bearer", description="Token type")
    access_expires_at: datetime = Field(..., description="Access token expiration time (UTC)")
    refresh_expires_at: datetime = Field(..., description="Refresh token expiration time (UTC)")

    @classmethod
    def from_pair(cls, tokens: TokenPair) -> "TokenResponse":
        return cls(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            access_expires_at=tokens.access_expires_at,
            refresh_expires_at=tokens.refresh_expires_at,
        )


class AuthResponse(TokenResponse):
    """Response model for registration and login."""
    user: UserResponse

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(user=UserResponse.from_identity(result.identity), **TokenResponse.from_pair(result.tokens).model_dump())


class ErrorResponse(BaseModel):
    """Response model for errors."""
    detail: Any = Field(..., description="Error detail")


class SuccessResponse(BaseModel):
    """Response model for successful operations."""
    message: str = Field(..., description="Success message")
    details: Optional[Dict] = Field(None, description="Additional details")


UNAUTHORIZED = {401: {"model": ErrorResponse, "description": "Missing, invalid or expired credentials"}}
FORBIDDEN = {403: {"model": ErrorResponse, "description": "Account deactivated or insufficient role"}}
NOT_FOUND = {404: {"model": ErrorResponse, "description": "User not found"}}
CONFLICT = {409: {"model": ErrorResponse, "description": "Email already registered"}}
UNAVAILABLE = {503: {"model": ErrorResponse, "description": "Storage temporarily unavailable"}}


# Authentication endpoints
@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**CONFLICT, **UNAVAILABLE},
    summary="Register a new user",
    description="Register a new user and return the user together with an access and refresh token.",
)
def register(
    registration_data: UserRegistrationRequest,
    service: AuthenticationService = Depends(get_auth_service),
):
    """Register a new user and start their first session."""
    result = service.register(
        registration_data.name,
        registration_data.email,
        registration_data.password,
    )
    return AuthResponse.from_result(result)


@router.post(
    "/login",
    response_model=AuthResponse,
    status_code=status.HTTP_200_OK,
    responses={**UNAUTHORIZED, **FORBIDDEN, **UNAVAILABLE},
    summary="Authenticate user and get tokens",
    description="Authenticate a user with email and password, and return access and refresh tokens.",
)
def login(
    login_data: UserLoginRequest,
    service: AuthenticationService = Depends(get_auth_service),
):
    """Authenticate a user and generate access and refresh tokens."""
    result = service.login(login_data.email, login_data.password)
    return AuthResponse.from_result(result)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    responses={**UNAUTHORIZED, **FORBIDDEN, **UNAVAILABLE},
    summary="Rotate refresh token",
    description="Exchange a refresh token for a new access and refresh token. The presented refresh token is consumed.",
)
def refresh(
    refresh_request: TokenRefreshRequest,
    service: AuthenticationService = Depends(get_auth_service),
):
    """Rotate a refresh token."""
    return TokenResponse.from_pair(service.refresh(refresh_request.refresh_token))


@router.post(
    "/logout",
    response_model=SuccessResponse,
    status_code=status.HTTP_200_OK,
    summary="Logout",
    description="Revoke a refresh token. Succeeds even if the token is already invalid.",
)
def logout(
    logout_request: LogoutRequest,
    service: AuthenticationService = Depends(get_auth_service),
):
    """Revoke the session of a refresh token."""
    service.logout(logout_request.refresh_token)
    return SuccessResponse(message="Logged out successfully")


@router.post(
    "/logout-all",
    response_model=SuccessResponse,
    status_code=status.HTTP_200_OK,
    responses={**UNAUTHORIZED, **UNAVAILABLE},
    summary="Logout from all devices",
    description="Revoke every refresh token of the authenticated user.",
)
def logout_all(
    claims: Dict[str, Any] = Depends(get_current_claims),
    service: AuthenticationService = Depends(get_auth_service),
):
    """Revoke all sessions of the caller."""
    revoked = service.logout_all(int(claims["sub"]))
    return SuccessResponse(
        message="Logged out from all devices",
        details={"sessions_revoked": revoked},
    )


@router.get(
    "/me",
    response_model=UserResponse,
    responses={**UNAUTHORIZED, **NOT_FOUND},
    summary="Current user",
    description="Return the profile of the authenticated user.",
)
def me(identity: Identity = Depends(get_current_identity)):
    """Profile of the caller."""
    return UserResponse.from_identity(identity)


@router.post(
    "/password",
    response_model=SuccessResponse,
    status_code=status.HTTP_200_OK,
    responses={**UNAUTHORIZED, **NOT_FOUND},
    summary="Change password",
    description="Change the caller's password. All sessions are revoked.",
)
def change_password(
    password_request: PasswordChangeRequest,
    claims: Dict[str, Any] = Depends(get_current_claims),
    service: AuthenticationService = Depends(get_auth_service),
):
    """Change the caller's password."""
    revoked = service.change_secret(
        int(claims["sub"]),
        password_request.current_password,
        password_request.new_password,
    )
    return SuccessResponse(
        message="Password changed successfully",
        details={"sessions_revoked": revoked},
    )


# User administration endpoints
@users_router.get(
    "/{user_id}",
    response_model=UserResponse,
    responses={**UNAUTHORIZED, **NOT_FOUND},
    summary="Get user",
    dependencies=[Depends(get_current_claims)],
)
def get_user(user_id: int, service: AuthenticationService = Depends(get_auth_service)):
    """Fetch one user by id."""
    return UserResponse.from_identity(service.get_identity(user_id))


@users_router.patch(
    "/{user_id}",
    response_model=UserResponse,
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND, **CONFLICT},
    summary="Update user",
    description="Update name, email or role. A role change revokes the user's sessions.",
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
def update_user(
    user_id: int,
    update_request: UserUpdateRequest,
    service: AuthenticationService = Depends(get_auth_service),
):
    """Administrative profile update."""
    identity = service.update_profile(
        user_id,
        name=update_request.name,
        email=update_request.email,
        role=update_request.role,
    )
    return UserResponse.from_identity(identity)


@users_router.post(
    "/{user_id}/deactivate",
    response_model=UserResponse,
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND},
    summary="Deactivate user",
    description="Deactivate an account and revoke all of its sessions.",
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
def deactivate_user(user_id: int, service: AuthenticationService = Depends(get_auth_service)):
    """Deactivate a user."""
    return UserResponse.from_identity(service.deactivate_user(user_id))


@users_router.post(
    "/{user_id}/activate",
    response_model=UserResponse,
    responses={**UNAUTHORIZED, **FORBIDDEN, **NOT_FOUND},
    summary="Activate user",
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)
def activate_user(user_id: int, service: AuthenticationService = Depends(get_auth_service)):
    """Re-activate a user."""
    return UserResponse.from_identity(service.activate_user(user_id))
