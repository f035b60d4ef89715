"""
JWT configuration settings for the Token Lifecycle service.

This module provides the token class constants and the per-class signing
parameters derived from the application settings.
"""
from datetime import timedelta
from typing import Optional

from token_lifecycle.config.settings import Settings, get_settings

# Token settings
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


# PUBLIC_INTERFACE
def get_token_expiry(token_type: str, settings: Optional[Settings] = None) -> timedelta:
    """
    Get token expiry time based on token type.

    Args:
        token_type: Type of token (access or refresh).
        settings: Settings to read from. Defaults to the global settings.

    Returns:
        Timedelta representing token expiry time.
    """
    settings = settings or get_settings()
    if token_type == TOKEN_TYPE_ACCESS:
        return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    elif token_type == TOKEN_TYPE_REFRESH:
        return timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    else:
        raise ValueError(f"Invalid token type: {token_type}")


# PUBLIC_INTERFACE
def get_signing_secret(token_type: str, settings: Optional[Settings] = None) -> str:
    """Return the signing secret configured for a token class."""
    settings = settings or get_settings()
    if token_type == TOKEN_TYPE_ACCESS:
        return settings.JWT_ACCESS_SECRET_KEY
    elif token_type == TOKEN_TYPE_REFRESH:
        return settings.JWT_REFRESH_SECRET_KEY
    else:
        raise ValueError(f"Invalid token type: {token_type}")
