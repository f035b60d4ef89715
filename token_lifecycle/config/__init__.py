"""
Configuration module for the Token Lifecycle service.

This module provides configuration settings for the Token Lifecycle service.
"""

from token_lifecycle.config.jwt_config import (
    get_signing_secret,
    get_token_expiry,
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH
)
from token_lifecycle.config.settings import Settings, settings, get_settings

__all__ = [
    "get_signing_secret",
    "get_token_expiry",
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
    "Settings",
    "settings",
    "get_settings"
]
