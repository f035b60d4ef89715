"""
Centralized configuration management for the Token Lifecycle service.

This module provides a centralized configuration system using Pydantic BaseSettings
for managing all application settings including JWT signing, password hashing,
database, ledger and API settings. Every field can be overridden with an
environment variable of the same name or through a ``.env`` file.
"""
import os
import secrets
from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Settings class for all application configuration.

    This class uses Pydantic's BaseSettings to manage all application configuration
    settings with environment variable overrides and validation.
    """
    # Application settings
    APP_NAME: str = "Token Lifecycle"
    APP_DESCRIPTION: str = "Credential issuance and session lifecycle API with rotating refresh tokens"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # API settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = False

    # CORS settings
    CORS_ORIGINS: List[str] = Field(default=["*"])

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS_ORIGINS from string to list."""
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # JWT settings. Access and refresh tokens are signed with distinct secrets;
    # changing either one invalidates every outstanding token of that class.
    JWT_ACCESS_SECRET_KEY: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    JWT_REFRESH_SECRET_KEY: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Password hashing settings
    PASSWORD_HASH_ROUNDS: int = 12

    # Database settings
    DATABASE_URL: Optional[str] = None
    DATABASE_ECHO: bool = False
    DATABASE_TIMEOUT_SECONDS: float = 5.0

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_url(cls, v: Optional[str]) -> str:
        """Set default SQLite database URL if not provided."""
        if isinstance(v, str) and v:
            return v

        # Default to SQLite database in project root
        base_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
        return f"sqlite:///{os.path.join(base_dir, 'token_lifecycle.db')}"

    # Refresh token ledger settings
    LEDGER_REAP_INTERVAL_SECONDS: int = 300

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
        "validate_default": True,
    }


# Create a global settings instance
settings = Settings()


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """
    Get the application settings.

    Returns:
        Settings: The application settings instance.
    """
    return settings
