"""
Security utilities for the Token Lifecycle service.

This module provides password hashing and verification on top of passlib's
bcrypt context, and secure random identifiers.
"""
import logging
import secrets
from typing import Optional

from passlib.context import CryptContext

from token_lifecycle.config import settings

# Configure logging
logger = logging.getLogger(__name__)


class PasswordManager:
    """
    Password management utilities.

    Provides functionality for hashing and verifying passwords. The plain
    password is only ever seen by ``hash_password`` and ``verify_password``.
    """

    def __init__(self, rounds: Optional[int] = None):
        """
        Initialize the password manager.

        Args:
            rounds: bcrypt cost factor. Defaults to ``PASSWORD_HASH_ROUNDS``.
        """
        self.rounds = rounds or settings.PASSWORD_HASH_ROUNDS
        self.context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=self.rounds,
        )
        # Verified against when the user does not exist so that an unknown
        # email costs the same as a wrong password.
        self._dummy_hash = self.context.hash(secrets.token_urlsafe(16))

    # PUBLIC_INTERFACE
    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password to hash.

        Returns:
            Hashed password string.
        """
        return self.context.hash(password)

    # PUBLIC_INTERFACE
    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against a hash.

        Args:
            plain_password: Plain text password to verify.
            hashed_password: Hashed password to compare against.

        Returns:
            True if the password matches the hash, False otherwise.
        """
        if not plain_password or not hashed_password:
            return False
        try:
            return self.context.verify(plain_password, hashed_password)
        except ValueError as e:
            # Malformed or unknown hash format stored for this user
            logger.error(f"Password hash could not be verified: {str(e)}")
            return False

    # PUBLIC_INTERFACE
    def dummy_verify(self, plain_password: str) -> bool:
        """Burn one verification against a throwaway hash. Always False."""
        try:
            self.context.verify(plain_password or "", self._dummy_hash)
        except ValueError:
            # Oversized secrets fail here as they do in verify_password
            pass
        return False

    # PUBLIC_INTERFACE
    def needs_rehash(self, hashed_password: str) -> bool:
        """
        Check if a password hash needs to be updated.

        This is useful when the hashing algorithm or parameters have changed.

        Args:
            hashed_password: Hashed password to check.

        Returns:
            True if the password should be rehashed, False otherwise.
        """
        return self.context.needs_update(hashed_password)


# PUBLIC_INTERFACE
def generate_secure_token(length: int = 16) -> str:
    """
    Generate a secure random token.

    Args:
        length: Length of the token in bytes.

    Returns:
        Secure random token as a hexadecimal string.
    """
    return secrets.token_hex(length)
