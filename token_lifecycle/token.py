"""
JWT token codec for the Token Lifecycle service.

This module encodes and verifies signed, expiring access and refresh tokens.
It performs no I/O: whether a refresh token has been revoked is the Refresh
Token Ledger's concern, not the codec's.

Expiry is an absolute epoch timestamp fixed at issuance (``now + ttl``) and
is compared against the verification time with no grace window.
"""
import datetime
import logging
import time
import uuid
from typing import Any, Dict, Mapping, Optional

import jwt
from jwt.exceptions import InvalidTokenError, PyJWTError

from token_lifecycle.config.jwt_config import TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH
from token_lifecycle.config.settings import settings

# Configure logger
logger = logging.getLogger(__name__)

ACCESS_CLAIMS = ("sub", "email", "role")
REQUIRED_CLAIMS = {
    TOKEN_TYPE_ACCESS: ("sub", "jti", "type", "iat", "exp", "email", "role"),
    TOKEN_TYPE_REFRESH: ("sub", "jti", "type", "iat", "exp"),
}


class TokenError(Exception):
    """Base exception for token-related errors."""
    pass


class TokenExpiredError(TokenError):
    """Exception raised when a token has expired."""
    pass


class TokenInvalidError(TokenError):
    """Exception raised when a token is malformed, wrongly signed or of the wrong class."""
    pass


class SigningError(TokenError):
    """Exception raised when tokens cannot be signed because of misconfiguration."""
    pass


def _now(now: Optional[float]) -> float:
    return time.time() if now is None else now


def _encode(payload: Dict[str, Any], secret: str, algorithm: str) -> str:
    if not secret:
        raise SigningError("Signing secret is not configured")
    try:
        return jwt.encode(payload, secret, algorithm=algorithm)
    except (PyJWTError, TypeError, ValueError) as e:
        raise SigningError(f"Unable to sign token: {str(e)}") from e


def _base_claims(subject_id: Any, token_type: str, ttl: datetime.timedelta, now: float) -> Dict[str, Any]:
    issued_at = int(now)
    return {
        "sub": str(subject_id),
        "jti": uuid.uuid4().hex,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + int(ttl.total_seconds()),
    }


# PUBLIC_INTERFACE
def issue_access_token(
    claims: Mapping[str, Any],
    secret: str,
    ttl: datetime.timedelta,
    now: Optional[float] = None,
    algorithm: Optional[str] = None,
) -> str:
    """
    Create a signed access token.

    Args:
        claims: Subject claims; must provide ``sub``, ``email`` and ``role``.
        secret: Access token signing secret.
        ttl: Lifetime of the token.
        now: Issuance time as epoch seconds. Defaults to the current time.
        algorithm: JWT algorithm. Defaults to ``JWT_ALGORITHM``.

    Returns:
        JWT access token string.

    Raises:
        SigningError: If the secret is missing or the claims cannot be signed.
    """
    missing = [name for name in ACCESS_CLAIMS if claims.get(name) in (None, "")]
    if missing:
        raise ValueError(f"Access token claims missing: {', '.join(missing)}")

    payload = _base_claims(claims["sub"], TOKEN_TYPE_ACCESS, ttl, _now(now))
    payload["email"] = claims["email"]
    payload["role"] = getattr(claims["role"], "value", claims["role"])
    return _encode(payload, secret, algorithm or settings.JWT_ALGORITHM)


# PUBLIC_INTERFACE
def issue_refresh_token(
    subject_id: Any,
    secret: str,
    ttl: datetime.timedelta,
    now: Optional[float] = None,
    algorithm: Optional[str] = None,
) -> str:
    """
    Create a signed refresh token carrying only the subject and its expiry.

    Args:
        subject_id: User ID the token is issued to.
        secret: Refresh token signing secret.
        ttl: Lifetime of the token.
        now: Issuance time as epoch seconds. Defaults to the current time.
        algorithm: JWT algorithm. Defaults to ``JWT_ALGORITHM``.

    Returns:
        JWT refresh token string.

    Raises:
        SigningError: If the secret is missing.
    """
    if subject_id in (None, ""):
        raise ValueError("Refresh token subject cannot be empty")
    payload = _base_claims(subject_id, TOKEN_TYPE_REFRESH, ttl, _now(now))
    return _encode(payload, secret, algorithm or settings.JWT_ALGORITHM)


# PUBLIC_INTERFACE
def verify_token(
    token: str,
    secret: str,
    expected_type: str,
    now: Optional[float] = None,
    algorithm: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Verify a token's signature, class and expiry and return its claims.

    The signature is checked before the expiry, so a forged token is always
    reported as invalid rather than expired.

    Args:
        token: JWT token string.
        secret: Signing secret of the expected token class.
        expected_type: ``access`` or ``refresh``.
        now: Verification time as epoch seconds. Defaults to the current time.
        algorithm: JWT algorithm. Defaults to ``JWT_ALGORITHM``.

    Returns:
        Dictionary containing the decoded token claims.

    Raises:
        TokenInvalidError: If the token is malformed, wrongly signed, lacks
            required claims, or belongs to another token class.
        TokenExpiredError: If ``now`` is at or past the token's expiry.
    """
    if not token or not isinstance(token, str):
        raise TokenInvalidError("Token cannot be empty")
    if expected_type not in REQUIRED_CLAIMS:
        raise ValueError(f"Invalid token type: {expected_type}")

    try:
        # Expiry is checked below against the caller's clock
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm or settings.JWT_ALGORITHM],
            options={"verify_exp": False, "verify_iat": False},
        )
    except InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {str(e)}") from e

    for claim in REQUIRED_CLAIMS[expected_type]:
        if claim not in payload:
            raise TokenInvalidError(f"Token does not contain required claim: {claim}")

    if payload["type"] != expected_type:
        raise TokenInvalidError(f"Invalid token type. Expected {expected_type}, got {payload['type']}")

    exp = payload["exp"]
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        raise TokenInvalidError("Invalid expiration timestamp")
    if _now(now) >= exp:
        raise TokenExpiredError("Token has expired")

    return payload


# PUBLIC_INTERFACE
def decode_unverified(token: str) -> Dict[str, Any]:
    """
    Read a token's claims without verifying anything.

    Only for diagnostics and logging; never base an access decision on it.

    Raises:
        TokenInvalidError: If the token cannot be parsed at all.
    """
    if not token:
        raise TokenInvalidError("Token cannot be empty")
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token format: {str(e)}") from e


# PUBLIC_INTERFACE
def get_token_expiration(token: str) -> datetime.datetime:
    """
    Get the expiration time of a token as a naive UTC datetime.

    Raises:
        TokenInvalidError: If the token is unreadable or has no expiry.
    """
    exp = decode_unverified(token).get("exp")
    if not isinstance(exp, (int, float)):
        raise TokenInvalidError("Token does not contain a valid expiration")
    return timestamp_to_datetime(exp)


def timestamp_to_datetime(timestamp: float) -> datetime.datetime:
    """Convert epoch seconds to the naive UTC datetimes stored in the database."""
    return datetime.datetime.fromtimestamp(timestamp, datetime.timezone.utc).replace(tzinfo=None)


# PUBLIC_INTERFACE
def validate_signing_config(access_secret: str, refresh_secret: str) -> None:
    """
    Check the signing secrets at startup.

    Raises:
        SigningError: If either secret is empty or both are the same, which
            would let an access token pass as a refresh token signature.
    """
    if not access_secret:
        raise SigningError("JWT_ACCESS_SECRET_KEY must be set")
    if not refresh_secret:
        raise SigningError("JWT_REFRESH_SECRET_KEY must be set")
    if access_secret == refresh_secret:
        raise SigningError("Access and refresh tokens must use distinct signing secrets")
    logger.debug("Signing configuration validated")
