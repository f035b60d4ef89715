"""
Tests for the JWT token codec.
"""
from datetime import datetime, timedelta

import jwt
import pytest

from token_lifecycle.config import TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH
from token_lifecycle.models import UserRole
from token_lifecycle.token import (
    SigningError,
    TokenExpiredError,
    TokenInvalidError,
    decode_unverified,
    get_token_expiration,
    issue_access_token,
    issue_refresh_token,
    validate_signing_config,
    verify_token,
)

ACCESS_SECRET = "access-secret-for-codec-tests-0123456789"
REFRESH_SECRET = "refresh-secret-for-codec-tests-0123456789"
NOW = 1_700_000_000.0
CLAIMS = {"sub": 42, "email": "alice@x.com", "role": "admin"}


def test_access_token_round_trip():
    """Test that verifying an issued access token returns its claims."""
    token = issue_access_token(CLAIMS, ACCESS_SECRET, timedelta(minutes=15), now=NOW)

    payload = verify_token(token, ACCESS_SECRET, TOKEN_TYPE_ACCESS, now=NOW + 60)

    assert payload["sub"] == "42"
    assert payload["email"] == "alice@x.com"
    assert payload["role"] == "admin"
    assert payload["type"] == TOKEN_TYPE_ACCESS
    assert payload["iat"] == int(NOW)
    assert payload["exp"] == int(NOW) + 15 * 60


def test_refresh_token_carries_only_subject_and_expiry():
    """Test that refresh tokens hold no profile claims."""
    token = issue_refresh_token(42, REFRESH_SECRET, timedelta(days=7), now=NOW)

    payload = verify_token(token, REFRESH_SECRET, TOKEN_TYPE_REFRESH, now=NOW)

    assert set(payload) == {"sub", "jti", "type", "iat", "exp"}
    assert payload["sub"] == "42"
    assert payload["exp"] == int(NOW) + 7 * 24 * 3600


def test_role_enum_is_encoded_by_value():
    token = issue_access_token({**CLAIMS, "role": UserRole.USER}, ACCESS_SECRET, timedelta(minutes=1), now=NOW)

    assert verify_token(token, ACCESS_SECRET, TOKEN_TYPE_ACCESS, now=NOW)["role"] == "user"


def test_expiry_boundary():
    """Test that a token is valid one instant before expiry and invalid at it."""
    token = issue_access_token(CLAIMS, ACCESS_SECRET, timedelta(seconds=60), now=NOW)
    exp = int(NOW) + 60

    assert verify_token(token, ACCESS_SECRET, TOKEN_TYPE_ACCESS, now=exp - 0.001)["sub"] == "42"

    with pytest.raises(TokenExpiredError):
        verify_token(token, ACCESS_SECRET, TOKEN_TYPE_ACCESS, now=exp)

    with pytest.raises(TokenExpiredError):
        verify_token(token, ACCESS_SECRET, TOKEN_TYPE_ACCESS, now=exp + 3600)


def test_tokens_issued_in_same_second_are_distinct():
    first = issue_refresh_token(42, REFRESH_SECRET, timedelta(days=7), now=NOW)
    second = issue_refresh_token(42, REFRESH_SECRET, timedelta(days=7), now=NOW)

    assert first != second


def test_wrong_secret_is_invalid():
    token = issue_access_token(CLAIMS, ACCESS_SECRET, timedelta(minutes=15), now=NOW)

    with pytest.raises(TokenInvalidError):
        verify_token(token, "some-other-secret-0123456789abcdef", TOKEN_TYPE_ACCESS, now=NOW)


def test_access_token_cannot_be_used_as_refresh_token():
    """Test that distinct secrets and the type claim keep the classes apart."""
    token = issue_access_token(CLAIMS, ACCESS_SECRET, timedelta(minutes=15), now=NOW)

    with pytest.raises(TokenInvalidError):
        verify_token(token, REFRESH_SECRET, TOKEN_TYPE_REFRESH, now=NOW)

    # Even with a shared secret the type claim rejects it
    with pytest.raises(TokenInvalidError, match="Invalid token type"):
        verify_token(token, ACCESS_SECRET, TOKEN_TYPE_REFRESH, now=NOW)


def test_forged_expired_token_reports_invalid_not_expired():
    token = issue_access_token(CLAIMS, "attacker-secret-0123456789abcdef", timedelta(seconds=1), now=NOW)

    with pytest.raises(TokenInvalidError):
        verify_token(token, ACCESS_SECRET, TOKEN_TYPE_ACCESS, now=NOW + 3600)


def test_tampered_token_is_invalid():
    token = issue_access_token(CLAIMS, ACCESS_SECRET, timedelta(minutes=15), now=NOW)
    header, payload, signature = token.split(".")
    tampered = ".".join([header, payload, signature[:-2] + ("AA" if signature[-2:] != "AA" else "BB")])

    with pytest.raises(TokenInvalidError):
        verify_token(tampered, ACCESS_SECRET, TOKEN_TYPE_ACCESS, now=NOW)


@pytest.mark.parametrize("token", ["", None, "not-a-jwt", "a.b.c"])
def test_malformed_tokens_are_invalid(token):
    with pytest.raises(TokenInvalidError):
        verify_token(token, ACCESS_SECRET, TOKEN_TYPE_ACCESS, now=NOW)


def test_missing_required_claim_is_invalid():
    token = jwt.encode(
        {"sub": "42", "type": TOKEN_TYPE_REFRESH, "iat": int(NOW), "exp": int(NOW) + 60},
        REFRESH_SECRET,
        algorithm="HS256",
    )

    with pytest.raises(TokenInvalidError, match="jti"):
        verify_token(token, REFRESH_SECRET, TOKEN_TYPE_REFRESH, now=NOW)


def test_missing_secret_raises_signing_error():
    with pytest.raises(SigningError):
        issue_access_token(CLAIMS, "", timedelta(minutes=15), now=NOW)

    with pytest.raises(SigningError):
        issue_refresh_token(42, None, timedelta(days=7), now=NOW)


def test_access_token_requires_profile_claims():
    with pytest.raises(ValueError):
        issue_access_token({"sub": 42, "email": "alice@x.com"}, ACCESS_SECRET, timedelta(minutes=15))


def test_get_token_expiration_and_unverified_decode():
    token = issue_refresh_token(42, REFRESH_SECRET, timedelta(days=7), now=NOW)

    assert get_token_expiration(token) == datetime(2023, 11, 21, 22, 13, 20)
    assert decode_unverified(token)["sub"] == "42"


@pytest.mark.parametrize(
    "access, refresh",
    [("", "refresh"), ("access", ""), ("same-secret", "same-secret")],
)
def test_validate_signing_config_rejects_bad_secrets(access, refresh):
    with pytest.raises(SigningError):
        validate_signing_config(access, refresh)


def test_validate_signing_config_accepts_distinct_secrets():
    validate_signing_config(ACCESS_SECRET, REFRESH_SECRET)
