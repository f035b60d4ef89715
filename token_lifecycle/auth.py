"""
Authentication functionality for the Token Lifecycle service.

This module orchestrates registration, login, refresh-token rotation and
logout on top of the credential store, the token codec and the refresh
token ledger.

Every refresh token is a single-use capability and moves through::

    ISSUED -> ACTIVE -> ROTATED | REVOKED | EXPIRED

``ROTATED`` ends the old token and issues a new one in the same session
family. The service never reports partial success: a refresh either
returns a fresh token pair whose refresh token is already in the ledger, or
raises and leaves the ledger as it was.
"""
import enum
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from token_lifecycle.config import (TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH,
                                    Settings, get_settings, get_signing_secret,
                                    get_token_expiry)
from token_lifecycle.database import Database
from token_lifecycle.errors import (ForbiddenError, NotFoundError,
                                    UnauthorizedError, UnavailableError)
from token_lifecycle.ledger import RefreshTokenLedger
from token_lifecycle.models import Identity, UserRole
from token_lifecycle.security import PasswordManager
from token_lifecycle.store import CredentialStore
from token_lifecycle.token import (TokenError, TokenExpiredError,
                                   issue_access_token, issue_refresh_token,
                                   timestamp_to_datetime,
                                   validate_signing_config, verify_token)

# Configure logging
logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH_TOKEN = "Invalid or expired refresh token"
REVOKED_REFRESH_TOKEN = "Refresh token revoked or unknown"
ACCOUNT_DEACTIVATED = "Account is deactivated"


class SessionState(enum.Enum):
    """Lifecycle states of a single refresh token."""
    ISSUED = "issued"
    ACTIVE = "active"
    ROTATED = "rotated"
    REVOKED = "revoked"
    EXPIRED = "expired"


@dataclass(frozen=True)
class TokenPair:
    """Access and refresh token handed to the client together."""
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    token_type: str = "bearer"


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful registration or login."""
    identity: Identity
    tokens: TokenPair

    @property
    def access_token(self) -> str:
        return self.tokens.access_token

    @property
    def refresh_token(self) -> str:
        return self.tokens.refresh_token


class AuthenticationService:
    """
    Authentication service for registration, login, refresh and logout.
    """

    def __init__(
        self,
        store: CredentialStore,
        ledger: RefreshTokenLedger,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the authentication service.

        Args:
            store: Credential store owning identities and secrets.
            ledger: Refresh token ledger.
            settings: Signing secrets and lifetimes. Defaults to global settings.
            clock: Returns the current time as epoch seconds.

        Raises:
            SigningError: If the signing secrets are misconfigured.
        """
        self.store = store
        self.ledger = ledger
        self.settings = settings or get_settings()
        self.clock = clock or time.time

        self.access_secret = get_signing_secret(TOKEN_TYPE_ACCESS, self.settings)
        self.refresh_secret = get_signing_secret(TOKEN_TYPE_REFRESH, self.settings)
        validate_signing_config(self.access_secret, self.refresh_secret)

        self.access_ttl: timedelta = get_token_expiry(TOKEN_TYPE_ACCESS, self.settings)
        self.refresh_ttl: timedelta = get_token_expiry(TOKEN_TYPE_REFRESH, self.settings)

    # PUBLIC_INTERFACE
    def register(self, name: str, email: str, secret: str) -> AuthResult:
        """
        Register a new user and sign them in.

        The secret is hashed here, before the identity is persisted. The
        identity and its first ledger record commit in one transaction, so a
        failed registration leaves nothing behind and can simply be retried.

        Raises:
            ConflictError: If the email is already registered.
            UnavailableError: If storage cannot be reached in time.
        """
        secret_hash = self.store.hash_secret(secret)
        with self.store.database.session_scope() as session:
            identity = self.store.create_identity(name, email, secret_hash, UserRole.USER, session=session)
            tokens = self._issue_session(identity, session=session)
        return AuthResult(identity=identity, tokens=tokens)

    # PUBLIC_INTERFACE
    def login(self, email: str, secret: str) -> AuthResult:
        """
        Authenticate with email and secret and start a new session.

        Existing sessions of the user are left untouched.

        Raises:
            UnauthorizedError: If the email is unknown or the secret is wrong.
                Both cases produce the same message.
            ForbiddenError: If the account is deactivated.
        """
        identity = self.store.find_by_email(email)
        # verify_secret also runs, and fails, for an unknown email
        if not self.store.verify_secret(identity, secret):
            logger.warning("Login rejected: invalid credentials")
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if not identity.is_active:
            logger.warning(f"Login rejected: user {identity.id} is deactivated")
            raise ForbiddenError(ACCOUNT_DEACTIVATED)

        tokens = self._issue_session(identity)
        logger.info(f"User {identity.id} logged in")
        return AuthResult(identity=identity, tokens=tokens)

    # PUBLIC_INTERFACE
    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new token pair, consuming it.

        Raises:
            UnauthorizedError: If the token is invalid, expired, revoked,
                already rotated, or its user no longer exists.
            ForbiddenError: If the user is deactivated.
            UnavailableError: If the ledger cannot be reached in time.
        """
        # 1. Signature and expiry
        try:
            claims = verify_token(
                refresh_token,
                self.refresh_secret,
                TOKEN_TYPE_REFRESH,
                now=self.clock(),
                algorithm=self.settings.JWT_ALGORITHM,
            )
        except TokenExpiredError:
            logger.info(f"Refresh rejected: token {SessionState.EXPIRED.value}")
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)
        except TokenError as e:
            logger.warning(f"Refresh rejected: {str(e)}")
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        # 2. Owner still exists and is active
        try:
            user_id = int(claims["sub"])
        except (TypeError, ValueError):
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        identity = self.store.find_by_id(user_id)
        if identity is None:
            logger.warning(f"Refresh rejected: user {user_id} not found")
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)
        if not identity.is_active:
            logger.warning(f"Refresh rejected: user {user_id} is deactivated")
            raise ForbiddenError(ACCOUNT_DEACTIVATED)

        # 3. Still in the ledger (not logged out, not already rotated)
        record = self.ledger.find_active(user_id, refresh_token)
        if record is None:
            logger.warning(f"Refresh rejected: token {claims['jti']} revoked or unknown for user {user_id}")
            raise UnauthorizedError(REVOKED_REFRESH_TOKEN)

        # 4. Compare-and-delete the old record, install the new one.
        # 5. Both tokens are minted up front; signing has no side effects, so
        # nothing is handed out unless the swap commits.
        tokens = self._mint_pair(identity)
        rotated = self.ledger.rotate(
            user_id,
            refresh_token,
            tokens.refresh_token,
            tokens.refresh_expires_at,
            family_id=record.family_id,
        )
        if rotated is None:
            logger.warning(f"Refresh rejected: token {claims['jti']} was consumed concurrently")
            raise UnauthorizedError(REVOKED_REFRESH_TOKEN)

        logger.info(f"Refresh token of user {user_id} {SessionState.ROTATED.value} (family {record.family_id})")
        return tokens

    # PUBLIC_INTERFACE
    def logout(self, refresh_token: str) -> None:
        """
        End the session of one refresh token.

        Never fails: unknown, expired, malformed and already revoked tokens
        are accepted silently, and a storage outage is only logged.
        """
        if not refresh_token:
            return
        try:
            revoked = self.ledger.revoke(refresh_token)
        except UnavailableError:
            logger.error("Logout could not reach the refresh token ledger", exc_info=True)
            return
        logger.info(f"Logout: {revoked} refresh token(s) {SessionState.REVOKED.value}")

    # PUBLIC_INTERFACE
    def logout_all(self, user_id: int) -> int:
        """
        Revoke every session of a user.

        Returns:
            Number of refresh tokens revoked.
        """
        return self.ledger.revoke_all(user_id)

    # PUBLIC_INTERFACE
    def get_identity(self, user_id: int) -> Identity:
        """
        Raises:
            NotFoundError: If the user does not exist.
        """
        identity = self.store.find_by_id(user_id)
        if identity is None:
            raise NotFoundError()
        return identity

    # PUBLIC_INTERFACE
    def deactivate_user(self, user_id: int) -> Identity:
        """
        Deactivate an account and revoke all of its sessions.

        Outstanding access tokens stay valid until they expire; every later
        login or refresh fails with ``ForbiddenError``.
        """
        identity = self.store.set_active(user_id, False)
        revoked = self.ledger.revoke_all(user_id)
        logger.info(f"User {user_id} deactivated, {revoked} session(s) revoked")
        return identity

    # PUBLIC_INTERFACE
    def activate_user(self, user_id: int) -> Identity:
        identity = self.store.set_active(user_id, True)
        logger.info(f"User {user_id} activated")
        return identity

    # PUBLIC_INTERFACE
    def change_secret(self, user_id: int, current_secret: str, new_secret: str) -> int:
        """
        Replace a user's secret after checking the current one.

        All sessions are revoked so stolen refresh tokens die with the old
        secret.

        Returns:
            Number of refresh tokens revoked.

        Raises:
            NotFoundError: If the user does not exist.
            UnauthorizedError: If ``current_secret`` is wrong.
        """
        identity = self.get_identity(user_id)
        if not self.store.verify_secret(identity, current_secret):
            logger.warning(f"Secret change rejected for user {user_id}")
            raise UnauthorizedError("Current password is incorrect")

        self.store.set_secret_hash(user_id, self.store.hash_secret(new_secret))
        revoked = self.ledger.revoke_all(user_id)
        logger.info(f"Secret changed for user {user_id}, {revoked} session(s) revoked")
        return revoked

    # PUBLIC_INTERFACE
    def update_profile(
        self,
        user_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[UserRole] = None,
    ) -> Identity:
        """
        Update profile attributes of a user.

        A role change revokes all sessions so that no refresh can mint
        access tokens carrying the old role.

        Raises:
            NotFoundError: If the user does not exist.
            ConflictError: If the email belongs to another user.
        """
        before = self.get_identity(user_id)
        identity = self.store.update_identity(user_id, name=name, email=email, role=role)
        if role is not None and role != before.role:
            revoked = self.ledger.revoke_all(user_id)
            logger.info(f"Role of user {user_id} changed to {role.value}, {revoked} session(s) revoked")
        return identity

    def _mint_pair(self, identity: Identity) -> TokenPair:
        now = self.clock()
        access_token = issue_access_token(
            {"sub": identity.id, "email": identity.email, "role": identity.role.value},
            self.access_secret,
            self.access_ttl,
            now=now,
            algorithm=self.settings.JWT_ALGORITHM,
        )
        refresh_token = issue_refresh_token(
            identity.id,
            self.refresh_secret,
            self.refresh_ttl,
            now=now,
            algorithm=self.settings.JWT_ALGORITHM,
        )
        issued_at = int(now)
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            access_expires_at=timestamp_to_datetime(issued_at + int(self.access_ttl.total_seconds())),
            refresh_expires_at=timestamp_to_datetime(issued_at + int(self.refresh_ttl.total_seconds())),
        )

    def _issue_session(self, identity: Identity, session: Optional[Session] = None) -> TokenPair:
        tokens = self._mint_pair(identity)
        self.ledger.persist(identity.id, tokens.refresh_token, tokens.refresh_expires_at, session=session)
        logger.info(f"Session {SessionState.ISSUED.value} for user {identity.id}")
        return tokens


# PUBLIC_INTERFACE
def build_auth_service(
    database: Database,
    settings: Optional[Settings] = None,
    clock: Optional[Callable[[], float]] = None,
) -> AuthenticationService:
    """
    Wire an authentication service with its store and ledger on one database.

    The ledger reads the same clock as the service so that token expiry and
    ledger expiry never disagree.
    """
    settings = settings or get_settings()
    clock = clock or time.time
    store = CredentialStore(database, PasswordManager(rounds=settings.PASSWORD_HASH_ROUNDS))
    ledger = RefreshTokenLedger(
        database,
        timeout_seconds=settings.DATABASE_TIMEOUT_SECONDS,
        clock=lambda: timestamp_to_datetime(clock()),
    )
    return AuthenticationService(store, ledger, settings=settings, clock=clock)
