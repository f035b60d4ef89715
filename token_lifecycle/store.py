"""
Credential store for the Token Lifecycle service.

The store exclusively owns user identities and their secret hashes. Callers
get ``Identity`` values back and can ask the store to verify a candidate
secret; the hash itself never leaves this module.
"""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from token_lifecycle.database import Database
from token_lifecycle.errors import ConflictError, NotFoundError
from token_lifecycle.models import Identity, User, UserRole
from token_lifecycle.security import PasswordManager

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup."""
    return (email or "").strip().lower()


class CredentialStore:
    """
    Identity lookup and secret verification backed by SQLAlchemy.
    """

    def __init__(self, database: Database, password_manager: Optional[PasswordManager] = None):
        self.database = database
        self.password_manager = password_manager or PasswordManager()

    # PUBLIC_INTERFACE
    def find_by_email(self, email: str) -> Optional[Identity]:
        """Look up an identity by email, ignoring case and surrounding spaces."""
        with self.database.session_scope() as session:
            user = self._query_by_email(session, email)
            return Identity.from_user(user) if user else None

    # PUBLIC_INTERFACE
    def find_by_id(self, user_id: int) -> Optional[Identity]:
        with self.database.session_scope() as session:
            user = session.get(User, user_id)
            return Identity.from_user(user) if user else None

    # PUBLIC_INTERFACE
    def verify_secret(self, identity: Optional[Identity], candidate: str) -> bool:
        """
        Check a candidate secret against the stored hash.

        A missing identity still costs one hash verification and returns
        False, so callers cannot tell "no such user" apart by timing.
        """
        if identity is None:
            return self.password_manager.dummy_verify(candidate)

        with self.database.session_scope() as session:
            user = session.get(User, identity.id)
            if user is None:
                return self.password_manager.dummy_verify(candidate)

            matched = self.password_manager.verify_password(candidate, user.hashed_password)
            if matched and self.password_manager.needs_rehash(user.hashed_password):
                user.hashed_password = self.password_manager.hash_password(candidate)
                logger.info(f"Rehashed secret for user {user.id}")
            return matched

    # PUBLIC_INTERFACE
    def hash_secret(self, secret: str) -> str:
        """Hash a secret ahead of ``create_identity`` or ``set_secret_hash``."""
        return self.password_manager.hash_password(secret)

    # PUBLIC_INTERFACE
    def create_identity(
        self,
        name: str,
        email: str,
        secret_hash: str,
        role: UserRole = UserRole.USER,
        session: Optional[Session] = None,
    ) -> Identity:
        """
        Persist a new identity with an already hashed secret.

        Args:
            session: Open session to write in; the write then commits or
                rolls back with the caller's transaction.

        Raises:
            ConflictError: If the email is already registered.
        """
        email = normalize_email(email)
        try:
            with self.database.session_scope(session) as session:
                if self._query_by_email(session, email) is not None:
                    raise ConflictError()

                user = User(
                    name=name.strip(),
                    email=email,
                    hashed_password=secret_hash,
                    role=role,
                    is_active=True,
                )
                session.add(user)
                session.flush()
                identity = Identity.from_user(user)
        except IntegrityError as e:
            # Lost a race with a concurrent registration of the same email
            logger.info(f"Registration conflict on unique email: {str(e.orig)}")
            raise ConflictError() from e

        logger.info(f"User registered: id={identity.id}")
        return identity

    # PUBLIC_INTERFACE
    def set_secret_hash(self, user_id: int, secret_hash: str) -> None:
        with self.database.session_scope() as session:
            user = self._get_or_raise(session, user_id)
            user.hashed_password = secret_hash

    # PUBLIC_INTERFACE
    def set_active(self, user_id: int, active: bool) -> Identity:
        """Activate or deactivate an identity."""
        with self.database.session_scope() as session:
            user = self._get_or_raise(session, user_id)
            user.is_active = active
            session.flush()
            return Identity.from_user(user)

    # PUBLIC_INTERFACE
    def update_identity(
        self,
        user_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[UserRole] = None,
    ) -> Identity:
        """
        Update profile attributes.

        Raises:
            NotFoundError: If the user does not exist.
            ConflictError: If the new email belongs to another user.
        """
        try:
            with self.database.session_scope() as session:
                user = self._get_or_raise(session, user_id)

                if email is not None:
                    email = normalize_email(email)
                    if email != user.email:
                        other = self._query_by_email(session, email)
                        if other is not None and other.id != user.id:
                            raise ConflictError("Email is already in use")
                        user.email = email
                if name is not None:
                    user.name = name.strip()
                if role is not None:
                    user.role = role

                session.flush()
                return Identity.from_user(user)
        except IntegrityError as e:
            raise ConflictError("Email is already in use") from e

    @staticmethod
    def _query_by_email(session, email: str) -> Optional[User]:
        return session.query(User).filter(func.lower(User.email) == normalize_email(email)).first()

    @staticmethod
    def _get_or_raise(session, user_id: int) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError()
        return user
