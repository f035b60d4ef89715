"""
Refresh token ledger for the Token Lifecycle service.

The ledger persists every refresh token that is still honoured. A token
whose record is gone (logout, rotation, revoke-all) or whose record has
passed ``expires_at`` is treated as absent, even before the reaper has
physically removed the row.

Rotation is a compare-and-delete followed by an insert inside one
transaction: the old record must still be there for the delete to match,
and a delete that matches zero rows aborts the rotation.
"""
import datetime
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from sqlalchemy.orm import Session

from token_lifecycle.database import Database
from token_lifecycle.errors import UnavailableError
from token_lifecycle.models import LedgerRecord, RefreshToken, utcnow
from token_lifecycle.security import generate_secure_token

logger = logging.getLogger(__name__)


class _KeyedLocks:
    """
    Registry of mutexes keyed by token value.

    Entries are dropped once no thread holds or waits on them, so the
    registry only ever holds tokens that are being rotated right now.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, list] = {}

    @contextmanager
    def hold(self, key: str, timeout: float) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        acquired = entry[0].acquire(timeout=timeout)
        try:
            if not acquired:
                raise UnavailableError()
            yield
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class RefreshTokenLedger:
    """
    Persisted set of currently valid refresh tokens.
    """

    def __init__(
        self,
        database: Database,
        timeout_seconds: Optional[float] = None,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ):
        """
        Args:
            database: Database holding the ``refresh_tokens`` table.
            timeout_seconds: Bound on waiting for a per-token rotation lock.
                Defaults to the database timeout.
            clock: Returns the current naive UTC datetime. Defaults to ``utcnow``.
        """
        self.database = database
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else database.timeout_seconds
        self.clock = clock or utcnow
        self._locks = _KeyedLocks()

    # PUBLIC_INTERFACE
    def persist(
        self,
        owner_id: int,
        token: str,
        expires_at: datetime.datetime,
        family_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> LedgerRecord:
        """
        Insert a record for a freshly issued refresh token.

        Args:
            owner_id: User the token belongs to.
            token: Refresh token value.
            expires_at: Naive UTC expiry of the token.
            family_id: Session lineage; a new one is started if omitted.
            session: Open session to write in, joining the caller's transaction.
        """
        with self.database.session_scope(session) as session:
            row = RefreshToken(
                user_id=owner_id,
                token=token,
                family_id=family_id or generate_secure_token(),
                expires_at=expires_at,
                created_at=self.clock(),
            )
            session.add(row)
            session.flush()
            return LedgerRecord.from_row(row)

    # PUBLIC_INTERFACE
    def find_active(self, owner_id: int, token: str) -> Optional[LedgerRecord]:
        """Return the unexpired record for this owner and token, if any."""
        with self.database.session_scope() as session:
            row = session.query(RefreshToken).filter(
                RefreshToken.user_id == owner_id,
                RefreshToken.token == token,
                RefreshToken.expires_at > self.clock(),
            ).first()
            return LedgerRecord.from_row(row) if row else None

    # PUBLIC_INTERFACE
    def revoke(self, token: str) -> int:
        """
        Delete the record for a token value.

        Idempotent: revoking an unknown or already revoked token returns 0.

        Returns:
            Number of records deleted.
        """
        with self.database.session_scope() as session:
            deleted = session.query(RefreshToken).filter(
                RefreshToken.token == token
            ).delete(synchronize_session=False)
        return deleted

    # PUBLIC_INTERFACE
    def revoke_all(self, owner_id: int) -> int:
        """
        Delete every record belonging to a user (logout everywhere).

        Returns:
            Number of records deleted.
        """
        with self.database.session_scope() as session:
            deleted = session.query(RefreshToken).filter(
                RefreshToken.user_id == owner_id
            ).delete(synchronize_session=False)
        logger.info(f"Revoked {deleted} refresh tokens for user {owner_id}")
        return deleted

    # PUBLIC_INTERFACE
    def rotate(
        self,
        owner_id: int,
        old_token: str,
        new_token: str,
        new_expires_at: datetime.datetime,
        family_id: Optional[str] = None,
    ) -> Optional[LedgerRecord]:
        """
        Atomically replace one refresh token with another.

        The old record is deleted only if it still exists and has not
        expired. If the delete matches nothing, the token was already
        rotated, revoked or reaped; the transaction is rolled back and no
        new record is installed. At most one rotation per token value can
        succeed.

        Args:
            owner_id: User both tokens belong to.
            old_token: Token value being consumed.
            new_token: Replacement token value.
            new_expires_at: Naive UTC expiry of the replacement.
            family_id: Lineage carried over from the old record.

        Returns:
            The new record, or None if the old token was no longer active.
        """
        with self._locks.hold(old_token, self.timeout_seconds):
            with self.database.session_scope() as session:
                now = self.clock()
                # The write comes first so the transaction never has to
                # upgrade a read lock
                deleted = session.query(RefreshToken).filter(
                    RefreshToken.user_id == owner_id,
                    RefreshToken.token == old_token,
                    RefreshToken.expires_at > now,
                ).delete(synchronize_session=False)

                if deleted == 0:
                    session.rollback()
                    return None

                row = RefreshToken(
                    user_id=owner_id,
                    token=new_token,
                    family_id=family_id or generate_secure_token(),
                    expires_at=new_expires_at,
                    created_at=now,
                )
                session.add(row)
                session.flush()
                return LedgerRecord.from_row(row)

    # PUBLIC_INTERFACE
    def reap_expired(self) -> int:
        """
        Physically delete expired records.

        Returns:
            Number of records removed.
        """
        with self.database.session_scope() as session:
            deleted = session.query(RefreshToken).filter(
                RefreshToken.expires_at <= self.clock()
            ).delete(synchronize_session=False)
        if deleted:
            logger.info(f"Reaped {deleted} expired refresh tokens")
        return deleted

    # PUBLIC_INTERFACE
    def count_active(self, owner_id: int) -> int:
        """Number of unexpired sessions a user currently holds."""
        with self.database.session_scope() as session:
            return session.query(RefreshToken).filter(
                RefreshToken.user_id == owner_id,
                RefreshToken.expires_at > self.clock(),
            ).count()
