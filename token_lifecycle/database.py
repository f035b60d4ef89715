"""
Database configuration and session management for the Token Lifecycle service.

This module provides SQLAlchemy setup, session management, database
initialization, and the translation of transient storage failures into
``UnavailableError``.
"""
import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from token_lifecycle.config import settings
from token_lifecycle.errors import UnavailableError

logger = logging.getLogger(__name__)

# Create SQLAlchemy base class for models
Base = declarative_base()


# Configure SQLite to enforce foreign key constraints
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key constraints for SQLite."""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Database connection and session management."""

    def __init__(
        self,
        db_url: Optional[str] = None,
        echo: Optional[bool] = None,
        timeout_seconds: Optional[float] = None,
        **engine_kwargs: Any,
    ):
        """
        Initialize the database connection.

        Args:
            db_url: Database URL. If None, uses the URL from settings.
            echo: Whether to log SQL statements. If None, uses settings.
            timeout_seconds: Upper bound for lock waits and connection checkout.
            **engine_kwargs: Extra keyword arguments for ``create_engine``
                (e.g. ``poolclass`` for in-memory test databases).
        """
        if db_url is None:
            db_url = settings.DATABASE_URL
        if echo is None:
            echo = settings.DATABASE_ECHO
        if timeout_seconds is None:
            timeout_seconds = settings.DATABASE_TIMEOUT_SECONDS

        self.timeout_seconds = timeout_seconds

        connect_args = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            # Busy timeout: how long a writer waits on a locked database
            connect_args["timeout"] = timeout_seconds
        elif "poolclass" not in engine_kwargs:
            engine_kwargs.setdefault("pool_timeout", timeout_seconds)
            engine_kwargs.setdefault("pool_pre_ping", True)

        self.engine = create_engine(
            db_url,
            connect_args=connect_args,
            echo=echo,
            **engine_kwargs
        )
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    def create_all(self) -> None:
        """Create all tables defined in the models."""
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        """Drop all tables. Use with caution, primarily for testing."""
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        """Release every pooled connection."""
        self.engine.dispose()

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            A new SQLAlchemy session.
        """
        return self.SessionLocal()

    @contextmanager
    def session_scope(self, session: Optional[Session] = None) -> Generator[Session, Any, None]:
        """
        Context manager for database sessions.

        Provides automatic commit/rollback and session closing. Transient
        storage failures (lock timeouts, pool exhaustion, dropped
        connections) are re-raised as ``UnavailableError``.

        Args:
            session: An already open session to join. Its owner commits,
                rolls back and closes it.

        Yields:
            An active SQLAlchemy session.
        """
        if session is not None:
            yield session
            return

        session = self.get_session()
        try:
            yield session
            session.commit()
        except (OperationalError, PoolTimeoutError) as e:
            session.rollback()
            logger.warning(f"Storage unavailable: {e.__class__.__name__}: {str(e)}")
            raise UnavailableError() from e
        except DBAPIError as e:
            session.rollback()
            if e.connection_invalidated:
                logger.warning(f"Storage connection lost: {str(e)}")
                raise UnavailableError() from e
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# Default database instance, created lazily by init_db or get_database
db: Optional[Database] = None


# PUBLIC_INTERFACE
def init_db(db_url: Optional[str] = None, **engine_kwargs: Any) -> Database:
    """
    Initialize the database with all required tables.

    Args:
        db_url: Optional database URL. If None, uses the URL from settings.
        **engine_kwargs: Extra keyword arguments passed to ``Database``.

    Returns:
        The initialized default database.
    """
    global db
    db = Database(db_url, **engine_kwargs)
    db.create_all()
    return db


# PUBLIC_INTERFACE
def get_database() -> Database:
    """Return the default database, initializing it from settings if needed."""
    if db is None:
        return init_db()
    return db

