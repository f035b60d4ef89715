"""
SQLAlchemy models for the Token Lifecycle service.

This module defines the data models for users and persisted refresh tokens,
plus the detached value objects handed out across component boundaries.
"""
import datetime
import enum
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import (Boolean, Column, DateTime, Enum, ForeignKey, Integer,
                        String)
from sqlalchemy.orm import relationship

from token_lifecycle.database import Base


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the representation used by every DateTime column."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class UserRole(enum.Enum):
    """User role enumeration."""
    USER = "user"
    ADMIN = "admin"


class User(Base):
    """
    User model for authentication.

    Stores identity attributes and the secret hash. Emails are stored
    trimmed and lower-cased so the unique index is case-insensitive.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String(254), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """String representation of the User object."""
        return f"<User(id={self.id}, email={self.email}, role={self.role.value if self.role else None})>"


class RefreshToken(Base):
    """
    Ledger record for an issued refresh token.

    A refresh token is only honoured while a record with the same owner and
    token value exists and has not passed ``expires_at``.
    """
    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(512), nullable=False, index=True)
    family_id = Column(String(32), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="refresh_tokens")

    def __repr__(self) -> str:
        """String representation of the RefreshToken object."""
        return f"<RefreshToken(id={self.id}, user_id={self.user_id}, family={self.family_id})>"


@dataclass(frozen=True)
class Identity:
    """Read-only view of a user. Carries no secret material."""
    id: int
    name: str
    email: str
    role: UserRole
    is_active: bool
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


@dataclass(frozen=True)
class LedgerRecord:
    """Read-only view of a persisted refresh token record."""
    id: int
    owner_id: int
    token: str
    family_id: str
    expires_at: datetime.datetime
    created_at: datetime.datetime

    @classmethod
    def from_row(cls, row: RefreshToken) -> "LedgerRecord":
        return cls(
            id=row.id,
            owner_id=row.user_id,
            token=row.token,
            family_id=row.family_id,
            expires_at=row.expires_at,
            created_at=row.created_at,
        )
