"""
Token Lifecycle service.

This package provides credential issuance and session lifecycle management:
- Credential store with bcrypt-hashed secrets
- Signed, expiring access and refresh tokens (JWT)
- A refresh token ledger with single-use rotation and revocation
- Role-based access control for API routes
"""

__version__ = "0.1.0"

# Export config constants first to avoid circular imports
from token_lifecycle.config import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
)

# Export errors and database next as they're needed by everything else
from token_lifecycle.errors import (
    AuthError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    UnavailableError,
)
from token_lifecycle.database import (
    Base,
    Database,
    init_db,
    get_database,
)

# Export models
from token_lifecycle.models import (
    Identity,
    LedgerRecord,
    RefreshToken,
    User,
    UserRole,
)

# Export token codec
from token_lifecycle.token import (
    issue_access_token,
    issue_refresh_token,
    verify_token,
    decode_unverified,
    get_token_expiration,
    validate_signing_config,
    TokenError,
    TokenExpiredError,
    TokenInvalidError,
    SigningError,
)

# Export components last as they depend on the above modules
from token_lifecycle.store import CredentialStore
from token_lifecycle.ledger import RefreshTokenLedger
from token_lifecycle.auth import (
    AuthenticationService,
    AuthResult,
    SessionState,
    TokenPair,
    build_auth_service,
)
from token_lifecycle.gate import AccessGate

__all__ = [
    # Models
    "Identity",
    "LedgerRecord",
    "RefreshToken",
    "User",
    "UserRole",

    # Database
    "Base",
    "Database",
    "init_db",
    "get_database",

    # Errors
    "AuthError",
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "UnauthorizedError",
    "UnavailableError",

    # Token codec
    "issue_access_token",
    "issue_refresh_token",
    "verify_token",
    "decode_unverified",
    "get_token_expiration",
    "validate_signing_config",
    "TokenError",
    "TokenExpiredError",
    "TokenInvalidError",
    "SigningError",

    # Components
    "CredentialStore",
    "RefreshTokenLedger",
    "AuthenticationService",
    "AuthResult",
    "SessionState",
    "TokenPair",
    "build_auth_service",
    "AccessGate",

    # Config constants
    "TOKEN_TYPE_ACCESS",
    "TOKEN_TYPE_REFRESH",
]
