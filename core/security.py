# core/security.py
"""
Password hashing and the session-credential identity provider.

The identity provider issues signed session credentials (JWT) whose subject
is the user's `external_id`, and verifies them on the way back in. Callers
branch on `CredentialError.kind`, never on the message.
"""
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from config import settings
from core.exceptions import ErrorKind

# JWT configuration
ALGORITHM = "HS256"
SESSION_TOKEN_TYPE = "session"


def get_secret_key() -> str:
    """Get JWT secret key from settings or generate one for development."""
    secret = getattr(settings, 'SECRET_KEY', None)
    if secret:
        return secret
    # Development fallback - NOT for production!
    return "dev-secret-key-change-in-production-abc123xyz"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def get_password_hash(password: str) -> str:
    """Hash a password for storage."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def generate_random_password(length: int = 12) -> str:
    """Generate a secure random password."""
    return secrets.token_urlsafe(length)


def generate_external_id() -> str:
    """Subject identifier for a newly registered identity."""
    return uuid.uuid4().hex


class CredentialError(Exception):
    """Raised by the identity provider when a credential does not verify."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass(frozen=True)
class VerifiedCredential:
    subject_id: str
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def token_id(self) -> str | None:
        return self.claims.get("jti")

    @property
    def expires_at(self) -> datetime | None:
        exp = self.claims.get("exp")
        if exp is None:
            return None
        return datetime.fromtimestamp(exp, tz=timezone.utc)


class JWTIdentityProvider:
    """
    Issues and verifies HS256 session credentials.

    Revocation is tracked by token id; a revoked credential keeps failing
    with REVOKED until it would have expired anyway.
    """

    def __init__(self, secret_key: str | None = None, algorithm: str = ALGORITHM):
        self._secret_key = secret_key or get_secret_key()
        self._algorithm = algorithm
        self._revoked: dict[str, datetime] = {}

    def issue_session_token(
        self,
        subject_id: str,
        claims: dict[str, Any] | None = None,
        expires_delta: timedelta | None = None,
    ) -> str:
        """
        Create a session credential.

        Args:
            subject_id: The user's external id
            claims: Extra claims (email, role)
            expires_delta: Lifetime, defaults to SESSION_EXPIRES_DAYS

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(days=settings.SESSION_EXPIRES_DAYS))
        to_encode = dict(claims or {})
        to_encode.update({
            "sub": subject_id,
            "iat": now,
            "exp": expire,
            "jti": uuid.uuid4().hex,
            "type": SESSION_TOKEN_TYPE,
        })
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    async def verify_credential(self, token: str) -> VerifiedCredential:
        """
        Check signature, expiry, type and revocation.

        Raises:
            CredentialError: EXPIRED, REVOKED, MALFORMED or VERIFICATION_FAILED
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except ExpiredSignatureError as exc:
            raise CredentialError(ErrorKind.EXPIRED, "Session has expired") from exc
        except JWTError as exc:
            if token.count(".") != 2:
                raise CredentialError(ErrorKind.MALFORMED, "Invalid session credential") from exc
            raise CredentialError(ErrorKind.VERIFICATION_FAILED, "Session credential could not be verified") from exc

        if payload.get("type") != SESSION_TOKEN_TYPE:
            raise CredentialError(ErrorKind.MALFORMED, "Invalid credential type")

        subject_id = payload.get("sub")
        if not subject_id:
            raise CredentialError(ErrorKind.MALFORMED, "Invalid credential payload")

        if payload.get("jti") in self._revoked:
            raise CredentialError(ErrorKind.REVOKED, "Session has been revoked (logged out)")

        return VerifiedCredential(subject_id=subject_id, claims=payload)

    async def revoke(self, token: str) -> bool:
        """Revoke a credential. Returns False if it cannot be decoded."""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return False

        token_id = payload.get("jti")
        if not token_id:
            return False
        self._revoked[token_id] = datetime.fromtimestamp(payload.get("exp", 0), tz=timezone.utc)
        self._prune_revoked()
        return True

    def _prune_revoked(self) -> None:
        now = datetime.now(timezone.utc)
        for token_id in [k for k, exp in self._revoked.items() if exp <= now]:
            del self._revoked[token_id]
