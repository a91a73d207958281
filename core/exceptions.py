# core/exceptions.py
"""
HTTP errors with a stable machine-readable kind.

Every error body leaving the API has the same shape:
    {"valid": false, "error": "<KIND>", "message": "<human readable>"}
"""
from enum import Enum

from fastapi import HTTPException, status


class ErrorKind(str, Enum):
    # Authentication
    NO_CREDENTIAL = "NO_CREDENTIAL"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"
    MALFORMED = "MALFORMED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    SUSPENDED = "SUSPENDED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    LOCKED = "LOCKED"
    # Authorization
    FORBIDDEN = "FORBIDDEN"
    # Everything else
    TIMEOUT = "TIMEOUT"
    BAD_REQUEST = "BAD_REQUEST"
    CONFLICT = "CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ApiError(HTTPException):
    """Base class: an HTTPException that knows its error kind."""
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(
            status_code=status_code or self.status_code_default,
            detail=message,
            headers=headers,
        )
        self.kind = kind
        self.message = message

    def to_body(self) -> dict:
        return {"valid": False, "error": self.kind.value, "message": self.message}


class AuthenticationError(ApiError):
    """Raised when the caller cannot be authenticated."""
    status_code_default = status.HTTP_401_UNAUTHORIZED

    def __init__(self, kind: ErrorKind = ErrorKind.VERIFICATION_FAILED, message: str = "Could not validate credentials"):
        super().__init__(kind, message, headers={"WWW-Authenticate": "Bearer"})


class AuthorizationError(ApiError):
    """Raised when the caller lacks the required permission."""
    status_code_default = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Not enough permissions"):
        super().__init__(ErrorKind.FORBIDDEN, message)


class LockedError(ApiError):
    """Raised while an account sits in its lockout window."""
    status_code_default = status.HTTP_423_LOCKED

    def __init__(self, message: str = "Account is temporarily locked"):
        super().__init__(ErrorKind.LOCKED, message)


class LoginTimeoutError(ApiError):
    status_code_default = status.HTTP_408_REQUEST_TIMEOUT

    def __init__(self, message: str = "Login timed out, please try again"):
        super().__init__(ErrorKind.TIMEOUT, message)


class NotFoundError(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Not found"):
        super().__init__(ErrorKind.NOT_FOUND, message)


class ConflictError(ApiError):
    status_code_default = status.HTTP_409_CONFLICT

    def __init__(self, message: str):
        super().__init__(ErrorKind.CONFLICT, message)


class BadRequestError(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(ErrorKind.BAD_REQUEST, message)


class ServiceError(ApiError):
    """A dependency failed in a way that must not be read as success."""
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Authentication service unavailable"):
        super().__init__(ErrorKind.INTERNAL_ERROR, message)


# Validation error kinds that map to a 401
AUTHENTICATION_KINDS = frozenset({
    ErrorKind.NO_CREDENTIAL,
    ErrorKind.EXPIRED,
    ErrorKind.REVOKED,
    ErrorKind.MALFORMED,
    ErrorKind.VERIFICATION_FAILED,
    ErrorKind.NOT_FOUND,
    ErrorKind.SUSPENDED,
})


def error_for_validation_failure(kind: ErrorKind, message: str) -> ApiError:
    """Map a failed session validation to the HTTP error the guard raises."""
    if kind in AUTHENTICATION_KINDS:
        return AuthenticationError(kind, message)
    if kind == ErrorKind.TIMEOUT:
        return LoginTimeoutError(message)
    return ServiceError(message)
