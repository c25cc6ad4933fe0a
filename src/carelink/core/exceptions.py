"""Core Exceptions Module.

This module defines the error taxonomy of the consent protocol. Every
exception carries an ``ErrorKind`` so the gateway and the HTTP layer can report
it without inspecting class names.
"""

import enum
from typing import Optional


class ErrorKind(enum.Enum):
    """Error kinds reported to callers of the protocol."""

    VALIDATION = "ValidationError"
    UNAUTHENTICATED = "Unauthenticated"
    UNAUTHORIZED = "Unauthorized"
    CONFLICT = "Conflict"
    NOT_FOUND = "NotFound"
    STORAGE = "StorageError"
    INTEGRITY = "IntegrityError"


class CareLinkError(Exception):
    """Base exception for all CareLink errors."""

    kind: ErrorKind = ErrorKind.INTEGRITY
    default_code = "CARELINK_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        """Initialize exception.

        Args:
            message: Error message
            code: Optional error code
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(CareLinkError):
    """Raised when input is missing or malformed."""

    kind = ErrorKind.VALIDATION
    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        """Initialize validation error."""
        super().__init__(message)
        self.field = field


class AuthenticationError(CareLinkError):
    """Raised when the caller has no resolvable identity."""

    kind = ErrorKind.UNAUTHENTICATED
    default_code = "UNAUTHENTICATED"


class AuthorizationError(CareLinkError):
    """Raised when the role tier or record provenance forbids the action."""

    kind = ErrorKind.UNAUTHORIZED
    default_code = "UNAUTHORIZED"


class ConflictError(CareLinkError):
    """Raised when the action collides with existing state."""

    kind = ErrorKind.CONFLICT
    default_code = "CONFLICT"


class NotFoundError(CareLinkError):
    """Raised when a code or record does not exist."""

    kind = ErrorKind.NOT_FOUND
    default_code = "NOT_FOUND"


class StorageError(CareLinkError):
    """Raised on transient record store failures. Safe to retry."""

    kind = ErrorKind.STORAGE
    default_code = "STORAGE_ERROR"


class IntegrityViolationError(CareLinkError):
    """Raised when an invariant the protocol depends on was violated."""

    kind = ErrorKind.INTEGRITY
    default_code = "INTEGRITY_ERROR"


class AuditWriteError(IntegrityViolationError):
    """Raised when an audit entry could not be written."""

    default_code = "AUDIT_WRITE_FAILED"


class OtpGenerationError(IntegrityViolationError):
    """Raised when no cryptographically strong code could be produced."""

    default_code = "OTP_GENERATION_FAILED"
