"""Core Module.

This module provides core functionality for CareLink Consent.
"""

from .exceptions import (
    AuditWriteError,
    AuthenticationError,
    AuthorizationError,
    CareLinkError,
    ConflictError,
    ErrorKind,
    IntegrityViolationError,
    NotFoundError,
    OtpGenerationError,
    StorageError,
    ValidationError,
)

__all__ = [
    "CareLinkError",
    "ErrorKind",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "NotFoundError",
    "StorageError",
    "IntegrityViolationError",
    "AuditWriteError",
    "OtpGenerationError",
]
