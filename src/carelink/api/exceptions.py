"""HTTP errors for the CareLink Consent API.

Protocol errors arrive as ``OperationError`` values from the gateway and are
raised here as ``HTTPException`` subclasses with a stable ``error_code``.
"""

from typing import Any, Dict, Optional, TypeVar

from fastapi import HTTPException, status

from carelink.core.exceptions import ErrorKind
from carelink.gateway import OperationError, OperationResult

T = TypeVar("T")

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STORAGE: 503,
    ErrorKind.INTEGRITY: 500,
}


class BaseAPIException(HTTPException):
    """Base exception for all API exceptions."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        error_kind: Optional[ErrorKind] = None,
    ):
        """Initialize base API exception."""
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code or self.__class__.__name__
        self.error_kind = error_kind


class ProtocolError(BaseAPIException):
    """A consent protocol error reported over HTTP."""

    def __init__(self, error: OperationError):
        """Initialize from a gateway error."""
        headers = None
        if error.kind == ErrorKind.UNAUTHENTICATED:
            headers = {"WWW-Authenticate": "X-Subject-Id"}
        elif error.kind == ErrorKind.STORAGE:
            headers = {"Retry-After": "1"}
        super().__init__(
            status_code=STATUS_BY_KIND[error.kind],
            detail=error.message,
            headers=headers,
            error_code=error.code,
            error_kind=error.kind,
        )


class MissingSubjectError(BaseAPIException):
    """Raised when a request carries no caller identity."""

    def __init__(self) -> None:
        """Initialize missing subject error."""
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Subject-Id header is required",
            headers={"WWW-Authenticate": "X-Subject-Id"},
            error_code="UNAUTHENTICATED",
            error_kind=ErrorKind.UNAUTHENTICATED,
        )


def unwrap_result(result: OperationResult[T]) -> T:
    """Return the result's value or raise the matching HTTP error."""
    if result.error is not None:
        raise ProtocolError(result.error)
    return result.value  # type: ignore[return-value]
