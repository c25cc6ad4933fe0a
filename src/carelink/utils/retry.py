"""
Retry Utilities.

Bounded, jittered retry for transient record store failures. Only
``StorageError`` is retried; validation, authorization, conflict and
not-found outcomes are returned to the caller on the first attempt.
"""

import functools
from typing import Any, Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from carelink.config import Settings, get_settings
from carelink.core.exceptions import StorageError
from carelink.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "storage_retry",
        operation=getattr(retry_state.fn, "__qualname__", "unknown"),
        attempt=retry_state.attempt_number,
        error=str(outcome.exception()) if outcome else None,
    )


def storage_retrying(settings: Optional[Settings] = None) -> Retrying:
    """Build a tenacity controller from the configured retry policy."""
    settings = settings or get_settings()
    return Retrying(
        retry=retry_if_exception_type(StorageError),
        stop=stop_after_attempt(settings.storage_retry_attempts),
        wait=wait_random_exponential(
            multiplier=settings.storage_retry_wait_multiplier,
            max=settings.storage_retry_wait_max,
        ),
        before_sleep=_log_retry,
        reraise=True,
    )


def retry_on_storage_error(func: Callable[..., T]) -> Callable[..., T]:
    """Retry a service method on StorageError.

    The instance's ``settings`` attribute, when present, supplies the policy,
    so each service can be tuned (tests use near-zero waits).
    """

    @functools.wraps(func)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
        retrying = storage_retrying(getattr(self, "settings", None))
        return retrying(func, self, *args, **kwargs)

    return wrapper


__all__ = ["retry_on_storage_error", "storage_retrying"]
