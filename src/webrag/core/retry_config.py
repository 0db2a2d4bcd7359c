"""Retry configuration for WebRAG providers.

Centralized retry logic with exponential backoff for calls to external
collaborators (search engine, remote embedding API, optional page refetch).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from tenacity import (
    RetryCallState,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity import (
    retry as tenacity_retry,
)

from webrag.core.logging_config import get_logger

logger = get_logger(__name__)


class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts, including the first one
        min_wait_seconds: Minimum wait time between retries
        max_wait_seconds: Maximum wait time between retries
        exponential_multiplier: Multiplier for exponential backoff
    """

    def __init__(
        self,
        max_attempts: int = 3,
        min_wait_seconds: float = 1.0,
        max_wait_seconds: float = 30.0,
        exponential_multiplier: float = 1.0,
    ):
        self.max_attempts = max_attempts
        self.min_wait_seconds = min_wait_seconds
        self.max_wait_seconds = max_wait_seconds
        self.exponential_multiplier = exponential_multiplier


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Log retry attempts with structured context.

    Args:
        retry_state: Current state of the retry call
    """
    fn_name = retry_state.fn.__name__ if retry_state.fn else "unknown"
    exception = retry_state.outcome.exception() if retry_state.outcome else None

    logger.warning(
        "retry_attempt",
        function=fn_name,
        attempt=retry_state.attempt_number,
        max_attempts=retry_state.retry_object.stop.max_attempt_number,  # type: ignore[attr-defined]
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
        error=str(exception) if exception else None,
        error_type=type(exception).__name__ if exception else None,
    )


def create_retry_decorator(
    config: RetryConfig,
    exception_types: tuple[type[BaseException], ...],
    predicate: Callable[[BaseException], bool] | None = None,
) -> Any:
    """Create a retry decorator with the specified configuration.

    Args:
        config: Retry configuration
        exception_types: Tuple of exception types to retry on
        predicate: Optional extra filter; when given, an exception of one of
            ``exception_types`` is retried only if ``predicate(exc)`` is true

    Returns:
        Configured retry decorator
    """
    if predicate is None:
        retry_condition = retry_if_exception_type(exception_types)
    else:
        retry_condition = retry_if_exception(
            lambda exc: isinstance(exc, exception_types) and predicate(exc)
        )

    return tenacity_retry(
        stop=stop_after_attempt(max(1, config.max_attempts)),
        wait=wait_exponential(
            multiplier=config.exponential_multiplier,
            min=config.min_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_condition,
        before_sleep=log_retry_attempt,
        reraise=True,
    )


RETRY_CONFIG_DEFAULT = RetryConfig()

