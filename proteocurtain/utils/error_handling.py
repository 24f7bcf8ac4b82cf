"""
Error taxonomy and recovery utilities.

Parsing and matching failures are recovered close to where they happen and
surface as empty or partial results. Only ordering mistakes made by the caller
(searching an index that was never built, naming a dataset the store does not
hold) propagate.

Also provides retry logic, a circuit breaker and graceful degradation for the
network-bound annotation lookups.
"""

from __future__ import annotations

import functools
import time
from threading import Lock
from typing import Any, Callable, Optional, Type, TypeVar

from proteocurtain.logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ProteoCurtainError(Exception):
    """Base class for every error raised by the engine."""


class ParseError(ProteoCurtainError):
    """Column mapping does not fit the table. Recovered as an empty result."""


class NotFoundError(ProteoCurtainError):
    """A search term resolved to nothing. Recovered and counted as unmatched."""


class RegexCompileError(ProteoCurtainError):
    """A regex query line failed to compile. Recovered as zero matches for that line."""

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"Invalid pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class EmptyDatasetError(ProteoCurtainError):
    """A dataset has no usable records. Recovered as empty/default outputs."""


class IndexNotBuiltError(ProteoCurtainError):
    """Searching before the alias index was built for the dataset."""

    def __init__(self, dataset_id: str):
        super().__init__(
            f"Alias index for dataset {dataset_id!r} has not been built. "
            "Call ensure_alias_index() before searching."
        )
        self.dataset_id = dataset_id


class DatasetNotFoundError(ProteoCurtainError):
    """The storage collaborator holds no dataset under this id."""

    def __init__(self, dataset_id: str):
        super().__init__(f"Dataset {dataset_id!r} does not exist in storage")
        self.dataset_id = dataset_id


class RetryConfig:
    """Configuration for retry logic."""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        retryable_exceptions: tuple[Type[Exception], ...] = (Exception,),
    ):
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.retryable_exceptions = retryable_exceptions


def retry_with_backoff(
    config: Optional[RetryConfig] = None,
    log_errors: bool = True,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to retry a function with exponential backoff.

    Args:
        config: Retry configuration (uses defaults if None)
        log_errors: Whether to log each retry attempt

    Returns:
        Decorated function with retry logic
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            delay = config.initial_delay
            last_exception: Optional[Exception] = None

            for attempt in range(1, config.max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except config.retryable_exceptions as e:
                    last_exception = e

                    if attempt < config.max_attempts:
                        if log_errors:
                            logger.warning(
                                "[ERROR-HANDLER] Attempt %d/%d failed for %s: %r. "
                                "Retrying in %.1fs...",
                                attempt,
                                config.max_attempts,
                                func.__name__,
                                e,
                                delay,
                            )
                        time.sleep(delay)
                        delay = min(delay * config.exponential_base, config.max_delay)
                    elif log_errors:
                        logger.error(
                            "[ERROR-HANDLER] All %d attempts failed for %s: %r",
                            config.max_attempts,
                            func.__name__,
                            e,
                        )

            if last_exception:
                raise last_exception

            raise RuntimeError("Retry logic failed unexpectedly")

        return wrapper

    return decorator


class CircuitBreakerOpen(ProteoCurtainError):
    """A call was refused because its circuit breaker is open."""


class CircuitBreaker:
    """
    Circuit breaker for external service calls.

    Opens after ``failure_threshold`` consecutive failures and refuses calls
    until ``recovery_timeout`` seconds have passed, then lets one call through
    in the half-open state.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        expected_exception: Type[Exception] = Exception,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "closed"  # closed, open, half_open
        self._lock = Lock()

    def _admit(self, name: str) -> None:
        with self._lock:
            if self.state != "open":
                return
            elapsed = time.time() - (self.last_failure_time or 0.0)
            if elapsed < self.recovery_timeout:
                raise CircuitBreakerOpen(
                    f"Circuit breaker is open for {name}. "
                    f"Wait {self.recovery_timeout - elapsed:.1f}s before retrying."
                )
            self.state = "half_open"
            logger.info("[CIRCUIT-BREAKER] Moving %s to half-open state", name)

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Execute function with circuit breaker protection.

        Raises:
            CircuitBreakerOpen: If circuit is open
            Exception: If function call fails
        """
        name = getattr(func, "__name__", repr(func))
        self._admit(name)

        try:
            result = func(*args, **kwargs)
        except self.expected_exception:
            with self._lock:
                self.failure_count += 1
                self.last_failure_time = time.time()
                if self.state == "half_open" or self.failure_count >= self.failure_threshold:
                    if self.state != "open":
                        logger.error(
                            "[CIRCUIT-BREAKER] Circuit breaker opened for %s after %d failures",
                            name,
                            self.failure_count,
                        )
                    self.state = "open"
            raise

        with self._lock:
            if self.state == "half_open":
                logger.info("[CIRCUIT-BREAKER] %s recovered, closing circuit", name)
            self.state = "closed"
            self.failure_count = 0
        return result


def graceful_degradation(
    fallback_value: Any = None,
    exceptions: tuple[Type[Exception], ...] = (Exception,),
    log_warning: bool = True,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator returning ``fallback_value`` when the wrapped call fails.

    Args:
        fallback_value: Value to return on failure
        exceptions: Exception types that trigger the fallback
        log_warning: Whether to log warnings

    Returns:
        Decorated function with graceful degradation
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except exceptions as e:
                if log_warning:
                    logger.warning(
                        "[GRACEFUL-DEGRADE] %s failed: %r. Using fallback.",
                        func.__name__,
                        e,
                    )
                return fallback_value

        return wrapper

    return decorator
