"""
HTTP utilities for resilient API calls with retry logic and circuit breaker.

This module provides:
- @retry_with_backoff: Decorator for exponential backoff retries
- CircuitBreaker: Prevents hammering failing services
"""

import functools
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

import requests

from .config import config

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class CircuitOpenError(RuntimeError):
    """Raised instead of calling a service whose circuit is open."""


class CircuitBreaker:
    """
    Circuit breaker to prevent hammering failing services.

    States:
    - CLOSED: Normal operation, calls allowed
    - OPEN: Service failing, calls blocked for recovery_timeout seconds
    - HALF_OPEN: Testing if service recovered, next call decides
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = "CLOSED"
        self._lock = threading.Lock()

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Execute func through the breaker.

        Raises:
            CircuitOpenError: if the circuit is OPEN and not yet due for recovery
            Any exception from func
        """
        with self._lock:
            if self.state == "OPEN":
                if not self._should_attempt_recovery():
                    raise CircuitOpenError(
                        f"Circuit breaker '{self.name}' is OPEN. Service unavailable."
                    )
                self.state = "HALF_OPEN"
                logger.warning(
                    f"Circuit breaker '{self.name}' transitioning to HALF_OPEN",
                    extra={"component": "http", "error_type": "circuit_breaker"},
                )

        try:
            result = func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _should_attempt_recovery(self) -> bool:
        if self.last_failure_time is None:
            return False
        return time.time() - self.last_failure_time >= self.recovery_timeout

    def _on_success(self) -> None:
        with self._lock:
            if self.state == "HALF_OPEN":
                logger.info(
                    f"Circuit breaker '{self.name}' recovering: call succeeded",
                    extra={"component": "http", "error_type": "circuit_breaker"},
                )
            self.failure_count = 0
            self.state = "CLOSED"

    def _on_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()
            extra = {
                "component": "http",
                "error_type": "circuit_breaker",
                "failure_count": self.failure_count,
            }
            if self.state == "HALF_OPEN" or self.failure_count >= self.failure_threshold:
                self.state = "OPEN"
                logger.error(
                    f"Circuit breaker '{self.name}' OPEN after {self.failure_count} failures",
                    extra=extra,
                )
            else:
                logger.warning(
                    f"Circuit breaker '{self.name}': failure {self.failure_count}/{self.failure_threshold}",
                    extra=extra,
                )


_circuit_breakers: Dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_circuit_breaker(name: str) -> CircuitBreaker:
    """Get or create a named circuit breaker using the configured thresholds."""
    with _registry_lock:
        if name not in _circuit_breakers:
            _circuit_breakers[name] = CircuitBreaker(
                name,
                failure_threshold=config.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                recovery_timeout=config.CIRCUIT_BREAKER_TIMEOUT,
            )
        return _circuit_breakers[name]


def reset_circuit_breakers() -> None:
    with _registry_lock:
        _circuit_breakers.clear()


def _classify_failure(exc: Exception) -> Tuple[bool, str, Optional[int]]:
    """
    Decide whether a failed request is worth retrying.

    Returns (retryable, error_type, http_status).
    """
    if isinstance(exc, requests.Timeout):
        return True, "timeout", None
    if isinstance(exc, requests.ConnectionError):
        return True, "connection_error", None
    if isinstance(exc, requests.HTTPError):
        status_code = exc.response.status_code if exc.response is not None else None
        if status_code == 429:
            return True, "rate_limited", status_code
        if status_code is not None and status_code >= 500:
            return True, "server_error", status_code
        return False, "http_client_error", status_code
    return False, "unexpected_error", None


def retry_with_backoff(
    max_retries: Optional[int] = None,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    circuit_breaker: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[F], F]:
    """
    Decorator for exponential backoff retries on transient failures.

    Retryable: timeouts, connection errors, HTTP 429 and 5xx. Rate limits wait
    one extra backoff step. Everything else is raised immediately, as is
    CircuitOpenError.

    Args:
        max_retries: Retry attempts after the first call (default: config.MAX_HTTP_RETRIES)
        initial_delay: Delay before the first retry (seconds)
        max_delay: Upper bound on any delay (seconds)
        backoff_factor: Multiplier applied per attempt
        circuit_breaker: Optional name of circuit breaker to route calls through
        sleep: Sleep function, replaceable in tests
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            retries = config.MAX_HTTP_RETRIES if max_retries is None else max_retries
            cb = get_circuit_breaker(circuit_breaker) if circuit_breaker else None

            attempt = 0
            while True:
                try:
                    if cb:
                        return cb.call(func, *args, **kwargs)
                    return func(*args, **kwargs)
                except CircuitOpenError:
                    raise
                except Exception as e:
                    retryable, error_type, status_code = _classify_failure(e)
                    extra = {
                        "component": "http",
                        "error_type": error_type,
                        "http_status": status_code,
                        "attempt": attempt + 1,
                        "retry_count": retries,
                    }
                    if not retryable:
                        logger.error(f"Non-retryable error in HTTP call: {e}", extra=extra)
                        raise
                    if attempt >= retries:
                        logger.error(f"HTTP call failed after {retries} retries: {e}", extra=extra)
                        raise

                    exponent = attempt + 1 if error_type == "rate_limited" else attempt
                    delay = min(initial_delay * (backoff_factor ** exponent), max_delay)
                    logger.warning(
                        f"{error_type} in HTTP call, retrying in {delay:.1f}s "
                        f"(attempt {attempt + 1}/{retries})",
                        extra=extra,
                    )
                    sleep(delay)
                    attempt += 1

        return wrapper  # type: ignore

    return decorator
