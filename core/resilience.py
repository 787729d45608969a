"""
Resilience Patterns

Two failure domains matter to the scoring service:

- storage: a rescoring attempt that cannot reach the database fails for that
  team only and is retried (tenacity) before giving up until the next tick
- push delivery: webhook POSTs are retried on transient failures and guarded
  by a circuit breaker so a dead endpoint does not stall every match
"""

from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import requests
from circuitbreaker import CircuitBreakerError, CircuitBreakerMonitor, circuit
from peewee import InterfaceError, OperationalError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.logging import get_logger
from core.settings import settings

T = TypeVar("T")


# -----------------------------------------------------------------------------
# Error taxonomy
# -----------------------------------------------------------------------------


class RetryableError(Exception):
    """Transient failure; the operation may succeed if attempted again."""


class StorageUnavailableError(RetryableError):
    """
    Raised when the database cannot be reached during a rescoring attempt.

    Fails the attempt for one team only; the scheduler retries on its next tick.
    """


class PushDeliveryError(RetryableError):
    """Webhook endpoint unreachable, timed out, throttled, or answered 5xx."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PushRejectedError(Exception):
    """Webhook endpoint answered 4xx. Resending the same event will not help."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


# -----------------------------------------------------------------------------
# Storage
# -----------------------------------------------------------------------------


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 2.0,
    max_delay: float = 30.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry the decorated function on RetryableError with exponential backoff.

    The last error is re-raised once attempts run out.

    Example:
        @with_retry(max_attempts=3, base_delay=0.5)
        @storage_guard
        def persist(...):
            ...
    """
    log = get_logger("retry")

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=base_delay, max=max_delay),
            retry=retry_if_exception_type(RetryableError),
            reraise=True,
        )
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return func(*args, **kwargs)
            except RetryableError as e:
                log.warning(
                    "retry_attempt",
                    function=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

        return wrapper

    return decorator


def storage_guard(func: Callable[..., T]) -> Callable[..., T]:
    """Translate peewee connection failures into StorageUnavailableError."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return func(*args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            raise StorageUnavailableError(f"Database unavailable: {e}") from e

    return wrapper


# -----------------------------------------------------------------------------
# Push delivery
# -----------------------------------------------------------------------------


PUSH_WEBHOOK_CIRCUIT = "push_webhook"

push_webhook_circuit = circuit(
    failure_threshold=settings.circuit_breaker_threshold,
    recovery_timeout=settings.circuit_breaker_timeout,
    expected_exception=PushDeliveryError,
    name=PUSH_WEBHOOK_CIRCUIT,
)


def check_webhook_response(response: requests.Response) -> None:
    """
    Raises:
        PushDeliveryError: For 429 and 5xx responses
        PushRejectedError: For other 4xx responses
    """
    status = response.status_code
    if status == 429 or status >= 500:
        raise PushDeliveryError(f"Webhook answered {status}", status_code=status)
    if status >= 400:
        raise PushRejectedError(f"Webhook rejected event: {status} - {response.text[:200]}", status_code=status)


def post_webhook(url: str, body: bytes, headers: dict[str, str], timeout: int) -> requests.Response:
    """
    One delivery attempt.

    Raises:
        PushDeliveryError: On connection errors, timeouts, 429 and 5xx
        PushRejectedError: On other 4xx responses
    """
    log = get_logger("http")
    try:
        response = requests.post(url, data=body, headers=headers, timeout=timeout)
    except requests.exceptions.Timeout as e:
        log.warning("webhook_timeout", url=url)
        raise PushDeliveryError(f"Webhook timed out: {url}") from e
    except requests.exceptions.RequestException as e:
        log.warning("webhook_connection_error", url=url, error=str(e))
        raise PushDeliveryError(f"Webhook unreachable: {url}") from e

    check_webhook_response(response)
    return response


class WebhookClient:
    """
    Webhook POSTs with retry and the shared push circuit breaker.

    Blocking (requests); callers run it via asyncio.to_thread.
    """

    def __init__(
        self,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        timeout: Optional[int] = None,
        breaker: Optional[Callable] = push_webhook_circuit,
    ):
        self.max_retries = max_retries or settings.retry_max_attempts
        self.base_delay = settings.retry_base_delay if base_delay is None else base_delay
        self.max_delay = settings.retry_max_delay if max_delay is None else max_delay
        self.timeout = timeout or settings.http_timeout
        self.breaker = breaker

    def _post_with_retry(self, url: str, body: bytes, headers: dict[str, str]) -> requests.Response:
        @retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception_type(PushDeliveryError),
            reraise=True,
        )
        def _attempt() -> requests.Response:
            return post_webhook(url, body, headers, self.timeout)

        return _attempt()

    def post(self, url: str, body: bytes, headers: dict[str, str]) -> requests.Response:
        """
        Raises:
            PushDeliveryError: When every attempt failed transiently
            PushRejectedError: When the endpoint refused the event
            CircuitBreakerError: While the circuit is open
        """
        if self.breaker is None:
            return self._post_with_retry(url, body, headers)

        @self.breaker
        def _guarded() -> requests.Response:
            return self._post_with_retry(url, body, headers)

        return _guarded()


def is_circuit_open(circuit_name: str = PUSH_WEBHOOK_CIRCUIT) -> bool:
    for breaker in CircuitBreakerMonitor.get_circuits():
        if breaker.name == circuit_name:
            return breaker.opened
    return False


__all__ = [
    "RetryableError",
    "StorageUnavailableError",
    "PushDeliveryError",
    "PushRejectedError",
    "CircuitBreakerError",
    "with_retry",
    "storage_guard",
    "push_webhook_circuit",
    "check_webhook_response",
    "post_webhook",
    "WebhookClient",
    "is_circuit_open",
]
