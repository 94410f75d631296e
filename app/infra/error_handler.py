"""Registry error taxonomy and retry logic."""

import asyncio
import random
from typing import Optional, Type, Tuple, Callable, Any
from enum import Enum

import httpx


class ErrorCategory(str, Enum):
    """Categories of registry errors."""
    NETWORK = "network"  # Connection issues, timeouts
    SERVER_ERROR = "server_error"  # 5xx responses
    API_ERROR = "api_error"  # Other non-2xx responses
    NOT_FOUND = "not_found"  # Referenced tool does not exist
    UNKNOWN = "unknown"


class RegistryError(Exception):
    """Base exception for tool registry failures."""
    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        retryable: bool = False,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        self.message = message
        self.category = category
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)


class ToolNotFoundError(RegistryError):
    """Registry has no tool under the requested id."""
    def __init__(self, tool_id: str):
        self.tool_id = tool_id
        super().__init__(
            f"Tool '{tool_id}' was not found in the registry",
            ErrorCategory.NOT_FOUND,
            retryable=False,
            status_code=404,
        )


class NetworkOrServerError(RegistryError):
    """Transport failure or any non-2xx registry response other than a lookup miss."""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        if status_code is None:
            category, retryable = ErrorCategory.NETWORK, True
        elif status_code >= 500 or status_code == 429:
            category, retryable = ErrorCategory.SERVER_ERROR, True
        else:
            category, retryable = ErrorCategory.API_ERROR, False
        super().__init__(
            message,
            category,
            retryable=retryable,
            status_code=status_code,
            retry_after=retry_after,
        )


def classify_error(error: Exception) -> Tuple[ErrorCategory, bool, Optional[float]]:
    """
    Classify an error into a category and determine if it's retryable.

    Returns:
        Tuple of (category, retryable, retry_after_seconds)
    """
    if isinstance(error, RegistryError):
        return error.category, error.retryable, error.retry_after

    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return ErrorCategory.NETWORK, True, None

    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return ErrorCategory.NETWORK, True, None

    return ErrorCategory.UNKNOWN, False, None


def wrap_http_error(response: httpx.Response, action: str) -> RegistryError:
    """
    Convert a non-2xx registry response into a registry error.

    Args:
        response: The registry response
        action: Short description of the attempted call, used in the message
    """
    status_code = response.status_code
    retry_after = None
    retry_after_header = response.headers.get("retry-after") if response.headers else None
    if retry_after_header:
        try:
            retry_after = float(retry_after_header)
        except ValueError:
            retry_after = None

    detail = ""
    try:
        body = response.json()
        if isinstance(body, dict):
            detail = body.get("detail") or body.get("error") or body.get("message") or ""
    except ValueError:
        detail = ""

    message = f"Registry {action} failed ({status_code})"
    if detail:
        message = f"{message}: {detail}"
    return NetworkOrServerError(message, status_code=status_code, retry_after=retry_after)


async def retry_with_backoff(
    func: Callable,
    max_retries: int = 2,
    initial_delay: float = 0.5,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> Any:
    """
    Retry a coroutine function with exponential backoff.

    Only errors that ``classify_error`` marks retryable are retried; anything
    else propagates immediately.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        retryable_exceptions: Tuple of exception types to consider
        on_retry: Optional callback called on each retry (exception, attempt_number)

    Returns:
        Result of the function call
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except retryable_exceptions as e:
            _, retryable, retry_after = classify_error(e)

            if not retryable or attempt >= max_retries:
                raise

            if retry_after:
                delay = min(retry_after, max_delay)
            else:
                delay = min(initial_delay * (exponential_base ** attempt), max_delay)

            # Jitter
            delay += random.uniform(0, delay * 0.1)

            if on_retry:
                result = on_retry(e, attempt + 1)
                if asyncio.iscoroutine(result):
                    await result

            await asyncio.sleep(delay)
