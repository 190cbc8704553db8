"""Error taxonomy, backend error classification and retry logic."""

import asyncio
import random
import re
from typing import Optional, Type, Tuple, Callable, Any, Dict
from enum import Enum

import httpx
import openai


class ErrorCategory(str, Enum):
    """Categories of errors for better handling."""
    NETWORK = "network"  # Connection issues, timeouts
    API_ERROR = "api_error"  # Backend returned an error response
    AUTH_ERROR = "auth_error"  # Authentication/authorization failures
    RATE_LIMIT = "rate_limit"  # Rate limit exceeded
    VALIDATION = "validation"  # Malformed input from caller or model
    SAFETY_POLICY = "safety_policy"  # Deliberate refusal by a safety check
    UNKNOWN = "unknown"  # Unknown errors


# ============================================================================
# Backend / transport errors
# ============================================================================

class RetryableError(Exception):
    """Base exception for classified backend errors."""
    def __init__(self, message: str, category: ErrorCategory, retryable: bool = True, retry_after: Optional[float] = None):
        self.message = message
        self.category = category
        self.retryable = retryable
        self.retry_after = retry_after
        super().__init__(message)


class NetworkError(RetryableError):
    """Network-related errors (connection, timeout)."""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, ErrorCategory.NETWORK, retryable=True, retry_after=retry_after)


class APIError(RetryableError):
    """Backend returned an error response."""
    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False, retry_after: Optional[float] = None):
        self.status_code = status_code
        super().__init__(message, ErrorCategory.API_ERROR, retryable=retryable, retry_after=retry_after)


class AuthError(RetryableError):
    """Authentication/authorization errors."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.AUTH_ERROR, retryable=False)


class RateLimitError(RetryableError):
    """Rate limit exceeded."""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message, ErrorCategory.RATE_LIMIT, retryable=True, retry_after=retry_after)


class GatewayUnavailable(NetworkError):
    """The SQL execution gateway could not be reached."""


class SqlExecutionError(Exception):
    """The SQL execution gateway rejected a statement."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


# ============================================================================
# Tool errors (recovered locally into a failed ToolResult)
# ============================================================================

class ToolError(Exception):
    """Base class for errors raised inside a tool call.

    ``details`` carries the context the agent needs to explain the failure
    (table name, row counts, constraint type) without re-querying.
    """
    code = "tool_error"
    category = ErrorCategory.VALIDATION

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidIdentifier(ToolError):
    code = "invalid_identifier"


class MissingPredicate(ToolError):
    code = "missing_predicate"


class InvalidArguments(ToolError):
    code = "invalid_arguments"


class UnknownTool(ToolError):
    code = "unknown_tool"


class ImpactLimitExceeded(ToolError):
    code = "impact_limit_exceeded"
    category = ErrorCategory.SAFETY_POLICY


class ConfirmationRequired(ToolError):
    code = "confirmation_required"
    category = ErrorCategory.SAFETY_POLICY


class ProtectedObject(ToolError):
    code = "protected_object"
    category = ErrorCategory.SAFETY_POLICY


class UnsafeOperation(ToolError):
    code = "unsafe_operation"
    category = ErrorCategory.SAFETY_POLICY


# ============================================================================
# Orchestration errors (surfaced to the caller)
# ============================================================================

class OrchestrationError(Exception):
    """Base class for errors returned to the calling layer.

    Messages are user-presentable; internal details stay in the logs.
    """
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ThreadCreationFailed(OrchestrationError):
    """A conversation thread could not be created or recovered."""


class AssistantRunFailed(OrchestrationError):
    """The assistant run ended in a terminal failure state or could not be driven."""
    def __init__(self, message: str, run_status: Optional[str] = None):
        self.run_status = run_status
        super().__init__(message)


class ResponseTimeout(AssistantRunFailed):
    """The assistant run did not finish within the polling budget."""
    def __init__(self, message: str = "Assistant response timeout"):
        super().__init__(message, run_status="timeout")


# ============================================================================
# Classification
# ============================================================================

def classify_error(error: Exception) -> Tuple[ErrorCategory, bool, Optional[float]]:
    """
    Classify an error into a category and determine if it's retryable.

    Args:
        error: The exception to classify

    Returns:
        Tuple of (category, retryable, retry_after_seconds)
    """
    if isinstance(error, RetryableError):
        return error.category, error.retryable, error.retry_after

    if isinstance(error, ToolError):
        return error.category, False, None

    wrapped = wrap_backend_error(error)
    return wrapped.category, wrapped.retryable, wrapped.retry_after


def _retry_after_from(error: Exception) -> Optional[float]:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def wrap_backend_error(error: Exception, provider: str = "openai") -> RetryableError:
    """
    Wrap agent backend / transport errors into our error types.

    Connection failures, timeouts, 429 and 5xx responses are retryable;
    every other 4xx response is not.

    Args:
        error: Original exception
        provider: Backend name used in messages

    Returns:
        RetryableError with appropriate category
    """
    if isinstance(error, RetryableError):
        return error

    # openai SDK errors (APITimeoutError subclasses APIConnectionError)
    if isinstance(error, openai.APIConnectionError):
        return NetworkError(f"{provider} network error: {error}")

    if isinstance(error, openai.APIStatusError):
        return _wrap_status(error.status_code, str(error), provider, _retry_after_from(error))

    # httpx transport errors
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return NetworkError(f"{provider} network error: {error}")

    if isinstance(error, httpx.HTTPStatusError):
        return _wrap_status(error.response.status_code, str(error), provider, _retry_after_from(error))

    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return NetworkError(f"{provider} network error: {error}")

    error_str = str(error)
    error_lower = error_str.lower()

    if "rate limit" in error_lower or "429" in error_str:
        retry_after = None
        match = re.search(r"retry[_-]after[:\s]+(\d+)", error_lower)
        if match:
            retry_after = float(match.group(1))
        return RateLimitError(f"{provider} rate limit exceeded", retry_after=retry_after)

    if any(keyword in error_lower for keyword in ["connection", "timeout", "network", "refused"]):
        return NetworkError(f"{provider} network error: {error_str}")

    # Unknown errors are not retried
    return APIError(f"{provider} error: {error_str}", retryable=False)


def _wrap_status(status_code: int, error_str: str, provider: str, retry_after: Optional[float]) -> RetryableError:
    if status_code == 429:
        return RateLimitError(f"{provider} rate limit exceeded (429)", retry_after=retry_after)
    if status_code in (401, 403):
        return AuthError(f"{provider} auth error ({status_code})")
    if status_code >= 500:
        return APIError(f"{provider} server error ({status_code})", status_code=status_code, retryable=True)
    return APIError(f"{provider} API error ({status_code}): {error_str}", status_code=status_code, retryable=False)


def is_not_found(error: Exception) -> bool:
    """True when the backend reported that the addressed object does not exist."""
    if isinstance(error, openai.NotFoundError):
        return True
    return isinstance(error, APIError) and error.status_code == 404


async def retry_with_backoff(
    func: Callable,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
) -> Any:
    """
    Retry a function with exponential backoff.

    Only errors that classify as retryable are retried; anything else is
    re-raised immediately.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential backoff
        retryable_exceptions: Tuple of exception types to retry
        on_retry: Optional callback called on each retry (exception, attempt_number)

    Returns:
        Result of the function call

    Raises:
        Last exception if all retries fail
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except retryable_exceptions as e:
            _category, retryable, retry_after = classify_error(e)

            if not retryable or attempt >= max_retries:
                raise

            if retry_after:
                delay = min(retry_after, max_delay)
            else:
                delay = min(initial_delay * (exponential_base ** attempt), max_delay)

            # Add jitter to avoid thundering herd
            delay += random.uniform(0, delay * 0.1)

            if on_retry:
                result = on_retry(e, attempt + 1)
                if asyncio.iscoroutine(result):
                    await result

            await asyncio.sleep(delay)
