"""
Error taxonomy for toolscout.

Every failure the pipeline reports carries an ``ErrorKind`` so callers can
branch on ``error.kind`` instead of on the exception class.
"""

import logging
import time
from enum import Enum
from typing import Any, Dict, Optional, Type


logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""
    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_NETWORK = "transient_network"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    RESPONSE_PARSE = "response_parse"
    RESPONSE_VALIDATION = "response_validation"
    ITEM_ANALYSIS = "item_analysis"
    CONFIGURATION = "configuration"


RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.TRANSIENT_NETWORK})


class ToolscoutError(Exception):
    """Base exception class for all toolscout errors."""
    kind: ErrorKind = ErrorKind.ITEM_ANALYSIS

    def __init__(self, message: str, component: str = "unknown", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.component = component
        self.details = details or {}
        self.timestamp = time.time()
        self.retries_exhausted = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "type": self.__class__.__name__,
            "message": str(self),
            "component": self.component,
            "details": self.details,
        }


class AuthenticationError(ToolscoutError):
    """Missing or invalid credentials."""
    kind = ErrorKind.AUTHENTICATION

    def __init__(self, provider: str, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        env_var = {"openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY", "github": "GITHUB_TOKEN"}.get(provider)
        if message is None:
            message = f"Missing or invalid credentials for {provider}"
            if env_var:
                message += f". Set the {env_var} environment variable."
        super().__init__(message, component=provider, details=details)
        self.provider = provider


class RateLimitedError(ToolscoutError):
    """Rate limited by a provider; ``retry_after`` is in seconds when known."""
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, provider: str, retry_after: Optional[float] = None, details: Optional[Dict[str, Any]] = None):
        message = f"Rate limited by {provider}"
        if retry_after:
            message += f". Retry after {retry_after:g}s"
        super().__init__(message, component=provider, details=details)
        self.provider = provider
        self.retry_after = retry_after


class TransientNetworkError(ToolscoutError):
    """Connection failure or 5xx response."""
    kind = ErrorKind.TRANSIENT_NETWORK

    def __init__(self, url: str, status: Optional[int] = None, message: Optional[str] = None,
                 component: str = "http"):
        if message is None:
            message = f"Network request failed: {url}"
            if status:
                message += f" (status: {status})"
        super().__init__(message, component=component, details={"url": url, "status": status})
        self.url = url
        self.status = status


class NotFoundError(ToolscoutError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, component: str = "http"):
        super().__init__(f"Not found: {resource}", component=component, details={"resource": resource})
        self.resource = resource


class RequestError(ToolscoutError):
    """Malformed or rejected request (4xx other than auth, not-found and rate limits)."""
    kind = ErrorKind.INVALID_REQUEST

    def __init__(self, url: str, status: Optional[int] = None, message: Optional[str] = None,
                 component: str = "http"):
        super().__init__(
            message or f"Request rejected: {url} (status: {status})",
            component=component,
            details={"url": url, "status": status},
        )
        self.url = url
        self.status = status


class ResponseParseError(ToolscoutError):
    """The model's text could not be read as a JSON object."""
    kind = ErrorKind.RESPONSE_PARSE

    def __init__(self, provider: str, raw_response: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message or f"AI response from {provider} is not parsable as JSON",
            component="classifier",
            details={"provider": provider},
        )
        self.provider = provider
        self.raw_response = raw_response


class ResponseValidationError(ToolscoutError):
    """The model's JSON parsed but does not describe a valid template decision."""
    kind = ErrorKind.RESPONSE_VALIDATION

    def __init__(self, message: str, raw_response: Optional[str] = None, errors: Optional[list] = None):
        super().__init__(message, component="classifier", details={"errors": errors or []})
        self.raw_response = raw_response
        self.errors = errors or []


class ItemAnalysisError(ToolscoutError):
    """Failure attributable to a single tool; the batch continues."""
    kind = ErrorKind.ITEM_ANALYSIS

    def __init__(self, tool_id: str, tool_name: str, cause: Optional[BaseException] = None,
                 message: Optional[str] = None):
        if message is None:
            message = f"Failed to analyze tool: {tool_name}"
            if cause is not None:
                message += f" ({cause})"
        details = {"tool_id": tool_id}
        if isinstance(cause, ToolscoutError):
            details["cause_kind"] = cause.kind.value
        super().__init__(message, component="pipeline", details=details)
        self.tool_id = tool_id
        self.tool_name = tool_name
        self.cause = cause

    @property
    def cause_kind(self) -> ErrorKind:
        if isinstance(self.cause, ToolscoutError):
            return self.cause.kind
        return self.kind


class ConfigurationError(ToolscoutError):
    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, component="config", details=details)


def is_retryable(error: BaseException) -> bool:
    """Only rate limits and transient network failures are worth retrying."""
    return isinstance(error, ToolscoutError) and error.kind in RETRYABLE_KINDS


def error_kind(error: BaseException) -> Optional[ErrorKind]:
    if isinstance(error, ToolscoutError):
        return error.kind
    return None


class AsyncErrorContext:
    """
    Async context manager for error handling.

    Example:
        async with AsyncErrorContext("github", "Search failed"):
            results = await source.search(10)
    """

    def __init__(self, component: str, message: str,
                 error_class: Type[ToolscoutError] = ToolscoutError):
        self.component = component
        self.message = message
        self.error_class = error_class

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            return False

        # Typed errors pass through untouched, anything else gets wrapped
        if isinstance(exc_val, ToolscoutError) or not isinstance(exc_val, Exception):
            return False

        logger.error(f"Error in {self.component}: {self.message} - {exc_val}")
        raise self.error_class(
            message=f"{self.message}: {exc_val}",
            component=self.component,
            details={"original_error": exc_type.__name__},
        ) from exc_val
