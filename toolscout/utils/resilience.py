"""
Retry and rate-limit handling for every outbound call.

``with_retry`` wraps an async operation in a tenacity retry loop that only
retries rate limits and transient network failures. ``resilient_fetch`` is
the HTTP entry point used by the source adapters.
"""

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

import aiohttp
from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception, stop_after_attempt

from toolscout.utils.error_handling import (
    AuthenticationError,
    ErrorKind,
    NotFoundError,
    RateLimitedError,
    RequestError,
    TransientNetworkError,
    error_kind,
    is_retryable,
)

T = TypeVar('T')

logger = logging.getLogger(__name__)

MAX_JITTER = 0.3


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000


@dataclass
class RetryContext:
    """State of one resilient call, handed to ``on_retry`` callbacks."""
    attempt: int
    elapsed: float
    last_error_kind: Optional[ErrorKind]
    delay_ms: int


def calculate_backoff(attempt: int, base_delay_ms: int, max_delay_ms: int,
                      jitter: Optional[float] = None) -> int:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Zero-based retry attempt
        base_delay_ms: Delay for the first retry
        max_delay_ms: Upper bound on any delay
        jitter: Jitter fraction in [0, 0.3); random when omitted

    Returns:
        Delay in milliseconds
    """
    if jitter is None:
        jitter = random.random() * MAX_JITTER
    exponential_delay = base_delay_ms * (2 ** attempt)
    delay = min(exponential_delay * (1 + jitter), max_delay_ms)
    return int(delay)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    name = name.lower()
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def get_retry_after(headers: Mapping[str, str], now: Optional[float] = None) -> Optional[float]:
    """
    Extract a retry-after hint in seconds from response headers.

    ``Retry-After`` wins; otherwise GitHub's ``X-RateLimit-Reset`` unix
    timestamp is converted relative to ``now``. Callers cap the hint at the
    policy maximum.
    """
    retry_after = _header(headers, "retry-after")
    if retry_after:
        try:
            return float(int(retry_after))
        except ValueError:
            pass

    reset_at = _header(headers, "x-ratelimit-reset")
    if reset_at:
        try:
            reset_time = int(reset_at)
        except ValueError:
            return None
        now = time.time() if now is None else now
        if reset_time > now:
            return float(int(reset_time - now + 0.999))

    return None


def _wait_for(policy: RetryPolicy) -> Callable[[RetryCallState], float]:
    def wait(retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitedError) and error.retry_after:
            return min(float(error.retry_after), policy.max_delay_ms / 1000.0)
        delay_ms = calculate_backoff(retry_state.attempt_number - 1, policy.base_delay_ms, policy.max_delay_ms)
        return delay_ms / 1000.0
    return wait


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_retry: Optional[Callable[[RetryContext], None]] = None,
    description: str = "operation",
) -> T:
    """
    Run ``operation`` retrying rate limits and transient failures.

    Args:
        operation: Zero-argument callable returning an awaitable
        policy: Retry policy (defaults: 3 retries, 1s base, 30s cap)
        sleep: Awaitable sleep used between attempts
        on_retry: Optional callback invoked before each backoff sleep
        description: Label used in log messages

    Returns:
        The operation's result

    Raises:
        The first non-retryable error immediately, or the last retryable
        error once ``max_retries`` retries are spent (``retries_exhausted``
        is set on it).
    """
    policy = policy or RetryPolicy()

    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        delay_ms = int((retry_state.next_action.sleep if retry_state.next_action else 0) * 1000)
        logger.warning(
            f"Retry attempt {retry_state.attempt_number}/{policy.max_retries} for {description} "
            f"after {delay_ms}ms: {error}"
        )
        if on_retry:
            on_retry(RetryContext(
                attempt=retry_state.attempt_number,
                elapsed=retry_state.seconds_since_start or 0.0,
                last_error_kind=error_kind(error),
                delay_ms=delay_ms,
            ))

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=_wait_for(policy),
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep,
        sleep=sleep,
    )

    async def attempt() -> T:
        return await operation()

    try:
        return await retrying(attempt)
    except RetryError as exc:
        last_error = exc.last_attempt.exception()
        logger.error(f"{description} failed after {policy.max_retries} retries: {last_error}")
        last_error.retries_exhausted = True
        last_error.details["retries_exhausted"] = True
        raise last_error from None


@dataclass
class HTTPResponse:
    """Fully read HTTP response; the connection is already released."""
    status: int
    url: str
    text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.text)

    def raise_for_status(self, component: str = "http") -> None:
        """Map a non-success status onto the error taxonomy."""
        if self.ok:
            return
        if self.status in (401, 403):
            raise AuthenticationError(component, f"Request to {self.url} was refused (status: {self.status})")
        if self.status == 404:
            raise NotFoundError(self.url, component=component)
        raise RequestError(self.url, status=self.status, component=component)


def classify_response(response: HTTPResponse, provider: str) -> HTTPResponse:
    """Raise a retryable error for rate limits and 5xx, return the response otherwise."""
    if response.status == 429:
        raise RateLimitedError(provider, get_retry_after(response.headers), details={"url": response.url})

    if response.status == 403:
        # A 403 is only a rate limit when the remaining quota reads zero
        if _header(response.headers, "x-ratelimit-remaining") == "0":
            raise RateLimitedError(provider, get_retry_after(response.headers), details={"url": response.url})

    if response.status >= 500:
        raise TransientNetworkError(response.url, response.status, component=provider)

    return response


async def resilient_fetch(
    session: aiohttp.ClientSession,
    url: str,
    policy: Optional[RetryPolicy] = None,
    method: str = "GET",
    provider: str = "http",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs,
) -> HTTPResponse:
    """
    Fetch ``url`` with retry and rate-limit handling.

    Returns:
        The response for any status that is not retryable; callers decide
        what a 404 or 401 means via ``HTTPResponse.raise_for_status``.
    """
    async def fetch_once() -> HTTPResponse:
        logger.debug(f"Fetching: {url}")
        try:
            async with session.request(method, url, **kwargs) as response:
                text = await response.text()
                snapshot = HTTPResponse(
                    status=response.status,
                    url=url,
                    text=text,
                    headers={k.lower(): v for k, v in response.headers.items()},
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientNetworkError(url, message=f"Network request failed: {url} ({e})",
                                        component=provider) from e
        return classify_response(snapshot, provider)

    return await with_retry(fetch_once, policy, sleep=sleep, description=f"{method} {url}")
