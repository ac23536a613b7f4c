"""
Test the error taxonomy and the error context helper.
"""

import pytest

from toolscout.utils.error_handling import (
    AsyncErrorContext,
    AuthenticationError,
    ErrorKind,
    ItemAnalysisError,
    RateLimitedError,
    ResponseValidationError,
    ToolscoutError,
    TransientNetworkError,
    error_kind,
    is_retryable,
)


def test_only_rate_limits_and_network_errors_are_retryable():
    assert is_retryable(RateLimitedError("github"))
    assert is_retryable(TransientNetworkError("https://x", status=500))
    assert not is_retryable(AuthenticationError("openai"))
    assert not is_retryable(ResponseValidationError("bad"))
    assert not is_retryable(ValueError("plain"))


def test_authentication_error_names_the_variable():
    """Test that the message tells the user which variable to set."""
    error = AuthenticationError("anthropic")

    assert error.kind == ErrorKind.AUTHENTICATION
    assert "ANTHROPIC_API_KEY" in str(error)


def test_item_analysis_error_keeps_cause_kind():
    cause = ResponseValidationError("config does not match template")
    error = ItemAnalysisError("npm:defi-mcp", "defi-mcp", cause=cause)

    assert error.cause_kind == ErrorKind.RESPONSE_VALIDATION
    assert error.details["cause_kind"] == "response_validation"
    assert error.to_dict()["kind"] == "item_analysis"

    assert ItemAnalysisError("npm:x", "x", cause=KeyError("k")).cause_kind == ErrorKind.ITEM_ANALYSIS


def test_error_kind_of_foreign_exception_is_none():
    assert error_kind(RuntimeError("boom")) is None
    assert error_kind(RateLimitedError("npm")) == ErrorKind.RATE_LIMITED


@pytest.mark.asyncio
async def test_async_error_context_wraps_unexpected_errors():
    """Test that a foreign exception is wrapped with its cause preserved."""
    with pytest.raises(ToolscoutError) as exc_info:
        async with AsyncErrorContext("openai", "Model invocation failed"):
            raise KeyError("choices")

    assert exc_info.value.component == "openai"
    assert exc_info.value.details["original_error"] == "KeyError"
    assert isinstance(exc_info.value.__cause__, KeyError)


@pytest.mark.asyncio
async def test_async_error_context_passes_typed_errors_through():
    original = RateLimitedError("openai", retry_after=3)

    with pytest.raises(RateLimitedError) as exc_info:
        async with AsyncErrorContext("openai", "Model invocation failed"):
            raise original

    assert exc_info.value is original
