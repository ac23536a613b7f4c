"""
LLM providers for the classification engine.

Each provider exposes ``invoke(prompt) -> str`` and maps its SDK's
exceptions onto the toolscout error taxonomy so the resilience layer can
decide what to retry. SDK-level retries are disabled for the same reason.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from types import ModuleType
from typing import Optional

import anthropic
import openai

from toolscout.classifier.prompt import SYSTEM_MESSAGE
from toolscout.config import Settings
from toolscout.utils.error_handling import (
    AsyncErrorContext,
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    RateLimitedError,
    RequestError,
    ToolscoutError,
    TransientNetworkError,
)
from toolscout.utils.resilience import get_retry_after

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


DEFAULT_PROVIDER = ProviderKind.OPENAI


def _provider_kind(value: str) -> ProviderKind:
    try:
        return ProviderKind(value.strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown AI provider: {value}",
            details={"known": [p.value for p in ProviderKind]},
        )


def select_provider(
    explicit: Optional[str],
    env_override: Optional[str],
    openai_key_present: bool,
    anthropic_key_present: bool,
    default: ProviderKind = DEFAULT_PROVIDER,
) -> ProviderKind:
    """
    Resolve which provider to use.

    Order: explicit configuration, then the environment override, then the
    only provider with credentials, then the default.
    """
    if explicit:
        return _provider_kind(explicit)
    if env_override:
        return _provider_kind(env_override)
    if openai_key_present != anthropic_key_present:
        return ProviderKind.OPENAI if openai_key_present else ProviderKind.ANTHROPIC
    return default


def map_sdk_error(sdk: ModuleType, error: Exception, provider: str) -> Optional[ToolscoutError]:
    """
    Translate an openai/anthropic SDK exception.

    ``sdk`` is the ``openai`` or ``anthropic`` module; both expose the same
    exception class names.
    """
    if isinstance(error, sdk.RateLimitError):
        return RateLimitedError(provider, get_retry_after(error.response.headers))
    if isinstance(error, sdk.APIConnectionError):
        return TransientNetworkError(provider, message=f"Connection to {provider} failed: {error}", component=provider)
    if isinstance(error, (sdk.AuthenticationError, sdk.PermissionDeniedError)):
        return AuthenticationError(provider, f"{provider} rejected the credentials: {error}")
    if isinstance(error, sdk.NotFoundError):
        return NotFoundError(f"{provider} model or endpoint", component=provider)
    if isinstance(error, sdk.APIStatusError):
        if error.status_code >= 500:
            return TransientNetworkError(provider, status=error.status_code, component=provider)
        return RequestError(provider, status=error.status_code, message=str(error), component=provider)
    return None


class LLMProvider(ABC):
    """A chat model that turns one prompt into one text reply."""

    kind: ProviderKind

    def __init__(self, model: str, temperature: float = 0.2, max_tokens: int = 2000):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def name(self) -> str:
        return self.kind.value

    @abstractmethod
    async def _complete(self, prompt: str) -> str:
        raise NotImplementedError

    async def invoke(self, prompt: str) -> str:
        """Send ``prompt`` and return the reply text, raising typed errors."""
        async with AsyncErrorContext(self.name, "Model invocation failed"):
            return await self._complete(prompt)


class OpenAIProvider(LLMProvider):
    kind = ProviderKind.OPENAI

    def __init__(self, api_key: str, model: str, temperature: float = 0.2, max_tokens: int = 2000,
                 timeout: float = 60.0, client: Optional[openai.AsyncOpenAI] = None):
        super().__init__(model, temperature, max_tokens)
        self.client = client or openai.AsyncOpenAI(api_key=api_key, max_retries=0, timeout=timeout)

    async def _complete(self, prompt: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.APIError as e:
            mapped = map_sdk_error(openai, e, self.name)
            if mapped is None:
                raise
            raise mapped from e

        return response.choices[0].message.content or ""


class AnthropicProvider(LLMProvider):
    kind = ProviderKind.ANTHROPIC

    def __init__(self, api_key: str, model: str, temperature: float = 0.2, max_tokens: int = 2000,
                 timeout: float = 60.0, client: Optional[anthropic.AsyncAnthropic] = None):
        super().__init__(model, temperature, max_tokens)
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, max_retries=0, timeout=timeout)

    async def _complete(self, prompt: str) -> str:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=SYSTEM_MESSAGE,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            mapped = map_sdk_error(anthropic, e, self.name)
            if mapped is None:
                raise
            raise mapped from e

        return "".join(block.text for block in response.content if getattr(block, "type", None) == "text")


def create_provider(settings: Settings, provider: Optional[str] = None, model: Optional[str] = None) -> LLMProvider:
    """
    Build the provider selected for this engine instance.

    Raises:
        AuthenticationError: if the selected provider has no API key
        ConfigurationError: if the provider name is unknown
    """
    kind = select_provider(
        provider,
        settings.ai_provider,
        bool(settings.openai_api_key),
        bool(settings.anthropic_api_key),
    )
    timeout = settings.request_timeout_seconds * 2

    if kind == ProviderKind.OPENAI:
        if not settings.openai_api_key:
            raise AuthenticationError("openai")
        chosen_model = model or settings.ai_model or settings.openai_model
        logger.info(f"Using OpenAI provider with model {chosen_model}")
        return OpenAIProvider(settings.openai_api_key, chosen_model, settings.ai_temperature,
                              settings.ai_max_tokens, timeout=timeout)

    if not settings.anthropic_api_key:
        raise AuthenticationError("anthropic")
    chosen_model = model or settings.ai_model or settings.anthropic_model
    logger.info(f"Using Anthropic provider with model {chosen_model}")
    return AnthropicProvider(settings.anthropic_api_key, chosen_model, settings.ai_temperature,
                             settings.ai_max_tokens, timeout=timeout)
