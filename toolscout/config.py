"""
Configuration settings for toolscout.

Settings are resolved once at startup by ``load_settings()`` and passed
explicitly into the sources, the classification engine and the orchestrator.
"""

import logging
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from toolscout.utils.resilience import RetryPolicy


# Topical filter applied before any model call. Kept as configuration so the
# pipeline itself stays domain-agnostic.
DEFAULT_RELEVANCE_KEYWORDS = [
    "crypto", "cryptocurrency", "defi", "blockchain", "web3",
    "ethereum", "eth", "solana", "sol", "bitcoin", "btc",
    "wallet", "token", "nft", "dex", "swap", "staking",
    "yield", "bridge", "chain", "smart contract", "erc20",
    "erc721", "uniswap", "aave", "compound", "lending",
    "liquidity", "vault", "protocol", "onchain", "on-chain",
    "web3.js", "ethers", "viem", "wagmi", "rainbowkit",
]


class Settings(BaseSettings):
    """
    Application settings.

    Load configuration from environment variables or .env file.
    """
    # AI provider credentials and selection
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    ai_provider: Optional[str] = None
    ai_model: Optional[str] = None
    openai_model: str = "gpt-4o"
    anthropic_model: str = "claude-sonnet-4-20250514"
    ai_temperature: float = 0.2
    ai_max_tokens: int = 2000

    # Registry endpoints
    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    npm_registry_url: str = "https://registry.npmjs.org"

    # Resilience
    max_retries: int = 3
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 30000
    request_timeout_seconds: float = 30.0

    # Discovery
    enrichment_batch_size: int = 5
    search_deadline_seconds: float = 120.0
    # Each source is asked for limit * factor hits so filtering still leaves enough candidates
    search_oversample_factor: int = 3
    default_max_age_months: int = 12
    readme_char_budget: int = 2000
    relevance_keywords: List[str] = Field(default_factory=lambda: list(DEFAULT_RELEVANCE_KEYWORDS))
    github_queries: Optional[List[str]] = None
    npm_queries: Optional[List[str]] = None

    # Logging settings
    log_level: str = "INFO"
    log_file: Optional[str] = None
    enable_file_logging: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy used for every outbound call."""
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.retry_base_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
        )

    def available_providers(self) -> List[str]:
        """Names of the AI providers that have credentials configured."""
        providers = []
        if self.openai_api_key:
            providers.append("openai")
        if self.anthropic_api_key:
            providers.append("anthropic")
        return providers

    def validate_settings(self) -> Dict[str, str]:
        """
        Validate all settings and return any warnings or errors.

        Returns:
            Dictionary of validation messages
        """
        validation_messages = {}

        if not self.available_providers():
            validation_messages["missing_api_keys"] = (
                "Missing AI credentials: set OPENAI_API_KEY or ANTHROPIC_API_KEY "
                "(dry runs still work)"
            )

        if self.ai_provider and self.ai_provider.lower() not in ("openai", "anthropic"):
            validation_messages["ai_provider"] = f"Unknown AI_PROVIDER: {self.ai_provider}"

        if not self.github_token:
            validation_messages["github_token"] = (
                "No GITHUB_TOKEN configured, GitHub search runs with the anonymous rate limit"
            )

        if self.retry_base_delay_ms > self.retry_max_delay_ms:
            validation_messages["retry_delays"] = "RETRY_BASE_DELAY_MS is larger than RETRY_MAX_DELAY_MS"

        return validation_messages

    def configure_logging(self) -> None:
        """Configure logging based on settings."""
        log_level = getattr(logging, self.log_level.upper(), logging.INFO)

        logging_config = {
            'level': log_level,
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S',
        }

        if self.enable_file_logging and self.log_file:
            logging_config['filename'] = self.log_file
            logging_config['filemode'] = 'a'

        logging.basicConfig(**logging_config)

        # Reduce noise from SDK and HTTP client loggers
        for noisy in ("openai", "anthropic", "httpx", "aiohttp"):
            logging.getLogger(noisy).setLevel(logging.WARNING)


def load_settings(env_file: Optional[str] = ".env", **overrides) -> Settings:
    """
    Resolve settings from the environment, an optional .env file and explicit overrides.

    Args:
        env_file: Path of the .env file to load (None to skip)
        **overrides: Values that win over anything found in the environment

    Returns:
        A fully resolved Settings instance
    """
    if env_file:
        load_dotenv(env_file)
    return Settings(_env_file=env_file, **overrides)


def print_settings(settings: Settings, include_secrets: bool = False) -> str:
    """
    Generate a printable string of the given settings.

    Args:
        settings: Settings to render
        include_secrets: Whether to include secret values like API keys

    Returns:
        String representation of settings
    """
    secret_fields = {"openai_api_key", "anthropic_api_key", "github_token"}

    lines = ["Current Settings:"]

    for key, value in sorted(settings.model_dump().items()):
        if key in secret_fields and not include_secrets:
            if value:
                value = f"{'*' * 8}{value[-4:]}" if isinstance(value, str) and len(value) > 4 else "********"
            else:
                value = "Not set"

        lines.append(f"  {key}: {value}")

    return "\n".join(lines)


def validate_environment(settings: Settings) -> None:
    """
    Validate the environment and log warnings.
    """
    logger = logging.getLogger(__name__)

    validation_messages = settings.validate_settings()

    if validation_messages:
        logger.warning("Environment validation found issues:")
        for category, message in validation_messages.items():
            logger.warning(f"  {category}: {message}")
    else:
        logger.info("Environment validation: All checks passed")
