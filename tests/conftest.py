"""
Shared fixtures for the toolscout tests.
"""

import pytest

from toolscout.classifier.models import MCPPluginConfig, PluginTemplate, StandardPluginConfig, TemplateDecision
from toolscout.config import Settings
from toolscout.sources.models import DiscoveredTool, SourceKind, StdioConnection, make_tool_id

# Anything the developer's shell exports must not leak into the tests
ENV_VARS = [
    "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "AI_PROVIDER", "AI_MODEL", "OPENAI_MODEL", "ANTHROPIC_MODEL",
    "GITHUB_TOKEN", "GITHUB_API_URL", "NPM_REGISTRY_URL", "MAX_RETRIES", "RETRY_BASE_DELAY_MS",
    "RETRY_MAX_DELAY_MS", "LOG_LEVEL", "LOG_FILE", "ENABLE_FILE_LOGGING", "RELEVANCE_KEYWORDS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings():
    """Settings with an OpenAI key and near-zero retry delays."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        max_retries=2,
        retry_base_delay_ms=1,
        retry_max_delay_ms=5,
        enrichment_batch_size=2,
    )


@pytest.fixture
def keyless_settings():
    return Settings(_env_file=None, retry_base_delay_ms=1, retry_max_delay_ms=5)


@pytest.fixture
def make_tool():
    """Factory for finalized, MCP-compatible DiscoveredTool records."""
    def factory(name="defi-mcp", source=SourceKind.NPM, **overrides):
        fields = {
            "id": make_tool_id(source, name),
            "name": name,
            "description": f"{name}: DeFi tools over the Model Context Protocol",
            "source": source,
            "source_url": f"https://example.com/{name}",
            "supports_target_protocol": True,
        }
        fields.update(overrides)
        return DiscoveredTool(**fields)
    return factory


@pytest.fixture
def stdio_decision():
    def factory(identifier="defi-mcp", package="@acme/defi-mcp"):
        return TemplateDecision(
            template=PluginTemplate.MCP_STDIO,
            reasoning="Published package with an executable entry that speaks MCP over stdio.",
            config=MCPPluginConfig(
                identifier=identifier,
                customParams={
                    "mcp": StdioConnection(command="npx", args=[package]),
                    "description": "DeFi tools",
                },
            ),
        )
    return factory


@pytest.fixture
def basic_decision():
    return TemplateDecision(
        template=PluginTemplate.BASIC,
        reasoning="Plain function calls, nothing to configure.",
        config=StandardPluginConfig(identifier="price-lookup", author="acme"),
    )
