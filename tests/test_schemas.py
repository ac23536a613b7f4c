"""
Test the template decision and plugin config models.
"""

import pytest
from pydantic import ValidationError

from toolscout.classifier.models import MCPPluginConfig, PluginTemplate, StandardPluginConfig, TemplateDecision
from toolscout.sources.models import HttpConnection, StdioConnection

STANDARD_CONFIG = {
    "identifier": "defi-dashboard",
    "manifest": "https://acme.example/manifest.json",
    "author": "acme",
    "meta": {"title": "DeFi Dashboard", "description": "Portfolio overview", "avatar": "📈", "tags": ["defi"]},
}

HTTP_CONFIG = {
    "identifier": "defi-remote",
    "customParams": {
        "mcp": {"type": "http", "url": "https://mcp.acme.example/sse", "auth": {"type": "bearer", "token": "t"}},
        "description": "Remote DeFi tools",
    },
}

STDIO_CONFIG = {
    "identifier": "defi-mcp",
    "customParams": {
        "mcp": {"type": "stdio", "command": "npx", "args": ["@acme/defi-mcp"], "env": {}},
        "avatar": "🦊",
    },
}


@pytest.mark.parametrize("template", list(PluginTemplate))
def test_every_template_round_trips(template):
    """Test that serializing and re-validating a decision yields an equal decision."""
    config = {
        PluginTemplate.MCP_HTTP: HTTP_CONFIG,
        PluginTemplate.MCP_STDIO: STDIO_CONFIG,
    }.get(template, STANDARD_CONFIG)
    decision = TemplateDecision.model_validate({"template": template.value, "reasoning": "because", "config": config})

    wire = decision.to_wire()

    assert wire["template"] == template.value
    assert TemplateDecision.model_validate(wire) == decision


def test_mcp_config_parses_connection_variants():
    http = TemplateDecision.model_validate({"template": "mcp-http", "reasoning": "r", "config": HTTP_CONFIG})
    stdio = TemplateDecision.model_validate({"template": "mcp-stdio", "reasoning": "r", "config": STDIO_CONFIG})

    assert isinstance(http.config, MCPPluginConfig)
    assert isinstance(http.config.connection, HttpConnection)
    assert http.config.connection.auth.token == "t"
    assert isinstance(stdio.config.connection, StdioConnection)
    assert stdio.to_wire()["config"]["customParams"]["mcp"]["command"] == "npx"


def test_standard_config_for_non_protocol_template():
    decision = TemplateDecision.model_validate({"template": "openapi", "reasoning": "r", "config": STANDARD_CONFIG})

    assert isinstance(decision.config, StandardPluginConfig)
    assert decision.config.meta.title == "DeFi Dashboard"


def test_connection_type_must_match_template():
    """Test that a protocol template carrying the other connection variant is rejected."""
    with pytest.raises(ValidationError, match="requires a 'http' connection"):
        TemplateDecision.model_validate({"template": "mcp-http", "reasoning": "r", "config": STDIO_CONFIG})

    with pytest.raises(ValidationError, match="requires a 'stdio' connection"):
        TemplateDecision.model_validate({"template": "mcp-stdio", "reasoning": "r", "config": HTTP_CONFIG})


def test_protocol_template_requires_mcp_config():
    with pytest.raises(ValidationError):
        TemplateDecision.model_validate({"template": "mcp-http", "reasoning": "r", "config": STANDARD_CONFIG})


def test_standard_template_rejects_mcp_config():
    with pytest.raises(ValidationError, match="must not carry an MCP connection"):
        TemplateDecision.model_validate({"template": "basic", "reasoning": "r", "config": STDIO_CONFIG})


def test_unknown_template_rejected():
    with pytest.raises(ValidationError):
        TemplateDecision.model_validate({"template": "plugin-x", "reasoning": "r", "config": STANDARD_CONFIG})


def test_unknown_connection_type_rejected():
    config = {"identifier": "x", "customParams": {"mcp": {"type": "websocket", "url": "wss://x"}}}

    with pytest.raises(ValidationError):
        TemplateDecision.model_validate({"template": "mcp-http", "reasoning": "r", "config": config})
