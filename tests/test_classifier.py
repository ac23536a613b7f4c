"""
Test the classification engine with a fake LLM provider.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from toolscout.classifier.engine import ClassificationEngine
from toolscout.classifier.models import PluginTemplate
from toolscout.classifier.prompt import build_prompt
from toolscout.sources.models import StdioConnection
from toolscout.utils.error_handling import (
    AuthenticationError,
    ResponseParseError,
    ResponseValidationError,
    TransientNetworkError,
)

STDIO_REPLY = json.dumps({
    "template": "mcp-stdio",
    "reasoning": "Ships an executable that speaks MCP over stdio.",
    "config": {
        "identifier": "defi-mcp",
        "customParams": {"mcp": {"type": "stdio", "command": "npx", "args": ["@acme/defi-mcp"], "env": {}}},
    },
})


def fake_llm(*replies):
    llm = MagicMock()
    llm.name = "openai"
    llm.model = "gpt-test"
    llm.invoke = AsyncMock(side_effect=list(replies))
    return llm


@pytest.mark.asyncio
async def test_classify_returns_decision(settings, make_tool):
    """Test that a well-formed reply becomes a TemplateDecision."""
    llm = fake_llm(STDIO_REPLY)
    engine = ClassificationEngine(settings, llm=llm)

    decision = await engine.classify(make_tool("@acme/defi-mcp"))

    assert decision.template == PluginTemplate.MCP_STDIO
    assert decision.config.connection == StdioConnection(command="npx", args=["@acme/defi-mcp"])
    llm.invoke.assert_called_once()
    assert "@acme/defi-mcp" in llm.invoke.call_args.args[0]
    assert engine.provider_info() == {"provider": "openai", "model": "gpt-test"}


class ScriptedLLM:
    """Provider whose invoke is a plain coroutine function."""

    name = "openai"
    model = "gpt-test"

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    async def invoke(self, prompt):
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.mark.asyncio
async def test_classify_with_coroutine_provider(settings, make_tool):
    """Test that a provider defined with async def is awaited, retried and parsed."""
    llm = ScriptedLLM(TransientNetworkError("openai", status=503), STDIO_REPLY)
    engine = ClassificationEngine(settings, llm=llm)

    decision = await engine.classify(make_tool("@acme/defi-mcp"))

    assert decision.template == PluginTemplate.MCP_STDIO
    assert len(llm.prompts) == 2


@pytest.mark.asyncio
async def test_coroutine_provider_authentication_propagates(settings, make_tool):
    engine = ClassificationEngine(settings, llm=ScriptedLLM(AuthenticationError("openai"), STDIO_REPLY))

    with pytest.raises(AuthenticationError):
        await engine.classify(make_tool())


@pytest.mark.asyncio
async def test_classify_retries_transient_failures(settings, make_tool):
    llm = fake_llm(TransientNetworkError("openai", status=503), STDIO_REPLY)
    engine = ClassificationEngine(settings, llm=llm)

    decision = await engine.classify(make_tool())

    assert decision.template == PluginTemplate.MCP_STDIO
    assert llm.invoke.call_count == 2


@pytest.mark.asyncio
async def test_classify_does_not_retry_authentication(settings, make_tool):
    llm = fake_llm(AuthenticationError("openai"), STDIO_REPLY)
    engine = ClassificationEngine(settings, llm=llm)

    with pytest.raises(AuthenticationError):
        await engine.classify(make_tool())

    assert llm.invoke.call_count == 1


@pytest.mark.asyncio
async def test_unparsable_reply(settings, make_tool):
    """Test that prose without JSON fails with a parse error and no guessed decision."""
    engine = ClassificationEngine(settings, llm=fake_llm("Sure, here is the answer: {not json"))

    with pytest.raises(ResponseParseError):
        await engine.classify(make_tool())


@pytest.mark.asyncio
async def test_inconsistent_reply(settings, make_tool):
    reply = json.dumps({
        "template": "mcp-http",
        "reasoning": "Remote server",
        "config": {"identifier": "x", "customParams": {"mcp": {"type": "stdio", "command": "npx"}}},
    })
    engine = ClassificationEngine(settings, llm=fake_llm(reply))

    with pytest.raises(ResponseValidationError):
        await engine.classify(make_tool())


def test_quick_payload_for_protocol_decision(stdio_decision):
    payload = ClassificationEngine.build_quick_connection_payload(stdio_decision("defi-mcp", "@acme/defi-mcp"))

    assert json.loads(payload) == {
        "mcpServers": {
            "defi-mcp": {"type": "stdio", "command": "npx", "args": ["@acme/defi-mcp"], "env": {}},
        }
    }


def test_no_quick_payload_for_standard_decision(basic_decision):
    assert ClassificationEngine.build_quick_connection_payload(basic_decision) is None


@patch("toolscout.classifier.engine.create_provider")
def test_engine_resolves_provider_once(mock_create_provider, settings):
    mock_create_provider.return_value = fake_llm()

    ClassificationEngine(settings, provider="anthropic", model="claude-test")

    mock_create_provider.assert_called_once_with(settings, provider="anthropic", model="claude-test")


def test_prompt_contents(make_tool):
    """Test that the prompt carries taxonomy, signals and a truncated readme."""
    tool = make_tool(
        "@acme/defi-mcp",
        readme="x" * 5000,
        manifest={"name": "@acme/defi-mcp", "bin": {"defi-mcp": "dist/index.js"},
                  "dependencies": {"@modelcontextprotocol/sdk": "^1"}},
        has_package_manifest=True,
        pre_detected_connection=StdioConnection(command="npx", args=["@acme/defi-mcp"]),
    )

    prompt = build_prompt(tool, readme_budget=100)

    for template in PluginTemplate:
        assert template.value in prompt
    assert "supports MCP: yes" in prompt
    assert "@modelcontextprotocol/sdk" in prompt
    assert '"command": "npx"' in prompt
    assert "x" * 101 not in prompt
    assert "[truncated]" in prompt
