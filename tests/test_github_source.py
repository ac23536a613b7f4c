"""
Test the GitHub source adapter against canned API responses.
"""

import base64
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from toolscout.sources.github import GitHubSource
from toolscout.sources.models import SourceKind, StdioConnection
from toolscout.utils.error_handling import RateLimitedError, RequestError
from toolscout.utils.resilience import HTTPResponse


def _iso(days_ago):
    return (datetime.now(timezone.utc) - timedelta(days=days_ago)).strftime("%Y-%m-%dT%H:%M:%SZ")


def _repo(full_name, days_ago=10, **extra):
    owner, name = full_name.split("/")
    item = {
        "full_name": full_name,
        "name": name,
        "description": f"{name} MCP server for DeFi",
        "html_url": f"https://github.com/{full_name}",
        "owner": {"login": owner},
        "license": {"spdx_id": "MIT"},
        "topics": ["mcp", "defi"],
        "stargazers_count": 42,
        "pushed_at": _iso(days_ago),
    }
    item.update(extra)
    return item


def _contents(text, download_url=None):
    return {
        "encoding": "base64",
        "content": base64.b64encode(text.encode("utf-8")).decode("ascii"),
        "download_url": download_url,
    }


def _json_response(url, data, status=200):
    return HTTPResponse(status=status, url=url, text=json.dumps(data))


def make_router(routes):
    """AsyncMock side effect that answers by URL suffix, 404 otherwise."""
    async def get(url, params=None):
        for suffix, data in routes.items():
            if url.endswith(suffix):
                return _json_response(url, data)
        return HTTPResponse(status=404, url=url, text="{}")
    return get


@pytest.mark.asyncio
async def test_search_builds_tools_with_readme_and_manifest(settings):
    """Test that search hits are enriched with README and package.json."""
    package_json = {
        "name": "@acme/defi-mcp",
        "bin": {"defi-mcp": "dist/index.js"},
        "dependencies": {"@modelcontextprotocol/sdk": "^1.0.0"},
    }
    source = GitHubSource(settings, queries=["mcp server defi"])
    source._get = AsyncMock(side_effect=make_router({
        "/search/repositories": {"items": [_repo("acme/defi-mcp")]},
        "/repos/acme/defi-mcp/readme": _contents("# DeFi MCP\nSwap tokens."),
        "/repos/acme/defi-mcp/contents/package.json": _contents(
            json.dumps(package_json), "https://raw.githubusercontent.com/acme/defi-mcp/main/package.json"
        ),
    }))

    tools = await source.search(5, max_age_months=12)

    assert len(tools) == 1
    tool = tools[0]
    assert tool.id == "github:acme/defi-mcp"
    assert tool.source == SourceKind.GITHUB
    assert tool.author == "acme"
    assert tool.license == "MIT"
    assert tool.stars == 42
    assert tool.readme.startswith("# DeFi MCP")
    assert tool.manifest["name"] == "@acme/defi-mcp"
    assert tool.manifest_url.endswith("package.json")
    assert tool.has_package_manifest
    assert tool.supports_target_protocol
    assert tool.pre_detected_connection == StdioConnection(command="npx", args=["@acme/defi-mcp"])

    search_params = source._get.call_args_list[0].kwargs["params"]
    assert "pushed:>" in search_params["q"]
    assert search_params["sort"] == "stars"


@pytest.mark.asyncio
async def test_search_drops_stale_and_duplicate_repos(settings):
    source = GitHubSource(settings, queries=["mcp server defi", "mcp server web3"])
    source._get = AsyncMock(side_effect=make_router({
        "/search/repositories": {"items": [_repo("acme/fresh-mcp"), _repo("acme/old-mcp", days_ago=800)]},
    }))

    tools = await source.search(5, max_age_months=12)

    assert [tool.id for tool in tools] == ["github:acme/fresh-mcp"]
    # Missing README and package.json do not drop the candidate
    assert tools[0].readme is None
    assert not tools[0].has_package_manifest
    assert tools[0].supports_target_protocol


@pytest.mark.asyncio
async def test_search_respects_max_results(settings):
    items = [_repo(f"acme/tool-{i}-mcp") for i in range(6)]
    source = GitHubSource(settings, queries=["mcp server defi"])
    source._get = AsyncMock(side_effect=make_router({"/search/repositories": {"items": items}}))

    tools = await source.search(3)

    assert [tool.name for tool in tools] == ["tool-0-mcp", "tool-1-mcp", "tool-2-mcp"]


@pytest.mark.asyncio
async def test_search_failure_returns_empty_list(settings):
    """Test that a failing primary search contributes zero items instead of raising."""
    source = GitHubSource(settings, queries=["mcp server defi"])
    source._get = AsyncMock(side_effect=RateLimitedError("github", retry_after=60))

    assert await source.search(5) == []


@pytest.mark.asyncio
async def test_fetch_one(settings):
    source = GitHubSource(settings)
    source._get = AsyncMock(side_effect=make_router({
        "/repos/acme/defi-mcp": _repo("acme/defi-mcp"),
    }))

    tool = await source.fetch_one("acme/defi-mcp")

    assert tool.id == "github:acme/defi-mcp"
    assert tool.native_id == "acme/defi-mcp"
    assert await source.fetch_one("acme/missing") is None

    with pytest.raises(RequestError):
        await source.fetch_one("not-a-repo")


def test_authorization_header(keyless_settings):
    assert "Authorization" not in GitHubSource(keyless_settings)._default_headers()

    settings = keyless_settings.model_copy(update={"github_token": "ghp_test"})
    assert GitHubSource(settings)._default_headers()["Authorization"] == "Bearer ghp_test"
