"""
GitHub repository source.

Searches repositories with the GitHub search API and enriches each hit with
its README and package.json.
"""

import base64
import binascii
import json
from typing import Any, Dict, List, Optional, Tuple

from toolscout.sources.base import BaseSource, months_ago, parse_timestamp
from toolscout.sources.models import DiscoveredTool, SourceKind, make_tool_id
from toolscout.utils.error_handling import RequestError, ToolscoutError


class GitHubSource(BaseSource):
    """Discover MCP servers hosted on GitHub."""

    kind = SourceKind.GITHUB
    default_queries = [
        "mcp server crypto",
        "mcp server defi",
        "mcp server blockchain",
        "mcp server web3",
        "mcp server ethereum",
        "mcp server solana",
        "model context protocol wallet",
    ]

    def _configured_queries(self) -> Optional[List[str]]:
        return self.settings.github_queries

    @property
    def api_url(self) -> str:
        return self.settings.github_api_url.rstrip("/")

    def _default_headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": "toolscout",
            "Accept": "application/vnd.github+json",
        }
        if self.settings.github_token:
            headers["Authorization"] = f"Bearer {self.settings.github_token}"
        return headers

    def build_query(self, query: str, max_age_months: Optional[int]) -> str:
        if not max_age_months:
            return query
        cutoff = months_ago(max_age_months).date().isoformat()
        return f"{query} pushed:>{cutoff}"

    async def _search_query(self, query: str, max_results: int, max_age_months: Optional[int]) -> List[DiscoveredTool]:
        params = {
            "q": self.build_query(query, max_age_months),
            "sort": "stars",
            "order": "desc",
            "per_page": min(max(max_results, 1), 100),
        }
        response = await self._get(f"{self.api_url}/search/repositories", params=params)
        response.raise_for_status(component="github")

        data = response.json()
        return [self.repo_to_tool(item) for item in data.get("items", []) if item.get("full_name")]

    def repo_to_tool(self, item: Dict[str, Any]) -> DiscoveredTool:
        """Convert a repository object from the GitHub API into a tool record."""
        full_name = item["full_name"]
        html_url = item.get("html_url") or f"https://github.com/{full_name}"
        license_info = item.get("license") or {}
        owner = item.get("owner") or {}

        return DiscoveredTool(
            id=make_tool_id(SourceKind.GITHUB, full_name),
            name=item.get("name") or full_name.split("/")[-1],
            description=item.get("description") or "",
            source=SourceKind.GITHUB,
            source_url=html_url,
            license=license_info.get("spdx_id"),
            author=owner.get("login"),
            homepage=item.get("homepage") or None,
            repository_url=html_url,
            topics=item.get("topics") or [],
            stars=item.get("stargazers_count"),
            updated_at=parse_timestamp(item.get("pushed_at") or item.get("updated_at")),
        )

    async def _fetch_content(self, path: str) -> Tuple[Optional[str], Optional[str]]:
        """
        Fetch a base64-encoded contents document.

        Returns:
            Tuple of decoded text and its download URL; (None, None) when
            missing or unreadable
        """
        try:
            response = await self._get(f"{self.api_url}{path}")
            if not response.ok:
                if response.status != 404:
                    response.raise_for_status(component="github")
                return None, None
            data = response.json()
            content = data.get("content") or ""
            if data.get("encoding", "base64") == "base64":
                content = base64.b64decode(content).decode("utf-8", errors="replace")
            return content, data.get("download_url") or data.get("html_url")
        except ToolscoutError as e:
            self.logger.debug(f"Could not fetch {path}: {e}")
        except (ValueError, binascii.Error) as e:
            self.logger.debug(f"Could not decode {path}: {e}")
        return None, None

    async def analyze_repo(self, owner: str, repo: str) -> Dict[str, Any]:
        """
        Fetch the README and package.json of a repository.

        Both fetches are best-effort; missing documents come back as None.
        """
        readme, _ = await self._fetch_content(f"/repos/{owner}/{repo}/readme")
        raw_manifest, manifest_url = await self._fetch_content(f"/repos/{owner}/{repo}/contents/package.json")

        manifest = None
        if raw_manifest:
            try:
                parsed = json.loads(raw_manifest)
                manifest = parsed if isinstance(parsed, dict) else None
            except ValueError:
                self.logger.debug(f"package.json of {owner}/{repo} is not valid JSON")

        return {"readme": readme, "package_json": manifest, "manifest_url": manifest_url}

    async def _enrich(self, tool: DiscoveredTool) -> DiscoveredTool:
        owner, repo = tool.native_id.split("/", 1)
        analysis = await self.analyze_repo(owner, repo)
        manifest = analysis["package_json"]
        package_name = manifest.get("name") if manifest else None
        return self.finalize(
            tool,
            readme=analysis["readme"],
            manifest=manifest,
            manifest_url=analysis["manifest_url"],
            package_name=package_name if isinstance(package_name, str) else None,
        )

    async def fetch_one(self, native_id: str) -> Optional[DiscoveredTool]:
        """Look up ``owner/repo``; None when the repository does not exist."""
        if native_id.count("/") != 1 or not all(native_id.split("/")):
            raise RequestError(native_id, message=f"Expected owner/repo, got: {native_id}", component="github")

        response = await self._get(f"{self.api_url}/repos/{native_id}")
        if response.status == 404:
            return None
        response.raise_for_status(component="github")

        return await self._enrich(self.repo_to_tool(response.json()))
