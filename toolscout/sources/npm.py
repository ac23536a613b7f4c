"""
npm registry source.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

from toolscout.sources.base import BaseSource, parse_timestamp
from toolscout.sources.models import DiscoveredTool, SourceKind, make_tool_id
from toolscout.utils.error_handling import ResponseParseError


def _clean_repository_url(repository: Any) -> Optional[str]:
    url = repository.get("url") if isinstance(repository, dict) else repository
    if not isinstance(url, str) or not url:
        return None
    if url.startswith("git+"):
        url = url[4:]
    if url.startswith("git://"):
        url = "https://" + url[6:]
    if url.endswith(".git"):
        url = url[:-4]
    return url


def _person_name(person: Any) -> Optional[str]:
    if isinstance(person, dict):
        return person.get("name") or person.get("username")
    if isinstance(person, str) and person:
        # "Name <email> (url)" shorthand
        return person.split("<")[0].split("(")[0].strip() or None
    return None


def _license_name(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("type")
    return value if isinstance(value, str) else None


class NpmSource(BaseSource):
    """Discover MCP servers published to the npm registry."""

    kind = SourceKind.NPM
    default_queries = [
        "mcp crypto",
        "mcp defi",
        "mcp blockchain",
        "mcp web3",
        "mcp ethereum",
        "mcp solana",
        "keywords:mcp wallet",
    ]

    def _configured_queries(self) -> Optional[List[str]]:
        return self.settings.npm_queries

    @property
    def registry_url(self) -> str:
        return self.settings.npm_registry_url.rstrip("/")

    def package_url(self, name: str) -> str:
        # Scoped names keep the @ but escape the slash: @scope%2Fpkg
        return f"{self.registry_url}/{quote(name, safe='@')}"

    async def _search_query(self, query: str, max_results: int, max_age_months: Optional[int]) -> List[DiscoveredTool]:
        params = {"text": query, "size": min(max(max_results, 1), 250)}
        response = await self._get(f"{self.registry_url}/-/v1/search", params=params)
        response.raise_for_status(component="npm")

        data = response.json()
        tools = []
        for entry in data.get("objects", []):
            package = entry.get("package") or {}
            if package.get("name"):
                tools.append(self.search_entry_to_tool(package))
        return tools

    def search_entry_to_tool(self, package: Dict[str, Any]) -> DiscoveredTool:
        """Convert one ``objects[].package`` entry from the search API."""
        name = package["name"]
        links = package.get("links") or {}
        author = _person_name(package.get("author")) or _person_name(package.get("publisher"))

        return DiscoveredTool(
            id=make_tool_id(SourceKind.NPM, name),
            name=name,
            description=package.get("description") or "",
            source=SourceKind.NPM,
            source_url=links.get("npm") or f"https://www.npmjs.com/package/{name}",
            author=author,
            homepage=links.get("homepage"),
            repository_url=_clean_repository_url(links.get("repository")),
            topics=[k for k in package.get("keywords") or [] if isinstance(k, str)],
            updated_at=parse_timestamp(package.get("date")),
        )

    @staticmethod
    def latest_manifest(packument: Dict[str, Any]) -> Dict[str, Any]:
        """Manifest of the ``latest`` dist-tag, falling back to the packument itself."""
        dist_tags = packument.get("dist-tags")
        versions = packument.get("versions")
        latest = dist_tags.get("latest") if isinstance(dist_tags, dict) else None
        manifest = versions.get(latest) if isinstance(versions, dict) and isinstance(latest, str) else None
        if isinstance(manifest, dict):
            return manifest
        return {k: v for k, v in packument.items() if k not in ("versions", "time", "readme", "users")}

    async def _fetch_packument(self, name: str) -> Optional[Dict[str, Any]]:
        response = await self._get(self.package_url(name))
        if response.status == 404:
            return None
        response.raise_for_status(component="npm")
        packument = response.json()
        if not isinstance(packument, dict):
            raise ResponseParseError("npm", message=f"Unexpected packument shape for {name}")
        return packument

    def _apply_packument(self, tool: DiscoveredTool, packument: Dict[str, Any]) -> DiscoveredTool:
        manifest = self.latest_manifest(packument)
        updates = {}
        license_name = _license_name(manifest.get("license")) or _license_name(packument.get("license"))
        if license_name:
            updates["license"] = license_name
        if not tool.author:
            author = _person_name(manifest.get("author")) or _person_name(packument.get("author"))
            if author:
                updates["author"] = author
        if not tool.homepage and (manifest.get("homepage") or packument.get("homepage")):
            updates["homepage"] = manifest.get("homepage") or packument.get("homepage")
        if not tool.repository_url:
            repository = _clean_repository_url(manifest.get("repository") or packument.get("repository"))
            if repository:
                updates["repository_url"] = repository

        readme = packument.get("readme") or manifest.get("readme")
        return self.finalize(
            tool,
            readme=readme if isinstance(readme, str) else None,
            manifest=manifest,
            manifest_url=self.package_url(tool.name),
            package_name=tool.name,
            **updates,
        )

    async def _enrich(self, tool: DiscoveredTool) -> DiscoveredTool:
        packument = await self._fetch_packument(tool.name)
        if packument is None:
            return self.finalize(tool)
        return self._apply_packument(tool, packument)

    async def fetch_one(self, native_id: str) -> Optional[DiscoveredTool]:
        """Build a tool record straight from a package name; None when unpublished."""
        packument = await self._fetch_packument(native_id)
        if packument is None:
            return None

        manifest = self.latest_manifest(packument)
        name = packument.get("name") or native_id
        times = packument.get("time")
        modified = times.get("modified") if isinstance(times, dict) else None
        tool = DiscoveredTool(
            id=make_tool_id(SourceKind.NPM, name),
            name=name,
            description=packument.get("description") or manifest.get("description") or "",
            source=SourceKind.NPM,
            source_url=f"https://www.npmjs.com/package/{name}",
            topics=[k for k in packument.get("keywords") or manifest.get("keywords") or [] if isinstance(k, str)],
            updated_at=parse_timestamp(modified),
        )
        return self._apply_packument(tool, packument)
