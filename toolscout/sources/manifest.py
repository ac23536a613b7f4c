"""
Accessors over loosely-typed package manifests (package.json documents).

Manifests are treated as opaque dictionaries; these helpers are the only
places that know which keys matter. Nothing here touches the network.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from toolscout.sources.models import StdioConnection

PACKAGE_RUNNER = "npx"

MCP_DEPENDENCY_PREFIXES = ("@modelcontextprotocol/",)
MCP_DEPENDENCIES = frozenset({"mcp", "fastmcp", "mcp-framework", "mcp-proxy", "@mastra/mcp"})
MCP_KEYWORDS = frozenset({"mcp", "mcp-server", "model-context-protocol", "modelcontextprotocol", "mcp-tools"})
MCP_TEXT_MARKERS = ("model context protocol", "model-context-protocol", "modelcontextprotocol")

OPENAPI_MARKERS = ("openapi", "swagger")
OPENAPI_DEPENDENCIES = frozenset({
    "swagger-ui", "swagger-ui-express", "swagger-jsdoc", "openapi-types",
    "@apidevtools/swagger-parser", "openapi-fetch", "@fastify/swagger",
})


def _tokens(text: str) -> List[str]:
    return [t for t in re.split(r"[^a-z0-9]+", text.lower()) if t]


def has_executable_entry(manifest: Optional[Dict[str, Any]]) -> bool:
    """True when the manifest declares a ``bin`` entry point."""
    if not manifest:
        return False
    bin_entry = manifest.get("bin")
    if isinstance(bin_entry, str):
        return bool(bin_entry.strip())
    if isinstance(bin_entry, dict):
        return any(isinstance(v, str) and v for v in bin_entry.values())
    return False


def executable_names(manifest: Optional[Dict[str, Any]]) -> List[str]:
    if not has_executable_entry(manifest):
        return []
    bin_entry = manifest["bin"]
    if isinstance(bin_entry, str):
        name = manifest.get("name")
        return [name.split("/")[-1]] if isinstance(name, str) and name else []
    return list(bin_entry.keys())


def declared_dependency_names(manifest: Optional[Dict[str, Any]]) -> List[str]:
    """Names from ``dependencies`` and ``peerDependencies``, declaration order, no repeats."""
    if not manifest:
        return []
    names: List[str] = []
    for section in ("dependencies", "peerDependencies"):
        deps = manifest.get(section)
        if isinstance(deps, dict):
            for name in deps:
                if name not in names:
                    names.append(name)
    return names


def manifest_keywords(manifest: Optional[Dict[str, Any]]) -> List[str]:
    if not manifest:
        return []
    keywords = manifest.get("keywords")
    if isinstance(keywords, list):
        return [k for k in keywords if isinstance(k, str)]
    return []


def _is_mcp_dependency(name: str) -> bool:
    return name in MCP_DEPENDENCIES or name.startswith(MCP_DEPENDENCY_PREFIXES)


def detect_protocol_support(
    name: str,
    description: Optional[str],
    manifest: Optional[Dict[str, Any]] = None,
    topics: Iterable[str] = (),
) -> bool:
    """
    Decide whether a tool speaks the Model Context Protocol.

    Checks, in order: declared dependencies, manifest keywords and topics,
    then the name and description.
    """
    if any(_is_mcp_dependency(dep) for dep in declared_dependency_names(manifest)):
        return True

    labels = {k.lower() for k in manifest_keywords(manifest)} | {t.lower() for t in topics}
    if labels & MCP_KEYWORDS:
        return True

    if "mcp" in _tokens(name):
        return True

    text = (description or "").lower()
    if "mcp" in _tokens(text):
        return True
    return any(marker in text for marker in MCP_TEXT_MARKERS)


def detect_openapi_spec(text: Optional[str], manifest: Optional[Dict[str, Any]] = None) -> bool:
    """True when the tool ships or documents an OpenAPI/Swagger description."""
    if any(dep in OPENAPI_DEPENDENCIES for dep in declared_dependency_names(manifest)):
        return True
    lowered = (text or "").lower()
    return any(marker in lowered for marker in OPENAPI_MARKERS)


def build_local_connection(package_name: str) -> StdioConnection:
    """Connection that launches a published package through the package runner."""
    return StdioConnection(command=PACKAGE_RUNNER, args=[package_name])


def pre_detect_connection(package_name: Optional[str], manifest: Optional[Dict[str, Any]]) -> Optional[StdioConnection]:
    """Local-process connection for manifests that declare an executable entry."""
    if not package_name or not has_executable_entry(manifest):
        return None
    return build_local_connection(package_name)
