"""
Prompt construction for template classification.
"""

import json
from typing import List

from toolscout.classifier.models import PluginTemplate
from toolscout.sources.manifest import declared_dependency_names, executable_names, manifest_keywords
from toolscout.sources.models import DiscoveredTool

TEMPLATE_DESCRIPTIONS = {
    PluginTemplate.MCP_HTTP: "MCP server reachable over HTTP/SSE at a URL (remote endpoint)",
    PluginTemplate.MCP_STDIO: "MCP server started as a local process (npx/uvx/node/python command) speaking stdio",
    PluginTemplate.OPENAPI: "REST API described by an OpenAPI/Swagger document",
    PluginTemplate.STANDALONE: "Rich interactive UI application embedded as its own app",
    PluginTemplate.MARKDOWN: "Returns formatted text or markdown output only",
    PluginTemplate.DEFAULT: "Function plugin that needs some configuration with sensible defaults",
    PluginTemplate.SETTINGS: "Function plugin that requires user-provided settings such as API keys",
    PluginTemplate.BASIC: "Simple function calls with no configuration",
}

SYSTEM_MESSAGE = (
    "You are an expert at integrating third-party tools into an AI chat plugin platform. "
    "You classify tools into plugin templates and answer with JSON only."
)

RESPONSE_SHAPE = """{
  "template": "<one of the template ids>",
  "reasoning": "<one or two sentences>",
  "config": <MCP config or standard config>
}

MCP config (only for mcp-http and mcp-stdio):
{"identifier": "<kebab-case-id>",
 "customParams": {"mcp": {"type": "http", "url": "<url>", "auth": {"type": "none|bearer|oauth2"}, "headers": {}}
                         OR {"type": "stdio", "command": "<command>", "args": ["..."], "env": {}},
                  "description": "<short description>", "avatar": "<emoji>"}}

Standard config (all other templates):
{"identifier": "<kebab-case-id>", "manifest": "<manifest url>", "author": "<author>",
 "meta": {"title": "<title>", "description": "<description>", "avatar": "<emoji>", "tags": ["..."]}}"""


def truncate(text: str, budget: int) -> str:
    if len(text) <= budget:
        return text
    return text[:budget] + "\n... [truncated]"


def _taxonomy() -> str:
    lines = []
    for priority, template in enumerate(PluginTemplate, start=1):
        lines.append(f"{priority}. {template.value}: {TEMPLATE_DESCRIPTIONS[template]}")
    return "\n".join(lines)


def _manifest_highlights(tool: DiscoveredTool) -> List[str]:
    if not tool.manifest:
        return ["- no package manifest found"]

    highlights = []
    dependencies = declared_dependency_names(tool.manifest)
    if dependencies:
        highlights.append(f"- dependencies: {', '.join(dependencies[:25])}")
    executables = executable_names(tool.manifest)
    if executables:
        highlights.append(f"- executables (bin): {', '.join(executables)}")
    keywords = manifest_keywords(tool.manifest)
    if keywords:
        highlights.append(f"- keywords: {', '.join(keywords[:20])}")
    if isinstance(tool.manifest.get("name"), str):
        highlights.append(f"- package name: {tool.manifest['name']}")
    return highlights or ["- manifest has no dependencies, executables or keywords"]


def build_prompt(tool: DiscoveredTool, readme_budget: int = 2000) -> str:
    """
    Build the classification prompt for one tool.

    Args:
        tool: The tool to classify
        readme_budget: Maximum number of readme characters to include

    Returns:
        Prompt text asking for a JSON-only TemplateDecision
    """
    readme = truncate(tool.readme, readme_budget) if tool.readme else "(no readme available)"

    sections = [
        "Classify this tool into exactly one plugin template.",
        "",
        "## Templates (pick the first that applies)",
        _taxonomy(),
        "",
        "Decision priority: MCP-compatible tool -> mcp-http or mcp-stdio; "
        "else OpenAPI spec present -> openapi; else UI-heavy -> standalone; "
        "else formatted output only -> markdown; else needs user configuration -> default or settings; "
        "else -> basic.",
        "",
        "## Tool",
        f"Name: {tool.name}",
        f"Description: {tool.description or '(none)'}",
        f"Source: {tool.source.value} - {tool.source_url}",
    ]
    if tool.homepage:
        sections.append(f"Homepage: {tool.homepage}")
    if tool.topics:
        sections.append(f"Topics: {', '.join(tool.topics[:20])}")

    sections += [
        "",
        "## Signals",
        f"- supports MCP: {'yes' if tool.supports_target_protocol else 'no'}",
        f"- has OpenAPI spec: {'yes' if tool.has_openapi_spec else 'no'}",
        f"- has package manifest: {'yes' if tool.has_package_manifest else 'no'}",
    ]
    if tool.pre_detected_connection is not None:
        detected = tool.pre_detected_connection.model_dump(mode="json", exclude_none=True)
        sections.append(f"- pre-detected connection: {json.dumps(detected)}")

    sections += [
        "",
        "## Manifest highlights",
        *_manifest_highlights(tool),
        "",
        "## README",
        readme,
        "",
        "## Response format",
        "Return ONLY a JSON object, no prose and no code fences, with this shape:",
        RESPONSE_SHAPE,
    ]
    return "\n".join(sections)
