"""
Data models for the classification engine.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from toolscout.sources.models import ConnectionDescriptor, DiscoveredTool


class PluginTemplate(str, Enum):
    """The closed set of integration templates, in selection priority order."""
    MCP_HTTP = "mcp-http"
    MCP_STDIO = "mcp-stdio"
    OPENAPI = "openapi"
    STANDALONE = "standalone"
    MARKDOWN = "markdown"
    DEFAULT = "default"
    SETTINGS = "settings"
    BASIC = "basic"

    @property
    def is_mcp(self) -> bool:
        return self in MCP_CONNECTION_TYPES


# Which connection variant each protocol template must carry
MCP_CONNECTION_TYPES = {
    PluginTemplate.MCP_HTTP: "http",
    PluginTemplate.MCP_STDIO: "stdio",
}


class MCPCustomParams(BaseModel):
    mcp: ConnectionDescriptor
    description: Optional[str] = None
    avatar: Optional[str] = None


class MCPPluginConfig(BaseModel):
    """Config for an MCP plugin: identifier plus how to connect to the server."""
    model_config = ConfigDict(populate_by_name=True)

    identifier: str
    custom_params: MCPCustomParams = Field(alias="customParams")

    @property
    def connection(self):
        return self.custom_params.mcp


class PluginMeta(BaseModel):
    title: str
    description: str
    avatar: Optional[str] = None
    tags: Optional[List[str]] = None
    category: Optional[str] = None


class StandardPluginConfig(BaseModel):
    """Plugin-index entry for every non-MCP template."""
    # Unknown keys are rejected so an MCP config never parses as this shape
    model_config = ConfigDict(extra="forbid")

    identifier: str
    manifest: Optional[str] = None
    author: Optional[str] = None
    meta: Optional[PluginMeta] = None


PluginConfig = Union[MCPPluginConfig, StandardPluginConfig]


class TemplateDecision(BaseModel):
    """
    The model's classification of one tool.

    The config shape must agree with the template: protocol templates carry
    an MCP config whose connection type matches, every other template a
    standard plugin-index entry.
    """
    template: PluginTemplate
    reasoning: str
    config: PluginConfig

    @model_validator(mode="after")
    def check_config_matches_template(self) -> "TemplateDecision":
        expected = MCP_CONNECTION_TYPES.get(self.template)
        if expected is None:
            if isinstance(self.config, MCPPluginConfig):
                raise ValueError(f"template '{self.template.value}' must not carry an MCP connection config")
            return self

        if not isinstance(self.config, MCPPluginConfig):
            raise ValueError(f"template '{self.template.value}' requires an MCP config with customParams.mcp")
        actual = self.config.connection.type
        if actual != expected:
            raise ValueError(
                f"template '{self.template.value}' requires a '{expected}' connection, got '{actual}'"
            )
        return self

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict using the published field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GeneratedConfig(BaseModel):
    plugin_config: Dict[str, Any]
    quick_import: Optional[str] = None


class DiscoveryResult(BaseModel):
    """One classified tool, as returned to callers."""
    tool: DiscoveredTool
    decision: TemplateDecision
    generated: GeneratedConfig

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
