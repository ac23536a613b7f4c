"""
Data models for discovered tools and MCP connection descriptors.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SourceKind(str, Enum):
    GITHUB = "github"
    NPM = "npm"


class AuthType(str, Enum):
    NONE = "none"
    BEARER = "bearer"
    OAUTH2 = "oauth2"


class ConnectionAuth(BaseModel):
    """Authentication for a remote MCP endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    type: AuthType = AuthType.NONE
    token: Optional[str] = None
    access_token: Optional[str] = Field(default=None, alias="accessToken")


class HttpConnection(BaseModel):
    """MCP server reachable over HTTP."""
    type: Literal["http"] = "http"
    url: str
    auth: Optional[ConnectionAuth] = None
    headers: Optional[Dict[str, str]] = None


class StdioConnection(BaseModel):
    """MCP server launched as a local process speaking stdio."""
    type: Literal["stdio"] = "stdio"
    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)


ConnectionDescriptor = Annotated[Union[HttpConnection, StdioConnection], Field(discriminator="type")]


class DiscoveredTool(BaseModel):
    """
    A candidate tool normalized from one registry.

    Records are frozen: enrichment produces a new record through
    ``model_copy(update=...)`` rather than mutating one in place.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    source: SourceKind
    source_url: str

    license: Optional[str] = None
    author: Optional[str] = None
    homepage: Optional[str] = None
    repository_url: Optional[str] = None

    topics: List[str] = Field(default_factory=list)
    stars: Optional[int] = None
    updated_at: Optional[datetime] = None

    readme: Optional[str] = None
    manifest: Optional[Dict[str, Any]] = None
    manifest_url: Optional[str] = None

    supports_target_protocol: bool = False
    has_openapi_spec: bool = False
    has_package_manifest: bool = False
    pre_detected_connection: Optional[ConnectionDescriptor] = None

    @property
    def native_id(self) -> str:
        """Identifier inside the source registry (the part after ``source:``)."""
        return self.id.split(":", 1)[1] if ":" in self.id else self.id


def make_tool_id(source: SourceKind, native_id: str) -> str:
    return f"{source.value}:{native_id}"
