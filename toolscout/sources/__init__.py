"""
Source adapters.

Turn registry search results into uniform DiscoveredTool records.
"""

from typing import Optional

import aiohttp

from toolscout.config import Settings
from toolscout.sources.base import BaseSource
from toolscout.sources.github import GitHubSource
from toolscout.sources.models import (
    ConnectionDescriptor, DiscoveredTool, HttpConnection, SourceKind, StdioConnection
)
from toolscout.sources.npm import NpmSource
from toolscout.utils.error_handling import ConfigurationError

SOURCE_CLASSES = {
    SourceKind.GITHUB: GitHubSource,
    SourceKind.NPM: NpmSource,
}


def create_source(kind, settings: Settings, session: Optional[aiohttp.ClientSession] = None) -> BaseSource:
    """Instantiate the adapter for ``kind`` (a SourceKind or its string value)."""
    try:
        source_kind = SourceKind(kind)
    except ValueError:
        raise ConfigurationError(f"Unknown source: {kind}", details={"known": [k.value for k in SourceKind]})
    return SOURCE_CLASSES[source_kind](settings, session=session)


__all__ = [
    "BaseSource", "GitHubSource", "NpmSource", "create_source",
    "ConnectionDescriptor", "DiscoveredTool", "HttpConnection", "SourceKind", "StdioConnection",
]
