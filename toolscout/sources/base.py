"""
Base class shared by the registry source adapters.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from toolscout.config import Settings
from toolscout.sources.manifest import detect_openapi_spec, detect_protocol_support, pre_detect_connection
from toolscout.sources.models import DiscoveredTool, SourceKind
from toolscout.utils.error_handling import ToolscoutError
from toolscout.utils.resilience import HTTPResponse, resilient_fetch

# Readme text kept on the record; the prompt truncates further
README_STORE_LIMIT = 10000


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 registry timestamp (``Z`` suffix allowed)."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def months_ago(months: int, now: Optional[datetime] = None) -> datetime:
    """The same calendar day ``months`` months before ``now`` (clamped to month end)."""
    now = now or datetime.now(timezone.utc)
    total = now.year * 12 + (now.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = now.day
    while True:
        try:
            return now.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1


def is_fresh(tool: DiscoveredTool, max_age_months: Optional[int], now: Optional[datetime] = None) -> bool:
    """Tools without a timestamp are kept; the age filter only drops known-stale ones."""
    if not max_age_months or tool.updated_at is None:
        return True
    return tool.updated_at >= months_ago(max_age_months, now)


class BaseSource(ABC):
    """
    Common search/enrich flow for a registry.

    Subclasses provide the per-query search call, the per-candidate
    enrichment and the single-item lookup.
    """

    kind: SourceKind
    default_queries: List[str] = []

    def __init__(self, settings: Settings, session: Optional[aiohttp.ClientSession] = None,
                 queries: Optional[List[str]] = None):
        self.settings = settings
        self.policy = settings.retry_policy()
        self.queries = list(queries or self._configured_queries() or self.default_queries)
        self._session = session
        self._owns_session = session is None
        self.logger = logging.getLogger(__name__)

    def _configured_queries(self) -> Optional[List[str]]:
        return None

    def _default_headers(self) -> Dict[str, str]:
        return {"User-Agent": "toolscout"}

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> HTTPResponse:
        """Resilient GET against this source's registry."""
        return await resilient_fetch(
            self._get_session(),
            url,
            self.policy,
            provider=self.kind.value,
            params=params,
            headers=self._default_headers(),
        )

    @staticmethod
    def _expired(deadline: Optional[float]) -> bool:
        return deadline is not None and asyncio.get_running_loop().time() >= deadline

    @abstractmethod
    async def _search_query(self, query: str, max_results: int, max_age_months: Optional[int]) -> List[DiscoveredTool]:
        """Run one search query and return unenriched candidates in provider order."""
        raise NotImplementedError

    @abstractmethod
    async def _enrich(self, tool: DiscoveredTool) -> DiscoveredTool:
        """Fetch readme/manifest for one candidate and return the finalized record."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_one(self, native_id: str) -> Optional[DiscoveredTool]:
        """Look up a single item by its registry identifier; None when it does not exist."""
        raise NotImplementedError

    async def search(self, max_results: int, max_age_months: Optional[int] = None,
                     deadline: Optional[float] = None) -> List[DiscoveredTool]:
        """
        Search the registry with every configured query.

        Args:
            max_results: Maximum number of tools to return
            max_age_months: Drop candidates not updated within this many months
            deadline: Event-loop time after which no further fetches start

        Returns:
            Enriched tools in provider order; an empty list when the primary
            search fails
        """
        try:
            candidates = await self._collect(max_results, max_age_months, deadline)
        except ToolscoutError as e:
            self.logger.error(f"{self.kind.value} search failed: {e}")
            return []

        self.logger.info(f"{self.kind.value}: {len(candidates)} candidates, enriching")
        return await self._enrich_all(candidates, deadline)

    async def _collect(self, max_results: int, max_age_months: Optional[int],
                       deadline: Optional[float]) -> List[DiscoveredTool]:
        seen = set()
        candidates: List[DiscoveredTool] = []

        for query in self.queries:
            if len(candidates) >= max_results:
                break
            if self._expired(deadline):
                self.logger.warning(f"{self.kind.value}: search deadline reached, skipping remaining queries")
                break

            self.logger.debug(f"{self.kind.value}: searching '{query}'")
            for tool in await self._search_query(query, max_results, max_age_months):
                if tool.id in seen:
                    continue
                seen.add(tool.id)
                if not is_fresh(tool, max_age_months):
                    self.logger.debug(f"Skipping stale candidate: {tool.id}")
                    continue
                candidates.append(tool)

        return candidates[:max_results]

    async def _enrich_all(self, candidates: List[DiscoveredTool], deadline: Optional[float]) -> List[DiscoveredTool]:
        batch_size = max(1, self.settings.enrichment_batch_size)
        enriched: List[DiscoveredTool] = []

        for start in range(0, len(candidates), batch_size):
            if self._expired(deadline):
                self.logger.warning(
                    f"{self.kind.value}: deadline reached, returning {len(enriched)} of {len(candidates)} candidates"
                )
                break
            batch = candidates[start:start + batch_size]
            enriched.extend(await asyncio.gather(*(self._enrich_safely(tool) for tool in batch)))

        return enriched

    async def _enrich_safely(self, tool: DiscoveredTool) -> DiscoveredTool:
        try:
            return await self._enrich(tool)
        except (ToolscoutError, ValueError, TypeError, AttributeError, KeyError) as e:
            # Malformed or unexpectedly shaped payloads
            self.logger.warning(f"Enrichment failed for {tool.id}, continuing without it: {e}")
            return self.finalize(tool)

    def finalize(self, tool: DiscoveredTool, readme: Optional[str] = None,
                 manifest: Optional[Dict[str, Any]] = None, manifest_url: Optional[str] = None,
                 package_name: Optional[str] = None, **updates: Any) -> DiscoveredTool:
        """
        Attach enrichment and compute the derived flags.

        Returns a new record; ``tool`` is left untouched.
        """
        readme = readme[:README_STORE_LIMIT] if readme else tool.readme
        manifest = manifest if manifest is not None else tool.manifest
        updates.update(
            readme=readme,
            manifest=manifest,
            manifest_url=manifest_url or tool.manifest_url,
            supports_target_protocol=detect_protocol_support(tool.name, tool.description, manifest, tool.topics),
            has_openapi_spec=detect_openapi_spec(" ".join(filter(None, [tool.description, readme])), manifest),
            has_package_manifest=manifest is not None,
            pre_detected_connection=pre_detect_connection(package_name, manifest) or tool.pre_detected_connection,
        )
        return tool.model_copy(update=updates)
