"""
Pipeline Orchestrator.

Runs discovery across the requested sources, filters the merged candidates
and classifies them one at a time.
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional

import aiohttp
from pydantic import BaseModel, Field, ValidationError

from toolscout.classifier.engine import ClassificationEngine
from toolscout.classifier.models import DiscoveryResult, GeneratedConfig, TemplateDecision
from toolscout.config import Settings
from toolscout.pipeline.filters import select_candidates
from toolscout.sources import create_source
from toolscout.sources.base import BaseSource
from toolscout.sources.models import DiscoveredTool, SourceKind
from toolscout.utils.error_handling import (
    AuthenticationError,
    ConfigurationError,
    ItemAnalysisError,
)


class RunState(str, Enum):
    COLLECTING = "collecting"
    FILTERING = "filtering"
    DRY_PREVIEW = "dry_preview"
    CLASSIFYING = "classifying"
    DONE = "done"


class DiscoveryRequest(BaseModel):
    """What the presentation layer asks for."""
    sources: List[SourceKind] = Field(default_factory=lambda: [SourceKind.GITHUB, SourceKind.NPM])
    limit: int = Field(default=10, ge=0)
    dry_run: bool = False
    max_age_months: Optional[int] = Field(default=12, ge=0)


class Exclusion(BaseModel):
    """A candidate that was dropped during classification, with the reason."""
    tool_id: str
    name: str
    kind: str
    reason: str


class DiscoveryRun(BaseModel):
    """Outcome of one pipeline invocation."""
    request: DiscoveryRequest
    state: RunState = RunState.COLLECTING
    results: List[DiscoveryResult] = Field(default_factory=list)
    candidates: List[DiscoveredTool] = Field(default_factory=list)
    exclusions: List[Exclusion] = Field(default_factory=list)
    source_counts: Dict[str, int] = Field(default_factory=dict)
    source_errors: Dict[str, str] = Field(default_factory=dict)

    @property
    def excluded_count(self) -> int:
        return len(self.exclusions)


def build_result(tool: DiscoveredTool, decision: TemplateDecision) -> DiscoveryResult:
    """Pair a tool with its decision and the generated config payloads."""
    return DiscoveryResult(
        tool=tool,
        decision=decision,
        generated=GeneratedConfig(
            plugin_config=decision.config.model_dump(mode="json", by_alias=True, exclude_none=True),
            quick_import=ClassificationEngine.build_quick_connection_payload(decision),
        ),
    )


class Orchestrator:
    """
    Sequence discovery, filtering and classification.

    Sources may be injected per kind; any requested kind without an injected
    adapter gets a fresh one for the duration of the run.
    """

    def __init__(self, settings: Settings, sources: Optional[Dict[SourceKind, BaseSource]] = None,
                 engine: Optional[ClassificationEngine] = None, session: Optional[aiohttp.ClientSession] = None,
                 provider: Optional[str] = None, model: Optional[str] = None):
        self.settings = settings
        self.sources = dict(sources or {})
        self.session = session
        self.provider = provider
        self.model = model
        self._engine = engine
        self.logger = logging.getLogger(__name__)

    def _get_engine(self) -> ClassificationEngine:
        if self._engine is None:
            self._engine = ClassificationEngine(self.settings, provider=self.provider, model=self.model)
        return self._engine

    def _resolve_sources(self, kinds: List[SourceKind]) -> Dict[SourceKind, BaseSource]:
        resolved = {}
        for kind in kinds:
            if kind in resolved:
                continue
            source = self.sources.get(kind)
            resolved[kind] = source if source is not None else create_source(kind, self.settings, session=self.session)
        return resolved

    async def _close_created(self, resolved: Dict[SourceKind, BaseSource]) -> None:
        for kind, source in resolved.items():
            if self.sources.get(kind) is not source:
                await source.close()

    async def _collect(self, run: DiscoveryRun, resolved: Dict[SourceKind, BaseSource]) -> List[List[DiscoveredTool]]:
        request = run.request
        per_source_limit = max(request.limit, 1) * max(self.settings.search_oversample_factor, 1)
        deadline = asyncio.get_running_loop().time() + self.settings.search_deadline_seconds

        kinds = list(resolved)
        outcomes = await asyncio.gather(
            *(resolved[kind].search(per_source_limit, request.max_age_months, deadline) for kind in kinds),
            return_exceptions=True,
        )

        # Merged only after every source finished, in request order
        lists = []
        for kind, outcome in zip(kinds, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self.logger.error(f"Error from {kind.value}: {outcome}")
                run.source_errors[kind.value] = str(outcome)
                run.source_counts[kind.value] = 0
                lists.append([])
                continue
            self.logger.info(f"Found {len(outcome)} from {kind.value}")
            run.source_counts[kind.value] = len(outcome)
            lists.append(outcome)
        return lists

    async def run(self, request: Optional[DiscoveryRequest] = None, **kwargs) -> DiscoveryRun:
        """
        Run the pipeline.

        Args:
            request: The discovery request; keyword arguments build one when omitted

        Returns:
            The run record with successful results and per-item exclusions

        Raises:
            ConfigurationError: no usable sources requested, or invalid request fields
            AuthenticationError: no AI credentials (only when not a dry run)
        """
        if request is None:
            try:
                request = DiscoveryRequest(**kwargs)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid discovery request: {e}",
                    details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
                ) from e
        if not request.sources:
            raise ConfigurationError("No sources requested")

        run = DiscoveryRun(request=request)

        # Fail before spending search quota when classification cannot happen at all
        engine = None if request.dry_run else self._get_engine()

        self.logger.info(
            f"Discovering tools from: {', '.join(k.value for k in request.sources)} "
            f"(limit {request.limit}, max age {request.max_age_months} months)"
        )
        resolved = self._resolve_sources(request.sources)
        try:
            lists = await self._collect(run, resolved)
        finally:
            await self._close_created(resolved)

        run.state = RunState.FILTERING
        report = select_candidates(lists, self.settings.relevance_keywords, request.limit)
        run.candidates = report.candidates
        if not report.candidates:
            self.logger.info("No candidates survived filtering")
            run.state = RunState.DONE
            return run

        if request.dry_run:
            run.state = RunState.DRY_PREVIEW
            for tool in report.candidates:
                self.logger.info(f"[DRY RUN] Would analyze: {tool.name} ({tool.source.value}, {tool.source_url})")
            run.state = RunState.DONE
            return run

        run.state = RunState.CLASSIFYING
        for tool in report.candidates:
            self.logger.info(f"Analyzing: {tool.name}...")
            try:
                decision = await engine.classify(tool)
            except (AuthenticationError, ConfigurationError):
                # Every remaining item would fail the same way
                raise
            except Exception as e:
                error = ItemAnalysisError(tool.id, tool.name, cause=e)
                self.logger.error(f"Failed to analyze {tool.name}: {e}")
                run.exclusions.append(Exclusion(
                    tool_id=tool.id,
                    name=tool.name,
                    kind=error.cause_kind.value,
                    reason=str(e),
                ))
                continue

            self.logger.info(f"{tool.name}: template {decision.template.value}")
            run.results.append(build_result(tool, decision))

        run.state = RunState.DONE
        self.logger.info(f"Classified {len(run.results)} tools, excluded {run.excluded_count}")
        return run

    async def analyze_one(self, source: SourceKind, native_id: str) -> Optional[DiscoveryResult]:
        """
        Classify one GitHub repository (``owner/repo``) or npm package directly.

        Returns:
            The result, or None when the item does not exist
        """
        kind = SourceKind(source)
        engine = self._get_engine()
        resolved = self._resolve_sources([kind])
        try:
            tool = await resolved[kind].fetch_one(native_id)
        finally:
            await self._close_created(resolved)

        if tool is None:
            self.logger.error(f"{kind.value} item not found: {native_id}")
            return None

        decision = await engine.classify(tool)
        return build_result(tool, decision)
