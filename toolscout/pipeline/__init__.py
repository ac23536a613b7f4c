"""
Discovery Pipeline component.

Collect candidates from every source, filter them and classify the survivors.
"""

from toolscout.pipeline.filters import FilterReport, is_relevant, merge_sources, select_candidates
from toolscout.pipeline.orchestrator import (
    DiscoveryRequest,
    DiscoveryRun,
    Exclusion,
    Orchestrator,
    RunState,
)

__all__ = [
    "DiscoveryRequest",
    "DiscoveryRun",
    "Exclusion",
    "FilterReport",
    "Orchestrator",
    "RunState",
    "is_relevant",
    "merge_sources",
    "select_candidates",
]
