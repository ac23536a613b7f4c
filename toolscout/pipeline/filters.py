"""
Deduplication and relevance filtering of discovered tools.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from toolscout.sources.models import DiscoveredTool

logger = logging.getLogger(__name__)

# How much readme text the keyword test looks at
RELEVANCE_README_CHARS = 5000


@dataclass
class FilterReport:
    """Counts and survivors of each filtering stage."""
    merged: List[DiscoveredTool] = field(default_factory=list)
    relevant: List[DiscoveredTool] = field(default_factory=list)
    compatible: List[DiscoveredTool] = field(default_factory=list)
    candidates: List[DiscoveredTool] = field(default_factory=list)


def merge_sources(lists: Iterable[Sequence[DiscoveredTool]]) -> List[DiscoveredTool]:
    """
    Merge per-source lists, keeping the first occurrence of each id.

    Order is preserved: sources in the order given, items in provider order.
    """
    seen = set()
    merged = []
    for tools in lists:
        for tool in tools:
            if tool.id in seen:
                continue
            seen.add(tool.id)
            merged.append(tool)
    return merged


def is_relevant(tool: DiscoveredTool, keywords: Iterable[str]) -> bool:
    """Case-insensitive substring test over name, description and the start of the readme."""
    keywords = [k.lower() for k in keywords if k]
    if not keywords:
        return True

    text = " ".join([
        tool.name,
        tool.description or "",
        (tool.readme or "")[:RELEVANCE_README_CHARS],
    ]).lower()
    return any(keyword in text for keyword in keywords)


def filter_relevant(tools: Iterable[DiscoveredTool], keywords: Iterable[str]) -> List[DiscoveredTool]:
    keywords = list(keywords)
    return [tool for tool in tools if is_relevant(tool, keywords)]


def filter_protocol_compatible(tools: Iterable[DiscoveredTool]) -> List[DiscoveredTool]:
    return [tool for tool in tools if tool.supports_target_protocol]


def select_candidates(lists: Iterable[Sequence[DiscoveredTool]], keywords: Iterable[str],
                      cap: Optional[int] = None) -> FilterReport:
    """
    Merge, filter and cap in that order, so the cap counts usable candidates.

    Args:
        lists: Per-source tool lists in request order
        keywords: Topical keywords; empty accepts everything
        cap: Maximum number of candidates to keep (None for no cap)
    """
    report = FilterReport()
    report.merged = merge_sources(lists)
    report.relevant = filter_relevant(report.merged, keywords)
    report.compatible = filter_protocol_compatible(report.relevant)
    report.candidates = report.compatible if cap is None else report.compatible[:max(cap, 0)]

    logger.info(
        f"Filtering: {len(report.merged)} unique, {len(report.relevant)} relevant, "
        f"{len(report.compatible)} MCP-compatible, {len(report.candidates)} selected"
    )
    return report
