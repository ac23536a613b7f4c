#!/usr/bin/env python

"""
Command-line entry point for toolscout.

Runs a discovery pass over the configured registries, or classifies a single
GitHub repository or npm package, and prints the generated plugin configs.
"""

import argparse
import asyncio
import json
import logging
import sys
import time
import traceback
from typing import List, Optional

from toolscout.config import Settings, load_settings, print_settings, validate_environment
from toolscout.pipeline import DiscoveryRequest, DiscoveryRun, Orchestrator
from toolscout.sources.models import SourceKind
from toolscout.utils.error_handling import ToolscoutError


logger = logging.getLogger(__name__)


def print_run(run: DiscoveryRun) -> None:
    """Human-readable summary of a discovery run."""
    counts = ", ".join(f"{name}: {count}" for name, count in run.source_counts.items())
    print(f"\nSources: {counts or 'none'}")
    for name, error in run.source_errors.items():
        print(f"  {name} failed: {error}")

    if run.request.dry_run:
        print(f"\n[DRY RUN] {len(run.candidates)} tools would be analyzed:\n")
        for tool in run.candidates:
            print(f"  - {tool.name} ({tool.source.value})")
            print(f"    {tool.source_url}")
            if tool.description:
                print(f"    {tool.description[:100]}")
        return

    print(f"\nClassified {len(run.results)} tools:\n")
    for result in run.results:
        print(f"  {result.tool.name} -> {result.decision.template.value}")
        print(f"    {result.decision.reasoning}")
        if result.generated.quick_import:
            print("    Quick import:")
            for line in result.generated.quick_import.splitlines():
                print(f"      {line}")

    if run.exclusions:
        print(f"\nExcluded {run.excluded_count}:")
        for exclusion in run.exclusions:
            print(f"  {exclusion.name} [{exclusion.kind}]: {exclusion.reason}")


async def discover_command(settings: Settings, args: argparse.Namespace) -> int:
    sources: List[str] = args.source or [SourceKind.GITHUB.value, SourceKind.NPM.value]
    request = DiscoveryRequest(
        sources=sources,
        limit=args.limit,
        dry_run=args.dry_run,
        max_age_months=args.max_age if args.max_age is not None else settings.default_max_age_months,
    )

    orchestrator = Orchestrator(settings, provider=args.provider, model=args.model)
    start_time = time.time()
    run = await orchestrator.run(request)
    elapsed = time.time() - start_time

    if args.json:
        payload = run.candidates if request.dry_run else run.results
        output = {
            "sources": run.source_counts,
            "source_errors": run.source_errors,
            "dry_run": request.dry_run,
            "items": [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in payload],
            "exclusions": [exclusion.model_dump(mode="json") for exclusion in run.exclusions],
        }
        print(json.dumps(output, indent=2))
    else:
        print_run(run)
        print(f"\nFinished in {elapsed:.1f}s")
    return 0


async def analyze_command(settings: Settings, args: argparse.Namespace) -> int:
    orchestrator = Orchestrator(settings, provider=args.provider, model=args.model)
    result = await orchestrator.analyze_one(SourceKind(args.source), args.identifier)
    if result is None:
        print(f"Not found: {args.source} {args.identifier}")
        return 1

    if args.json:
        print(json.dumps(result.to_wire(), indent=2))
    else:
        print(f"{result.tool.name} -> {result.decision.template.value}")
        print(f"Reasoning: {result.decision.reasoning}")
        print(json.dumps(result.generated.plugin_config, indent=2))
        if result.generated.quick_import:
            print(result.generated.quick_import)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="toolscout - discover tools and classify them into plugin templates")
    parser.add_argument("--settings", "-s", action="store_true", help="Show current settings")
    parser.add_argument("--env-file", default=".env", help="Path of the .env file to load")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress non-essential output")

    subparsers = parser.add_subparsers(dest="command")

    discover = subparsers.add_parser("discover", help="Search the registries and classify candidates")
    discover.add_argument("--source", action="append", choices=[k.value for k in SourceKind],
                          help="Source to search (repeatable, default: all)")
    discover.add_argument("--limit", "-l", type=int, default=10, help="Maximum number of candidates")
    discover.add_argument("--max-age", type=int, default=None, help="Skip tools not updated in this many months")
    discover.add_argument("--dry-run", action="store_true", help="List candidates without calling the AI provider")

    analyze = subparsers.add_parser("analyze", help="Classify a single repository or package")
    analyze.add_argument("source", choices=[k.value for k in SourceKind])
    analyze.add_argument("identifier", help="owner/repo for github, package name for npm")

    for sub in (discover, analyze):
        sub.add_argument("--provider", choices=["openai", "anthropic"], help="AI provider to use")
        sub.add_argument("--model", help="Model name override")
        sub.add_argument("--json", "-j", action="store_true", help="Output in JSON format")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings(env_file=args.env_file)
    settings.configure_logging()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.info("Debug mode enabled")
    if args.quiet:
        logging.getLogger().setLevel(logging.WARNING)

    if args.settings:
        print(print_settings(settings))
        return 0

    validate_environment(settings)

    if args.command == "discover":
        return await discover_command(settings, args)
    if args.command == "analyze":
        return await analyze_command(settings, args)

    parser.print_help()
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)
    except ToolscoutError as e:
        print(f"Error ({e.kind.value}): {e.message}")
        if logging.getLogger().getEffectiveLevel() <= logging.DEBUG:
            traceback.print_exc()
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        if logging.getLogger().getEffectiveLevel() <= logging.DEBUG:
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    run()
