"""Command-line interface for the task orchestrator"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .config import OrchestratorSettings
from .credentials import configure_credentials_interactive
from .orchestrator import ExecutionCoordinator
from .registry import build_default_registry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="task-orchestrator",
        description="Run a task through the provider fallback chain",
    )
    parser.add_argument("task", nargs="?", help="Task description")
    parser.add_argument("--provider", "-p", help="Force a single provider (no fallback)")
    parser.add_argument("--context", "-c", help="Project context passed to the provider")
    parser.add_argument("--timeout-ms", "-t", type=int, help="Overall time budget in milliseconds")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--configure", action="store_true", help="Configure API keys")
    parser.add_argument(
        "--list-providers", action="store_true", help="List providers and their ranks"
    )
    return parser


def list_providers() -> None:
    registry = build_default_registry(OrchestratorSettings.load())
    print("\nProviders (lower rank is tried first):")
    print("=" * 60)
    for provider in registry.providers:
        ranks = ", ".join(
            f"{category.value}={rank}"
            for category, rank in provider.priority_by_category.items()
        )
        print(f"\n{provider.provider_name}:")
        print(f"  Model: {getattr(provider, 'model', '-')}")
        print(f"  Params: {provider.default_params}")
        print(f"  Ranks: {ranks}")
    print(f"\nTools: {', '.join(tool.tool_id for tool in registry.tools)}")


async def run_task(args: argparse.Namespace) -> int:
    coordinator = ExecutionCoordinator.from_config(verbose=args.verbose)
    try:
        result = await coordinator.submit_task(
            args.task,
            context=args.context,
            timeout_ms=args.timeout_ms,
            forced_provider=args.provider,
        )
    finally:
        await coordinator.aclose()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    elif result.success:
        print(f"\n[{result.executed_with}] ({result.duration_ms:.0f}ms)")
        print("-" * 60)
        print(result.result)
        print("-" * 60)
        print(f"Tools used: {', '.join(result.tools_used)}")
    else:
        print(f"\nError: {result.error}", file=sys.stderr)

    return 0 if result.success else 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.configure:
        configure_credentials_interactive()
        return 0

    if args.list_providers:
        list_providers()
        return 0

    if not args.task:
        parser.print_help()
        return 2

    return asyncio.run(run_task(args))
