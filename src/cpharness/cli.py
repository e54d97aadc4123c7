"""
cpharness command line.

Commands:
- cleanup: delete exactly the given projects, services and users
- sweep: delete every project whose id starts with a prefix (leftovers from
  interrupted runs)
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Sequence

import structlog
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cpharness.config.secrets import resolve_settings
from cpharness.config.settings import get_settings
from cpharness.core.errors import ExitCode, main_with_error_handling
from cpharness.logging import configure_logging
from cpharness.models import ResourceKind, ServiceKey
from cpharness.results import DeleteOutcome, TeardownReport
from cpharness.run import HarnessRun

logger = structlog.get_logger()

console = Console()

_OUTCOME_STYLE = {
    DeleteOutcome.success: "green",
    DeleteOutcome.already_absent: "cyan",
    DeleteOutcome.failed: "red bold",
}


def render_report(report: TeardownReport, out: Console = console) -> None:
    table = Table(title=f"Teardown ({report.processed} processed)")
    table.add_column("Kind")
    table.add_column("Resource")
    table.add_column("Outcome")
    table.add_column("Reason", overflow="fold")
    for result in report.results:
        style = _OUTCOME_STYLE[result.outcome]
        table.add_row(
            str(result.kind),
            escape(result.resource_id),
            f"[{style}]{result.outcome}[/{style}]",
            escape(result.reason.splitlines()[0]) if result.reason else "",
        )
    out.print(table)


def _exit_code(report: TeardownReport) -> int:
    return ExitCode.SUCCESS if report.clean else ExitCode.CLEANUP_FAILED


async def _cleanup(projects: Sequence[str], services: Sequence[str], users: Sequence[str]) -> TeardownReport:
    settings = resolve_settings(get_settings())
    async with HarnessRun.open(settings) as run:
        for value in services:
            run.registry.for_kind(ResourceKind.service).register(ServiceKey.parse(value))
        for project_id in projects:
            run.registry.projects.register(project_id)
        for identifier in users:
            run.registry.users.register(identifier)
    assert run.report is not None
    return run.report


async def _sweep(prefix: str, dry_run: bool) -> TeardownReport:
    settings = resolve_settings(get_settings())
    async with HarnessRun.open(settings) as run:
        leftovers = [p.project_id for p in await run.orchestrator.projects.fetch_all() if p.project_id.startswith(prefix)]
        logger.info("sweep_candidates", prefix=prefix, count=len(leftovers))
        if dry_run:
            for project_id in leftovers:
                console.print(project_id)
        else:
            for project_id in leftovers:
                run.registry.projects.register(project_id)
    assert run.report is not None
    return run.report


@main_with_error_handling()
def cleanup_command(projects: Sequence[str], services: Sequence[str], users: Sequence[str]) -> int:
    report = asyncio.run(_cleanup(projects, services, users))
    render_report(report)
    return _exit_code(report)


@main_with_error_handling()
def sweep_command(prefix: str, dry_run: bool = False) -> int:
    if not prefix:
        console.print("[red]Refusing to sweep with an empty prefix[/red]")
        return ExitCode.CONFIG_ERROR
    report = asyncio.run(_sweep(prefix, dry_run))
    if not dry_run:
        render_report(report)
    return _exit_code(report)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cpharness", description="Control-plane test harness")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command")

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete the given resources")
    cleanup_parser.add_argument("--project", action="append", default=[], help="Project id (repeatable)")
    cleanup_parser.add_argument(
        "--service", action="append", default=[], help="PROJECT/SERVICE pair (repeatable)"
    )
    cleanup_parser.add_argument("--user", action="append", default=[], help="User id or email (repeatable)")

    sweep_parser = subparsers.add_parser("sweep", help="Delete leftover projects by id prefix")
    sweep_parser.add_argument("--prefix", default="qatc", help="Project id prefix (default: qatc)")
    sweep_parser.add_argument("--dry-run", action="store_true", help="List matches without deleting")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, json=False)

    if args.command == "cleanup":
        sys.exit(cleanup_command(args.project, args.service, args.user))

    if args.command == "sweep":
        sys.exit(sweep_command(args.prefix, dry_run=args.dry_run))

    parser.print_help()
    sys.exit(ExitCode.CONFIG_ERROR)


if __name__ == "__main__":
    main()
