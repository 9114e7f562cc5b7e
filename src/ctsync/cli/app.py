"""
CLI Application - Main entry point for the ctsync command-line tool.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ctsync import __version__
from ctsync.core.domain.enums import ConflictStatus, SyncRecordStatus, SyncRunStatus
from ctsync.core.exceptions import ConfigError, CtsyncError
from ctsync.core.ports.persistence import ConflictFilter, SyncHistoryQuery

from .exit_codes import ExitCode
from .output import Console


STRATEGIES = ("auto_merge", "local_wins", "remote_wins", "manual_merge")


def create_parser() -> argparse.ArgumentParser:
    """
    Create the command-line argument parser for ctsync.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="ctsync",
        description="Sync content-type definitions with a remote CMS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what a sync would change
  ctsync sync

  # Push local definitions for one website
  ctsync sync --website-id site-1 --execute

  # Only sync two content types
  ctsync sync --type blog_post --type author --execute

  # Review flagged conflicts and resolve one
  ctsync conflicts
  ctsync resolve conflict_1700000000000_ab12cd34e --strategy local_wins --apply

  # Recover after a crash
  ctsync recover

  # Sync health and failure patterns
  ctsync status --health
  ctsync history --metrics

Environment:
  CTSYNC_BASE_URL, CTSYNC_API_TOKEN and the other CTSYNC_* variables are read
  from the environment or a .env file; --config also accepts a YAML file.
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Configuration
    parser.add_argument("--config", "-c", type=str, help="Path to a .env or YAML config file")
    parser.add_argument("--provider", type=str, help="Remote provider name (rest, memory)")
    parser.add_argument("--base-url", type=str, help="CMS API base URL")
    parser.add_argument("--database", type=str, help="Path to the state database")

    # Output
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only print errors and a summary line")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument(
        "--log-format", choices=["text", "json"], default="text", help="Log record format"
    )
    parser.add_argument("--log-file", type=str, help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    # sync
    sync = subparsers.add_parser("sync", help="Push local definitions to the CMS")
    sync.add_argument(
        "--execute", "-x", action="store_true", help="Apply changes (default is a dry run)"
    )
    sync.add_argument("--website-id", "-w", type=str, help="Only extract this website's definitions")
    sync.add_argument("--source-dir", "-s", type=str, help="Directory holding local definitions")
    sync.add_argument(
        "--type", "-t", dest="type_keys", action="append", metavar="KEY",
        help="Only sync this content type (repeatable)",
    )
    sync.add_argument("--max-concurrency", type=int, help="Remote calls in flight at once")
    sync.add_argument("--key-prefix", type=str, help="Prefix marking remote types as managed")
    sync.add_argument("--deployment-id", type=str, help="Tag sync records with a deployment id")
    sync.set_defaults(handler=run_sync)

    # detect-conflicts
    detect = subparsers.add_parser("detect-conflicts", help="Scan known types for divergence")
    detect.add_argument(
        "--no-flag", action="store_true", help="Report conflicts without adding them to the queue"
    )
    detect.set_defaults(handler=run_detect_conflicts)

    # conflicts
    conflicts = subparsers.add_parser("conflicts", help="Show the conflict review queue")
    conflicts.add_argument(
        "--status", choices=["pending", "resolved", "all"], default="pending", help="Filter by status"
    )
    conflicts.add_argument("--type-key", type=str, help="Filter by content type key")
    conflicts.add_argument("--stats", action="store_true", help="Show queue statistics")
    conflicts.add_argument(
        "--clear-resolved", type=int, metavar="DAYS",
        help="Delete resolved conflicts older than DAYS",
    )
    conflicts.set_defaults(handler=run_conflicts)

    # resolve
    resolve = subparsers.add_parser("resolve", help="Resolve queued conflicts")
    resolve.add_argument("conflict_ids", nargs="*", metavar="ID", help="Conflict ids")
    resolve.add_argument("--all", action="store_true", help="Resolve every pending conflict")
    resolve.add_argument(
        "--strategy", choices=STRATEGIES, help="Strategy to use (default: best available)"
    )
    resolve.add_argument("--apply", action="store_true", help="Push the resolved definition")
    resolve.add_argument("--resolved-by", default="cli", help="Name recorded as the resolver")
    resolve.set_defaults(handler=run_resolve)

    # history
    history = subparsers.add_parser("history", help="Show sync records")
    history.add_argument("--type-key", type=str, help="Filter by content type key")
    history.add_argument(
        "--status", choices=[s.value for s in SyncRecordStatus], help="Filter by record status"
    )
    history.add_argument("--deployment-id", type=str, help="Filter by deployment id")
    history.add_argument("--limit", type=int, default=20, help="Number of records to show")
    history.add_argument(
        "--metrics", action="store_true", help="Show per-operation metrics and failure patterns"
    )
    history.add_argument(
        "--sync-type", choices=["create", "update", "delete"], help="Limit metrics to one operation"
    )
    history.set_defaults(handler=run_history)

    # status
    status = subparsers.add_parser("status", help="Show per-type sync state")
    status.add_argument("--health", action="store_true", help="Show a health report for the platform")
    status.add_argument("--platform", type=str, help="Platform to report on (default: configured)")
    status.set_defaults(handler=run_status)

    # recover
    recover = subparsers.add_parser("recover", help="Finish or roll back interrupted syncs")
    recover.set_defaults(handler=run_recover)

    return parser


# -------------------------------------------------------------------------
# Shared setup
# -------------------------------------------------------------------------


def load_services(console: Console, args: argparse.Namespace) -> Any:
    """
    Load configuration and wire the services for a command.

    Returns:
        SyncServices, or an ExitCode when configuration is invalid.
    """
    from ctsync.adapters.config import create_config_provider
    from ctsync.core.services import build_services

    config_file = Path(args.config) if getattr(args, "config", None) else None
    try:
        config_provider = create_config_provider(config_file=config_file, cli_overrides=vars(args))
        errors = config_provider.validate()
    except ConfigError as e:
        console.error(str(e))
        return ExitCode.CONFIG_ERROR

    if errors:
        console.config_errors(errors)
        return ExitCode.CONFIG_ERROR

    config = config_provider.load()
    Path(config.storage.database_path).parent.mkdir(parents=True, exist_ok=True)
    try:
        return build_services(config)
    except ConfigError as e:
        console.error(str(e))
        return ExitCode.CONFIG_ERROR


@contextmanager
def cancel_on_interrupt(token: Any) -> Iterator[None]:
    """
    First Ctrl+C cancels the run cooperatively; a second one aborts.
    """
    previous = signal.getsignal(signal.SIGINT)

    def handler(signum: int, frame: Any) -> None:
        if token.is_cancelled():
            raise KeyboardInterrupt
        token.cancel("interrupted by user")

    signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


# -------------------------------------------------------------------------
# Commands
# -------------------------------------------------------------------------


def run_sync(console: Console, args: argparse.Namespace, services: Any) -> int:
    """
    Run a sync.

    Args:
        console: Console for output.
        args: Parsed command-line arguments.
        services: Wired SyncServices.

    Returns:
        Exit code.
    """
    from ctsync.application.sync import CancellationToken, SyncOptions

    from .logging import get_logger

    config = services.config
    log = get_logger("SyncCommand")
    if args.deployment_id:
        log = log.bind(deployment_id=args.deployment_id)
    dry_run = config.sync.dry_run
    console.header(f"ctsync {__version__}")
    if services.provider is None:
        console.warning("No CMS credentials configured, remote operations are disabled")
        dry_run = True
    if dry_run:
        console.dry_run_banner()

    console.info(f"Source: {config.sync.source_dir}")
    if config.sync.website_id:
        console.info(f"Website: {config.sync.website_id}")

    token = CancellationToken()
    options = SyncOptions(
        website_id=config.sync.website_id,
        dry_run=dry_run,
        type_keys=args.type_keys,
        cancellation_token=token,
        deployment_id=args.deployment_id,
    )

    console.section("Syncing content types")
    log.info(f"Sync started (dry_run={dry_run})")
    with cancel_on_interrupt(token):
        result = asyncio.run(services.orchestrator.sync(options))

    log.info(f"Sync finished: {result.status.value}", extra={"conflicts": len(result.conflicts)})
    console.sync_result(result)

    if result.status is SyncRunStatus.CANCELLED:
        return ExitCode.CANCELLED
    if result.status is SyncRunStatus.FAILED:
        return ExitCode.SYNC_ERROR if result.failed_operations else ExitCode.VALIDATION_ERROR
    if result.status is SyncRunStatus.PARTIAL:
        return ExitCode.SYNC_ERROR
    if result.conflicts:
        return ExitCode.CONFLICTS
    return ExitCode.SUCCESS


def run_detect_conflicts(console: Console, args: argparse.Namespace, services: Any) -> int:
    results = asyncio.run(services.orchestrator.detect_conflicts(flag=not args.no_flag))

    if console.json_mode:
        console.json(
            [
                {
                    "type_key": r.type_key,
                    "type": r.type.value if r.type else None,
                    "fields": [f.field for f in r.conflicting_fields],
                }
                for r in results
            ]
        )
        return ExitCode.CONFLICTS if results else ExitCode.SUCCESS

    if not results:
        console.success("No conflicts detected")
        return ExitCode.SUCCESS

    console.warning(f"{len(results)} conflict(s) detected")
    for r in results:
        fields = ", ".join(f.field for f in r.conflicting_fields)
        console.item(f"{r.type_key}: {fields or r.reason}", r.type.value if r.type else None)
    if args.no_flag:
        console.detail("Not added to the review queue (--no-flag)")
    return ExitCode.CONFLICTS


def run_conflicts(console: Console, args: argparse.Namespace, services: Any) -> int:
    manager = services.orchestrator.conflict_manager

    if args.clear_resolved is not None:
        removed = manager.clear_resolved_conflicts(older_than_days=args.clear_resolved)
        console.success(f"Removed {removed} resolved conflict(s)")

    if args.stats:
        stats = manager.get_statistics()
        if console.json_mode:
            console.json(stats)
            return ExitCode.SUCCESS
        console.section("Conflict statistics")
        console.table(
            ["Metric", "Value"],
            [["Total", str(stats["total"])], ["Resolution rate", f"{stats['resolution_rate']:.0%}"]]
            + [[f"status: {k}", str(v)] for k, v in stats["by_status"].items()]
            + [[f"type: {k}", str(v)] for k, v in stats["by_type"].items()],
        )
        return ExitCode.SUCCESS

    status = None if args.status == "all" else ConflictStatus.from_string(args.status)
    entries = services.orchestrator.get_conflict_queue(
        ConflictFilter(status=status, type_key=args.type_key)
    )
    console.conflict_queue(entries)
    return ExitCode.SUCCESS


def run_resolve(console: Console, args: argparse.Namespace, services: Any) -> int:
    orchestrator = services.orchestrator
    if args.all:
        targets: list[Any] = orchestrator.get_conflict_queue()
    else:
        targets = list(args.conflict_ids)
    if not targets:
        console.error("Nothing to resolve: pass conflict ids or --all")
        return ExitCode.ERROR

    if args.apply and services.provider is None:
        console.error("--apply needs CMS credentials")
        return ExitCode.CONFIG_ERROR

    reports = asyncio.run(
        orchestrator.resolve_conflicts(
            targets, strategy=args.strategy, resolved_by=args.resolved_by, apply=args.apply
        )
    )

    if console.json_mode:
        console.json([vars(r) for r in reports])
    for report in reports:
        if report.success:
            note = " and pushed" if report.applied else ""
            console.success(f"{report.conflict_id} ({report.type_key}) resolved via {report.strategy}{note}")
        elif report.requires_manual:
            console.warning(f"{report.conflict_id} ({report.type_key}) needs manual review")
        else:
            console.error(f"{report.conflict_id} ({report.type_key}): {report.error}")

    return ExitCode.SUCCESS if all(r.success for r in reports) else ExitCode.CONFLICTS


def run_history(console: Console, args: argparse.Namespace, services: Any) -> int:
    if args.metrics:
        analytics = services.analytics
        console.sync_metrics(
            analytics.get_sync_metrics(sync_type=args.sync_type),
            analytics.detect_failure_patterns(),
        )
        return ExitCode.SUCCESS

    query = SyncHistoryQuery(
        type_key=args.type_key,
        status=SyncRecordStatus.from_string(args.status) if args.status else None,
        deployment_id=args.deployment_id,
        limit=args.limit,
    )
    console.sync_history(services.orchestrator.history.get_sync_history(query))
    return ExitCode.SUCCESS


def run_status(console: Console, args: argparse.Namespace, services: Any) -> int:
    if args.health:
        platform = args.platform or services.config.provider.platform
        console.health_report(services.analytics.generate_health_report(platform))
        return ExitCode.SUCCESS

    state_manager = services.orchestrator.state_manager
    console.sync_states(state_manager.get_all_sync_states(), state_manager.get_statistics())
    return ExitCode.SUCCESS


def run_recover(console: Console, args: argparse.Namespace, services: Any) -> int:
    outcome = asyncio.run(services.orchestrator.check_interrupted_syncs())
    if console.json_mode:
        console.json(outcome)
        return ExitCode.SUCCESS

    if not outcome["resumed"] and not outcome["rolled_back"]:
        console.success("No interrupted syncs")
        return ExitCode.SUCCESS
    for key in outcome["resumed"]:
        console.item(key, "ok")
    for key in outcome["rolled_back"]:
        console.item(key, "rolled back")
    return ExitCode.SUCCESS


# -------------------------------------------------------------------------
# Entry point
# -------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the ctsync CLI.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    from .logging import setup_logging

    parser = create_parser()
    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    if args.quiet or args.json:
        log_level = logging.WARNING
    setup_logging(level=log_level, log_format=args.log_format, log_file=args.log_file)

    console = Console(
        color=not args.no_color,
        verbose=args.verbose,
        quiet=args.quiet,
        json_mode=args.json,
    )

    services = load_services(console, args)
    if isinstance(services, ExitCode):
        return services

    handler: Callable[[Console, argparse.Namespace, Any], int] = args.handler
    try:
        return handler(console, args, services)

    except KeyboardInterrupt:
        console.print()
        console.warning("Interrupted by user")
        return ExitCode.SIGINT

    except CtsyncError as e:
        console.error(str(e))
        return ExitCode.from_exception(e)

    finally:
        services.close()


def run() -> None:
    """
    Entry point for the console script.

    Calls main() and exits with its return code.
    """
    sys.exit(main())


if __name__ == "__main__":
    run()
