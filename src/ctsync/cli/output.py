"""
Output - console formatting for CLI commands.

Provides colored, human-readable output and a JSON mode for scripting.
"""

from __future__ import annotations

import json
import sys
from typing import Any

from ctsync.application.sync import FailurePattern, HealthReport, SyncMetrics, SyncResult
from ctsync.core.domain.entities import ConflictEntry, SyncRecord, SyncState


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"

    BG_YELLOW = "\033[43m"


class Symbols:
    """Unicode symbols for terminal output."""

    CHECK = "✓"
    CROSS = "✗"
    ARROW = "→"
    DOT = "•"
    WARN = "⚠"
    INFO = "ℹ"
    GEAR = "⚙"

    BOX_H = "─"


class Console:
    """
    Console output helper with colors and formatting.

    Attributes:
        color: Whether to use ANSI color codes.
        verbose: Whether to print debug messages.
        quiet: Whether to suppress most output (for CI/scripting).
        json_mode: Whether to print results as JSON.
    """

    def __init__(
        self,
        color: bool = True,
        verbose: bool = False,
        quiet: bool = False,
        json_mode: bool = False,
    ):
        self.json_mode = json_mode
        self.color = color and sys.stdout.isatty() and not json_mode
        self.verbose = verbose
        self.quiet = quiet or json_mode

        if self.quiet:
            self.verbose = False

    def _c(self, text: str, *codes: str) -> str:
        if not self.color:
            return text
        return "".join(codes) + text + Colors.RESET

    def print(self, text: str = "", force: bool = False) -> None:
        if self.quiet and not force:
            return
        print(text)

    def json(self, data: Any) -> None:
        """Print a JSON document regardless of quiet mode."""
        print(json.dumps(data, indent=2, default=str))

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def header(self, text: str) -> None:
        if self.quiet:
            return
        width = max(len(text) + 4, 50)
        border = self._c(Symbols.BOX_H * width, Colors.CYAN) if self.color else "-" * width

        self.print()
        self.print(border)
        self.print(self._c(f"  {text}", Colors.BOLD, Colors.CYAN))
        self.print(border)
        self.print()

    def section(self, text: str) -> None:
        if self.quiet:
            return
        self.print()
        self.print(self._c(f"{Symbols.ARROW} {text}", Colors.BOLD, Colors.BLUE))

    def success(self, text: str) -> None:
        if self.quiet:
            return
        self.print(self._c(f"  {Symbols.CHECK} {text}", Colors.GREEN))

    def error(self, text: str) -> None:
        """Errors always print, even in quiet mode (to stderr in JSON mode)."""
        stream = sys.stderr if self.json_mode else sys.stdout
        print(self._c(f"  {Symbols.CROSS} {text}", Colors.RED), file=stream)

    def config_errors(self, errors: list[str]) -> None:
        self.error("Configuration errors:")
        for e in errors:
            stream = sys.stderr if self.json_mode else sys.stdout
            print(f"    {Symbols.DOT} {e}", file=stream)
        if not self.json_mode:
            print("    Set CTSYNC_* environment variables, a .env file or pass --config")

    def warning(self, text: str) -> None:
        if self.quiet:
            return
        self.print(self._c(f"  {Symbols.WARN} {text}", Colors.YELLOW))

    def info(self, text: str) -> None:
        if self.quiet:
            return
        self.print(self._c(f"  {Symbols.INFO} {text}", Colors.CYAN))

    def detail(self, text: str) -> None:
        if self.quiet:
            return
        self.print(self._c(f"    {text}", Colors.DIM))

    def debug(self, text: str) -> None:
        if self.verbose:
            self.print(self._c(f"  [DEBUG] {text}", Colors.DIM))

    def item(self, text: str, status: str | None = None) -> None:
        """List item; status "ok", "skip" and "fail" get symbols, others a dim label."""
        if self.quiet:
            return
        status_str = ""
        if status == "ok":
            status_str = self._c(f" [{Symbols.CHECK}]", Colors.GREEN)
        elif status == "skip":
            status_str = self._c(" [SKIP]", Colors.YELLOW)
        elif status == "fail":
            status_str = self._c(f" [{Symbols.CROSS}]", Colors.RED)
        elif status:
            status_str = self._c(f" [{status}]", Colors.DIM)

        self.print(f"    {Symbols.DOT} {text}{status_str}")

    def table(self, headers: list[str], rows: list[list[str]]) -> None:
        if self.quiet:
            return
        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row):
                if i < len(widths):
                    widths[i] = max(widths[i], len(str(cell)))

        self.print(
            "  " + "  ".join(self._c(h.ljust(widths[i]), Colors.BOLD) for i, h in enumerate(headers))
        )
        self.print("  " + "  ".join("-" * w for w in widths))
        for row in rows:
            self.print("  " + "  ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row)))

    def dry_run_banner(self) -> None:
        if self.quiet:
            return
        self.print()
        banner = f"  {Symbols.GEAR} DRY-RUN MODE - No changes will be made"
        if self.color:
            self.print(f"{Colors.BG_YELLOW}{Colors.BOLD}{banner}{Colors.RESET}")
        else:
            self.print(f"*** {banner} ***")
        self.print()

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    def sync_result(self, result: SyncResult) -> None:
        """
        Print a sync result.

        JSON mode prints ``result.to_dict()``; quiet mode prints one line
        suitable for CI logs.
        """
        if self.json_mode:
            self.json(result.to_dict())
            return

        stats = result.statistics
        if self.quiet:
            parts = [
                f"status={result.status.value}",
                f"mode={'dry-run' if result.dry_run else 'executed'}",
                f"created={stats.created}",
                f"updated={stats.updated}",
                f"deleted={stats.deleted}",
                f"skipped={stats.skipped}",
                f"conflicts={len(result.conflicts)}",
            ]
            if stats.errors:
                parts.append(f"errors={stats.errors}")
            print(" ".join(parts))
            for failed in result.failed_operations:
                print(f"ERROR: {failed}")
            return

        self.section("Sync Complete")
        self.print()
        if result.dry_run:
            self.print(self._c(f"  {Symbols.GEAR} Mode: DRY-RUN (no changes made)", Colors.YELLOW))
        else:
            self.print(self._c(f"  {Symbols.CHECK} Mode: LIVE EXECUTION", Colors.GREEN))
        self.print()

        self.table(
            ["Metric", "Count"],
            [
                ["Extracted", str(stats.extracted)],
                ["Valid", str(stats.transformed)],
                ["Created", str(stats.created)],
                ["Updated", str(stats.updated)],
                ["Deleted", str(stats.deleted)],
                ["Skipped", str(stats.skipped)],
                ["Errors", str(stats.errors)],
            ],
        )

        if result.conflicts:
            self.print()
            self.warning(f"{len(result.conflicts)} conflict(s) flagged for review:")
            for entry in result.conflicts:
                self.detail(f"{entry.id}  {entry.type_key}  {entry.conflict_type.value}")

        if result.warnings:
            self.print()
            self.warning(f"{len(result.warnings)} warning(s):")
            for w in result.warnings[:5]:
                self.detail(w)
            if len(result.warnings) > 5:
                self.detail(f"... and {len(result.warnings) - 5} more")

        if result.failed_operations:
            self.print()
            self.error(f"{len(result.failed_operations)} failed operation(s):")
            for failed in result.failed_operations[:5]:
                self.detail(str(failed))
            if len(result.failed_operations) > 5:
                self.detail(f"... and {len(result.failed_operations) - 5} more")

        self.print()
        if result.success:
            self.success("Sync completed successfully!")
        elif result.error:
            self.error(f"Sync {result.status.value}: {result.error}")
        else:
            self.error(f"Sync {result.status.value}")

    def conflict_queue(self, entries: list[ConflictEntry]) -> None:
        if self.json_mode:
            self.json([e.to_dict() for e in entries])
            return
        if not entries:
            self.info("No conflicts in the review queue")
            return
        self.table(
            ["ID", "Type key", "Conflict", "Priority", "Status", "Flagged"],
            [
                [
                    e.id,
                    e.type_key,
                    e.conflict_type.value,
                    e.priority.display_name,
                    e.status.value,
                    e.flagged_at.strftime("%Y-%m-%d %H:%M"),
                ]
                for e in entries
            ],
        )

    def sync_history(self, records: list[SyncRecord]) -> None:
        if self.json_mode:
            self.json([{k: v for k, v in r.to_dict().items() if k != "pushed_data"} for r in records])
            return
        if not records:
            self.info("No sync history")
            return
        self.table(
            ["Started", "Type key", "Platform", "Status", "Retries", "Version"],
            [
                [
                    r.started_at.strftime("%Y-%m-%d %H:%M:%S"),
                    r.type_key,
                    r.target_platform,
                    r.status.value,
                    str(r.retry_count),
                    r.version_hash[:8],
                ]
                for r in records
            ],
        )

    def sync_states(self, states: list[SyncState], statistics: dict[str, int]) -> None:
        if self.json_mode:
            self.json({"statistics": statistics, "states": [s.to_dict() for s in states]})
            return
        self.table(
            ["Type key", "Status", "Local", "Remote", "Last synced", "In flight"],
            [
                [
                    s.type_key,
                    s.sync_status.value,
                    (s.local_hash or "")[:8],
                    (s.remote_hash or "")[:8],
                    (s.last_synced_hash or "")[:8],
                    "yes" if s.in_flight else "",
                ]
                for s in states
            ],
        )
        self.print()
        self.info(", ".join(f"{k}={v}" for k, v in statistics.items()))

    def sync_metrics(self, metrics: list[SyncMetrics], patterns: list[FailurePattern]) -> None:
        if self.json_mode:
            self.json(
                {
                    "metrics": [m.to_dict() for m in metrics],
                    "failure_patterns": [p.to_dict() for p in patterns],
                }
            )
            return
        if not metrics:
            self.info("No sync history")
            return
        self.table(
            ["Operation", "Platform", "Attempts", "Succeeded", "Failed", "Avg time", "Avg retries"],
            [
                [
                    m.sync_type,
                    m.platform,
                    str(m.total_attempts),
                    str(m.success_count),
                    str(m.failure_count),
                    f"{m.average_duration:.2f}s",
                    f"{m.average_retries:.1f}",
                ]
                for m in metrics
            ],
        )
        if patterns:
            self.print()
            self.section("Failure patterns")
            for pattern in patterns:
                self.item(
                    f"{pattern.error_type}: {pattern.count} ({', '.join(pattern.type_keys)})",
                    "fail",
                )

    def health_report(self, report: HealthReport) -> None:
        if self.json_mode:
            self.json(report.to_dict())
            return
        self.section(f"Sync health: {report.platform}")
        self.table(
            ["Metric", "Value"],
            [
                ["Success rate", f"{report.success_rate:.1f}%"],
                ["Average sync time", f"{report.average_duration:.2f}s"],
                ["Total syncs", str(report.total_syncs)],
                ["Succeeded", str(report.successful_syncs)],
                ["Failed", str(report.failed_syncs)],
                ["In progress", str(report.in_progress_syncs)],
                ["Failures (24h)", str(report.recent_failures)],
                [
                    "Last success",
                    report.last_successful_sync.strftime("%Y-%m-%d %H:%M")
                    if report.last_successful_sync
                    else "never",
                ],
            ],
        )
        if report.common_errors:
            self.print()
            self.info("Common errors: " + ", ".join(report.common_errors))
        self.print()
        for recommendation in report.recommendations:
            self.detail(recommendation)
