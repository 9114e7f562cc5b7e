"""
Tests for CLI output module.
"""

import json
from datetime import datetime

import pytest

from ctsync.application.sync import SyncResult
from ctsync.application.sync.orchestrator import ItemResult
from ctsync.cli.output import Colors, Console, Symbols
from ctsync.core.domain.entities import SyncRecord, SyncState
from ctsync.core.domain.enums import ChangeKind, SyncDirection, SyncRecordStatus, SyncStatus


def make_result(**overrides):
    result = SyncResult(dry_run=False)
    result.statistics.extracted = 2
    result.statistics.transformed = 2
    result.statistics.created = 1
    result.statistics.skipped = 1
    result.results.append(ItemResult("article", ChangeKind.CREATE))
    for name, value in overrides.items():
        setattr(result, name, value)
    result.finalize()
    return result


class TestColors:
    """Tests for Colors and Symbols."""

    def test_color_codes_defined(self):
        """Test that the basic color codes are defined."""
        assert Colors.RESET == "\033[0m"
        assert Colors.BOLD == "\033[1m"
        assert Colors.RED == "\033[31m"

    def test_symbols_defined(self):
        assert Symbols.CHECK == "✓"
        assert Symbols.CROSS == "✗"


class TestConsoleMessages:
    """Tests for message helpers."""

    def test_color_disabled_without_tty(self, capsys):
        """Test captured output never gets ANSI codes."""
        Console(color=True).success("done")

        out = capsys.readouterr().out
        assert out == f"  {Symbols.CHECK} done\n"
        assert "\033[" not in out

    def test_quiet_suppresses_all_but_errors(self, capsys):
        """Test quiet mode keeps errors only."""
        console = Console(color=False, quiet=True)
        console.info("info")
        console.warning("warn")
        console.header("Header")
        console.error("broken")

        assert capsys.readouterr().out == f"  {Symbols.CROSS} broken\n"

    def test_json_mode_errors_to_stderr(self, capsys):
        """Test JSON mode keeps stdout for the document."""
        Console(json_mode=True).error("broken")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "broken" in captured.err

    def test_debug_requires_verbose(self, capsys):
        Console(color=False).debug("hidden")
        Console(color=False, verbose=True).debug("shown")

        out = capsys.readouterr().out
        assert "hidden" not in out
        assert "[DEBUG] shown" in out

    def test_item_statuses(self, capsys):
        """Test list item status labels."""
        console = Console(color=False)
        console.item("a", "ok")
        console.item("b", "skip")
        console.item("c", "rolled back")

        out = capsys.readouterr().out.splitlines()
        assert out[0].endswith(f"a [{Symbols.CHECK}]")
        assert out[1].endswith("b [SKIP]")
        assert out[2].endswith("c [rolled back]")

    def test_table_alignment(self, capsys):
        """Test columns are padded to the widest cell."""
        Console(color=False).table(["Key", "N"], [["article", "1"], ["a", "22"]])

        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "  Key      N "
        assert lines[1] == "  -------  --"
        assert lines[3] == "  a        22"

    def test_config_errors(self, capsys):
        Console(color=False).config_errors(["bad value"])

        out = capsys.readouterr().out
        assert "Configuration errors:" in out
        assert "bad value" in out
        assert "CTSYNC_*" in out

    def test_dry_run_banner(self, capsys):
        Console(color=False).dry_run_banner()
        assert "DRY-RUN MODE" in capsys.readouterr().out


class TestSyncResultOutput:
    """Tests for printing sync results."""

    def test_full_output(self, capsys):
        """Test the metrics table and success line."""
        Console(color=False).sync_result(make_result())

        out = capsys.readouterr().out
        assert "LIVE EXECUTION" in out
        assert "Created" in out
        assert "Sync completed successfully!" in out

    def test_quiet_summary_line(self, capsys):
        """Test quiet mode prints one key=value line."""
        result = make_result()
        result.add_failed_operation("update", "landing", "boom")
        result.finalize()

        Console(quiet=True).sync_result(result)

        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith("status=partial mode=executed created=1")
        assert lines[0].endswith("errors=1")
        assert lines[1] == "ERROR: [update] landing: boom"

    def test_json_output(self, capsys):
        """Test JSON mode prints the result document."""
        Console(json_mode=True).sync_result(make_result())

        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "completed"
        assert data["statistics"]["created"] == 1
        assert data["results"][0]["action"] == "create"

    def test_failed_run(self, capsys):
        result = make_result(error="No valid content types to sync")

        Console(color=False).sync_result(result)

        assert "Sync failed: No valid content types to sync" in capsys.readouterr().out

    def test_truncates_warnings(self, capsys):
        result = make_result(warnings=[f"w{i}" for i in range(7)])

        Console(color=False).sync_result(result)

        out = capsys.readouterr().out
        assert "7 warning(s)" in out
        assert "... and 2 more" in out


class TestTables:
    """Tests for history and state listings."""

    def test_empty_history(self, capsys):
        Console(color=False).sync_history([])
        assert "No sync history" in capsys.readouterr().out

    def test_history_json_drops_payload(self, capsys):
        """Test pushed snapshots are left out of JSON listings."""
        record = SyncRecord(
            id="sync-1",
            type_key="article",
            version_hash="a" * 64,
            target_platform="memory",
            direction=SyncDirection.PUSH,
            status=SyncRecordStatus.SUCCESS,
            pushed_data="H4sI...",
            started_at=datetime(2024, 1, 1, 12, 0),
        )

        Console(json_mode=True).sync_history([record])

        [data] = json.loads(capsys.readouterr().out)
        assert data["id"] == "sync-1"
        assert "pushed_data" not in data

    def test_states_table(self, capsys):
        state = SyncState(type_key="article", local_hash="abcdef1234", sync_status=SyncStatus.MODIFIED)

        Console(color=False).sync_states([state], {"modified": 1})

        out = capsys.readouterr().out
        assert "abcdef12" in out
        assert "modified=1" in out

    @pytest.mark.parametrize("entries", [[]])
    def test_empty_conflict_queue(self, capsys, entries):
        Console(color=False).conflict_queue(entries)
        assert "No conflicts" in capsys.readouterr().out
