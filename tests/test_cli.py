"""Tests for the CLI command surface."""

from pathlib import Path

import pytest
import structlog
from typer.testing import CliRunner

from csvtail.cli import app
from tests.conftest import set_mtime_ns, write_bytes

runner = CliRunner()

# Zero waits so --cycles runs finish immediately.
_FAST_ENV = {
    "CSVTAIL_WATCH__INTERVAL_SECONDS": "0",
    "CSVTAIL_WATCH__OPEN_RETRY_SECONDS": "0",
    "CSVTAIL_WATCH__RECOVERY_SECONDS": "0",
}


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Isolate each test from structlog state and settings cache."""
    from csvtail.config import get_settings

    get_settings.cache_clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def _row_lines(output: str) -> list[str]:
    return [line for line in output.splitlines() if line.startswith("[")]


# ---------------------------------------------------------------------------
# Help and version
# ---------------------------------------------------------------------------


class TestHelp:
    def test_root_help_exits_zero(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0

    def test_root_help_lists_all_commands(self):
        result = runner.invoke(app, ["--help"])
        for cmd in ("tail", "latest", "cat", "config"):
            assert cmd in result.output, f"command {cmd!r} missing from --help"

    def test_version_flag(self):
        from csvtail import __version__

        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.strip() == f"csvtail {__version__}"

    @pytest.mark.parametrize("cmd", ["tail", "latest", "cat"])
    def test_each_command_has_help(self, cmd):
        result = runner.invoke(app, [cmd, "--help"])
        assert result.exit_code == 0
        assert len(result.output) > 0


# ---------------------------------------------------------------------------
# tail
# ---------------------------------------------------------------------------


class TestTail:
    def test_prints_rows_after_header(self, tmp_path):
        p = write_bytes(tmp_path / "feed.csv", b"a,b\n1,2\n3,4\n")
        result = runner.invoke(app, ["tail", str(p), "--cycles", "1"], env=_FAST_ENV)
        assert result.exit_code == 0, result.output
        assert _row_lines(result.output) == [f"[{p}] col0=1|col1=2|", f"[{p}] col0=3|col1=4|"]

    def test_keep_header(self, tmp_path):
        p = write_bytes(tmp_path / "feed.csv", b"a,b\n1,2\n")
        result = runner.invoke(
            app, ["tail", str(p), "--cycles", "1", "--keep-header"], env=_FAST_ENV
        )
        assert result.exit_code == 0, result.output
        assert _row_lines(result.output)[0] == f"[{p}] col0=a|col1=b|"

    def test_missing_file_exits_zero_without_rows(self, tmp_path):
        result = runner.invoke(
            app, ["tail", str(tmp_path / "later.csv"), "--cycles", "2"], env=_FAST_ENV
        )
        assert result.exit_code == 0, result.output
        assert _row_lines(result.output) == []

    def test_negative_cycles_rejected(self, tmp_path):
        result = runner.invoke(app, ["tail", str(tmp_path / "f.csv"), "--cycles", "-1"])
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# latest
# ---------------------------------------------------------------------------


class TestLatest:
    def test_prints_newest_file(self, tmp_path):
        old = write_bytes(tmp_path / "log_20240101.csv", b"old\n")
        new = write_bytes(tmp_path / "log_20240102.csv", b"h\nnew\n")
        set_mtime_ns(old, 1_000 * 10**9)
        set_mtime_ns(new, 2_000 * 10**9)
        result = runner.invoke(
            app, ["latest", str(tmp_path), "log_", "--cycles", "2"], env=_FAST_ENV
        )
        assert result.exit_code == 0, result.output
        assert _row_lines(result.output) == [f"[{new}] col0=h|", f"[{new}] col0=new|"]

    def test_no_match_prints_nothing(self, tmp_path):
        result = runner.invoke(
            app, ["latest", str(tmp_path), "log_", "--cycles", "1"], env=_FAST_ENV
        )
        assert result.exit_code == 0, result.output
        assert _row_lines(result.output) == []


# ---------------------------------------------------------------------------
# cat
# ---------------------------------------------------------------------------


class TestCat:
    def test_prints_every_row(self, tmp_path):
        p = write_bytes(tmp_path / "f.csv", b"\xef\xbb\xbfa,b\n1\n")
        result = runner.invoke(app, ["cat", str(p)])
        assert result.exit_code == 0, result.output
        assert _row_lines(result.output) == [f"[{p}] col0=a|col1=b|", f"[{p}] col0=1|"]

    def test_missing_file_exits_one(self, tmp_path):
        result = runner.invoke(app, ["cat", str(tmp_path / "missing.csv")])
        assert result.exit_code == 1

    def test_parse_error_exits_two(self, tmp_path):
        p = write_bytes(tmp_path / "f.csv", b'"a"b\n')
        result = runner.invoke(app, ["cat", str(p)], env={"CSVTAIL_CSV__STRICT": "true"})
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# config show
# ---------------------------------------------------------------------------


class TestConfigShow:
    def test_lists_every_section(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0, result.output
        for section in ("[watch]", "[tail]", "[csv]", "[logging]"):
            assert section in result.output

    def test_reflects_env_override(self):
        result = runner.invoke(
            app, ["config", "show"], env={"CSVTAIL_WATCH__INTERVAL_SECONDS": "2.5"}
        )
        assert "interval_seconds" in result.output
        assert "2.5" in result.output

    def test_shows_config_file_path(self, tmp_path):
        cfg = tmp_path / "alt.toml"
        cfg.write_text("[tail]\nskip_header = false\n")
        result = runner.invoke(app, ["config", "show"], env={"CSVTAIL_CONFIG_FILE": str(cfg)})
        assert str(cfg) in result.output
        assert "skip_header" in result.output
