"""CLI root — entry point for all csvtail subcommands.

Entry points:
  uv run csvtail        (recommended)
  python -m csvtail

Command surface:
  csvtail tail FILE               follow one CSV file, print appended rows
  csvtail latest DIR PREFIX       follow the newest <PREFIX>*.csv in DIR
  csvtail cat FILE                parse a CSV file once and print its rows
  csvtail config show             print resolved configuration
"""

from pathlib import Path
from typing import TYPE_CHECKING

import typer

from csvtail import __version__
from csvtail.logging import get_logger

if TYPE_CHECKING:
    from csvtail.watchers import WatchHandle

app = typer.Typer(
    name="csvtail",
    help="Watch growing or rotating CSV files and print new rows.",
    no_args_is_help=True,
)

_log = get_logger(__name__)

# Exit code for Ctrl-C, matching the shell convention 128 + SIGINT.
_INTERRUPTED = 130


# ---------------------------------------------------------------------------
# Global callback — runs before every subcommand
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"csvtail {__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Print version and exit.",
    ),
) -> None:
    """Watch growing or rotating CSV files and print new rows."""
    # Eager options (--version) raise typer.Exit() before this body runs,
    # so configure_logging() is only called for real subcommands.
    from csvtail.logging import configure_logging

    configure_logging()


def print_row(source: Path, fields: list[str]) -> None:
    """Row handler used by every command: ``[path] col0=a|col1=b|``."""
    cols = "".join(f"col{i}={value}|" for i, value in enumerate(fields))
    typer.echo(f"[{source}] {cols}")


def _follow(handle: "WatchHandle") -> None:
    """Block until the watcher finishes or the user presses Ctrl-C."""
    try:
        while not handle.join(timeout=0.5):
            pass
    except KeyboardInterrupt:
        handle.stop()
        handle.join()
        typer.echo("Aborted by user.", err=True)
        raise typer.Exit(_INTERRUPTED) from None


_INTERVAL_HELP = "Seconds between polls.  Defaults to watch.interval_seconds; <= 0 polls continuously."
_CYCLES_HELP = "Stop after this many poll cycles.  0 = run until interrupted."


# ---------------------------------------------------------------------------
# tail
# ---------------------------------------------------------------------------


@app.command("tail")
def tail(
    file: Path = typer.Argument(..., help="CSV file to follow.  It may not exist yet."),
    interval: float | None = typer.Option(None, "--interval", "-i", help=_INTERVAL_HELP),
    cycles: int = typer.Option(0, "--cycles", "-n", min=0, help=_CYCLES_HELP),
    keep_header: bool = typer.Option(
        False,
        "--keep-header",
        help="Deliver the first line as a row instead of skipping it.",
    ),
) -> None:
    """Follow FILE and print every newly appended row.

    Only complete (newline-terminated) lines are printed.  Truncation and
    replacement of the file (log rotation) are detected and the new content
    is read from its start.
    """
    from csvtail.config import get_settings
    from csvtail.watchers import start_append_watch

    settings = get_settings()
    if keep_header:
        settings = settings.model_copy(
            update={"tail": settings.tail.model_copy(update={"skip_header": False})}
        )

    handle = start_append_watch(
        file,
        print_row,
        interval,
        settings=settings,
        max_cycles=cycles or None,
    )
    _follow(handle)


# ---------------------------------------------------------------------------
# latest
# ---------------------------------------------------------------------------


@app.command("latest")
def latest(
    directory: Path = typer.Argument(..., help="Directory to scan."),
    prefix: str = typer.Argument(..., help="Required filename prefix (case-sensitive)."),
    interval: float | None = typer.Option(None, "--interval", "-i", help=_INTERVAL_HELP),
    cycles: int = typer.Option(0, "--cycles", "-n", min=0, help=_CYCLES_HELP),
) -> None:
    """Print every row of the newest PREFIX*.csv in DIRECTORY, again on each change.

    The newest file is chosen by modification time, ties broken by the
    greater filename.  It is re-printed in full whenever a different file
    becomes newest or its modification time advances.
    """
    from csvtail.config import get_settings
    from csvtail.watchers import start_directory_watch

    handle = start_directory_watch(
        directory,
        prefix,
        print_row,
        interval,
        settings=get_settings(),
        max_cycles=cycles or None,
    )
    _follow(handle)


# ---------------------------------------------------------------------------
# cat
# ---------------------------------------------------------------------------


@app.command("cat")
def cat(
    file: Path = typer.Argument(..., help="CSV file to parse."),
) -> None:
    """Parse FILE once, exactly as the watchers would, and print its rows."""
    from csvtail.config import get_settings
    from csvtail.files import read_text_shared
    from csvtail.parser import parse_csv_text

    try:
        text = read_text_shared(file)
    except OSError as exc:
        typer.echo(f"Error: cannot read {file}: {exc}", err=True)
        raise typer.Exit(1) from exc

    parsed = parse_csv_text(text, get_settings().csv, source=file)
    if not parsed.ok:
        assert parsed.error is not None
        typer.echo(f"Error: {file}: {parsed.error.detail}", err=True)
        raise typer.Exit(2)

    for row in parsed.rows:
        print_row(file, row)
    _log.info("file parsed", path=str(file), rows=len(parsed.rows))


# ---------------------------------------------------------------------------
# config subcommands
# ---------------------------------------------------------------------------

_config_app = typer.Typer(help="Inspect resolved configuration.")
app.add_typer(_config_app, name="config")


@_config_app.command("show")
def config_show() -> None:
    """Print the fully-resolved configuration and exit.

    Shows which config file was loaded and the final value of every setting
    after environment-variable overrides are applied.  Useful for confirming
    that CSVTAIL_* overrides are being picked up correctly.
    """
    from csvtail.config import _config_file, get_settings

    settings = get_settings()

    typer.echo(f"\n  config : {_config_file()}\n")

    for section_name, section in settings.model_dump().items():
        typer.echo(f"  [{section_name}]")
        width = max(len(k) for k in section)
        for key, val in section.items():
            typer.echo(f"  {key.ljust(width)} = {val}")
        typer.echo()
