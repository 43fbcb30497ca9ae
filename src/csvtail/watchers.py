"""Polling watcher loops: append-tail and latest-file-in-directory.

Two watcher types share one loop (:meth:`_Watcher.run`):

- :class:`AppendWatcher` follows one file with a :class:`~csvtail.tail.TailReader`
  and delivers only newly appended rows;
- :class:`DirectoryWatcher` picks the newest ``<prefix>*.csv`` in a directory
  and re-delivers the whole file whenever the selection or its mtime changes.

Each cycle is a ``poll_once()`` call returning a :class:`PollOutcome`.  The
loop logs the outcome's error (if any) and picks the wait before the next
cycle from its :class:`~csvtail.errors.ErrorKind`.  Nothing a cycle does can
end the loop; only the stop event can.

``start_append_watch`` / ``start_directory_watch`` run a watcher on its own
thread and return a :class:`WatchHandle`::

    with start_append_watch(Path("feed.csv"), on_row, interval=1) as handle:
        ...                                  # rows arrive on the watcher thread
    # leaving the block stops and joins the thread
"""

from __future__ import annotations

import abc
import contextvars
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from csvtail.config import Settings, get_settings
from csvtail.discovery import find_latest_csv
from csvtail.errors import ErrorKind, WatchError
from csvtail.files import read_text_shared
from csvtail.logging import get_logger
from csvtail.parser import Row, parse_csv_text
from csvtail.tail import TailReader

_log = get_logger(__name__)

RowHandler = Callable[[Path, Row], None]


@dataclass(frozen=True)
class PollOutcome:
    """What one poll cycle did."""

    rows: int = 0
    error: WatchError | None = None


def normalise_interval(seconds: float) -> float:
    """Non-positive intervals mean "do not wait"."""
    return seconds if seconds > 0 else 0.0


class _Watcher(abc.ABC):
    """Shared loop, delivery and error reporting for both watcher types.

    ``log_context`` names the watch on every event it logs.
    """

    log_context: dict[str, str]

    def __init__(self, on_row: RowHandler, interval: float | None, settings: Settings | None) -> None:
        self._settings = settings if settings is not None else get_settings()
        self._on_row = on_row
        if interval is None:
            interval = self._settings.watch.interval_seconds
        self.interval = normalise_interval(interval)

    @abc.abstractmethod
    def poll_once(self) -> PollOutcome:
        """Run one cycle.  Failures are returned in the outcome, not raised."""

    def close(self) -> None:
        """Release any resources held between cycles."""

    def _delay_after(self, outcome: PollOutcome) -> float:
        return self.interval

    def _deliver(self, source: Path, rows: list[Row]) -> tuple[int, WatchError | None]:
        """Hand *rows* to the handler in order; stop at the first handler failure."""
        delivered = 0
        for row in rows:
            try:
                self._on_row(source, row)
            except Exception as exc:
                return delivered, WatchError.from_exception(ErrorKind.HANDLER, source, exc)
            delivered += 1
        return delivered, None

    def _report(self, outcome: PollOutcome) -> None:
        err = outcome.error
        if err is None:
            return
        fields = dict(self.log_context, kind=err.kind.value, detail=err.detail)
        if err.path is not None:
            fields["path"] = str(err.path)
        if err.kind is ErrorKind.NOT_AVAILABLE:
            _log.debug("watch target not available", **fields)
        elif err.kind is ErrorKind.HANDLER:
            _log.error("row handler failed", delivered=outcome.rows, **fields)
        else:
            _log.warning("watch cycle failed", **fields)

    def run(self, stop: threading.Event, *, max_cycles: int | None = None) -> None:
        """Poll until *stop* is set (or *max_cycles* cycles have run).

        The stop event is checked before every cycle and used for every wait,
        so setting it interrupts a sleep immediately.
        """
        cycles = 0
        try:
            while not stop.is_set():
                try:
                    outcome = self.poll_once()
                except Exception as exc:
                    # Loop boundary: an unexpected failure costs one cycle, never the watcher.
                    _log.exception("unexpected watch failure", **self.log_context)
                    outcome = PollOutcome(
                        error=WatchError.from_exception(ErrorKind.TRANSIENT_IO, None, exc)
                    )
                else:
                    self._report(outcome)

                cycles += 1
                if max_cycles is not None and cycles >= max_cycles:
                    break
                delay = self._delay_after(outcome)
                if delay > 0:
                    stop.wait(delay)
        finally:
            self.close()


class AppendWatcher(_Watcher):
    """Deliver rows appended to *path*, skipping its header line.

    Args:
        path:     File to tail.  It may not exist yet; opening is retried.
        on_row:   Called as ``on_row(path, fields)`` for every new row.
        interval: Seconds between polls; defaults to
                  ``settings.watch.interval_seconds``.
        settings: Resolved settings; ``get_settings()`` if None.
    """

    def __init__(
        self,
        path: Path,
        on_row: RowHandler,
        interval: float | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(on_row, interval, settings)
        self.path = Path(path)
        self.log_context = {"watch": "append", "path": str(self.path)}
        self._reader = TailReader(
            self.path,
            skip_header=self._settings.tail.skip_header,
            chunk_size=self._settings.tail.chunk_size,
        )

    @property
    def reader(self) -> TailReader:
        return self._reader

    def poll_once(self) -> PollOutcome:
        """Read newly appended lines and deliver them as rows.

        An unparseable chunk is dropped; its bytes stay consumed so a
        producer that keeps writing garbage cannot stall the watcher.
        """
        if not self._reader.open():
            return PollOutcome(error=self._reader.last_error)

        lines = self._reader.read_appended_lines()
        read_error = self._reader.last_error
        if not lines:
            return PollOutcome(error=read_error)

        block = "".join(f"{line}\n" for line in lines)
        parsed = parse_csv_text(block, self._settings.csv, source=self.path)
        if not parsed.ok:
            return PollOutcome(error=parsed.error)

        delivered, handler_error = self._deliver(self.path, parsed.rows)
        return PollOutcome(rows=delivered, error=handler_error or read_error)

    def close(self) -> None:
        self._reader.close()

    def _delay_after(self, outcome: PollOutcome) -> float:
        err = outcome.error
        if err is None:
            return self.interval
        if err.kind is ErrorKind.NOT_AVAILABLE:
            return self._settings.watch.open_retry_seconds
        return self._settings.watch.recovery_seconds


class DirectoryWatcher(_Watcher):
    """Re-deliver the newest ``<prefix>*.csv`` in *directory* whenever it changes.

    A file is re-read in full when it differs from the last one delivered or
    its mtime is strictly newer.  A failed read, parse or delivery leaves the
    baseline alone so the same file is retried next cycle.
    """

    def __init__(
        self,
        directory: Path,
        prefix: str,
        on_row: RowHandler,
        interval: float | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(on_row, interval, settings)
        self.directory = Path(directory)
        self.prefix = prefix
        self.log_context = {"watch": "latest", "directory": str(self.directory), "prefix": prefix}
        self.last_path: Path | None = None
        self.last_mtime_ns = 0

    def poll_once(self) -> PollOutcome:
        found = find_latest_csv(self.directory, self.prefix)
        if found is None:
            return PollOutcome()

        try:
            mtime_ns = os.stat(found.path).st_mtime_ns
        except OSError as exc:
            return PollOutcome(error=WatchError.from_exception(ErrorKind.NOT_AVAILABLE, found.path, exc))

        if found.path == self.last_path and mtime_ns <= self.last_mtime_ns:
            return PollOutcome()

        try:
            text = read_text_shared(found.path)
        except OSError as exc:
            return PollOutcome(error=WatchError.from_exception(ErrorKind.TRANSIENT_IO, found.path, exc))

        parsed = parse_csv_text(text, self._settings.csv, source=found.path)
        if not parsed.ok:
            return PollOutcome(error=parsed.error)

        delivered, handler_error = self._deliver(found.path, parsed.rows)
        if handler_error is not None:
            return PollOutcome(rows=delivered, error=handler_error)

        self.last_path = found.path
        self.last_mtime_ns = mtime_ns
        _log.info("file delivered", **self.log_context, path=str(found.path), rows=delivered)
        return PollOutcome(rows=delivered)


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------


class WatchHandle:
    """A watcher running on its own daemon thread.

    ``stop()`` requests shutdown (interrupting any wait); ``join()`` waits for
    the thread.  Used as a context manager it stops and joins on exit.
    """

    def __init__(self, watcher: _Watcher, *, name: str, max_cycles: int | None = None) -> None:
        self.watcher = watcher
        self._stop = threading.Event()
        # Copy the caller's context so bound log vars (run_id) reach the thread.
        ctx = contextvars.copy_context()
        self._thread = threading.Thread(
            target=ctx.run,
            args=(watcher.run, self._stop),
            kwargs={"max_cycles": max_cycles},
            name=name,
            daemon=True,
        )

    def start(self) -> WatchHandle:
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the thread; return True if it has finished."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def __enter__(self) -> WatchHandle:
        return self

    def __exit__(self, *_: object) -> None:
        self.stop()
        self.join()


def start_append_watch(
    path: Path,
    on_row: RowHandler,
    interval: float | None = None,
    *,
    settings: Settings | None = None,
    max_cycles: int | None = None,
) -> WatchHandle:
    """Start tailing *path* on a new thread and return its handle."""
    watcher = AppendWatcher(path, on_row, interval, settings=settings)
    _log.info("append watch started", path=str(watcher.path), interval=watcher.interval)
    return WatchHandle(watcher, name=f"csvtail-append:{watcher.path.name}", max_cycles=max_cycles).start()


def start_directory_watch(
    directory: Path,
    prefix: str,
    on_row: RowHandler,
    interval: float | None = None,
    *,
    settings: Settings | None = None,
    max_cycles: int | None = None,
) -> WatchHandle:
    """Start watching *directory* for the newest ``<prefix>*.csv`` on a new thread."""
    watcher = DirectoryWatcher(directory, prefix, on_row, interval, settings=settings)
    _log.info(
        "directory watch started",
        directory=str(watcher.directory),
        prefix=prefix,
        interval=watcher.interval,
    )
    return WatchHandle(watcher, name=f"csvtail-latest:{prefix}", max_cycles=max_cycles).start()
