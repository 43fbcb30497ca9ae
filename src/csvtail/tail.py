"""Incremental tail reader for one growing CSV file.

``TailReader(path)`` keeps a byte offset into the file and, on every
``read_appended_lines()`` call, returns only the ``\\n``-terminated lines that
appeared since the previous call.  It copes with the three things an
uncontrolled producer does to a file:

- **append**   — read forward from the stored offset; a line split across two
  polls is held in a carry buffer until its terminator arrives;
- **truncate** — the file got smaller than the offset: start again at byte 0;
- **replace**  — the path now names a different underlying file (rotation by
  rename or delete+create): close, reopen, start again at byte 0.

After every open or reset a leading UTF-8 BOM is stripped once and, when
``skip_header`` is set, the first line is discarded once.  ``\\r\\n`` line
endings are normalised.

Replacement detection needs a file identity (see :mod:`csvtail.files`).  On
filesystems that cannot report one only truncation is observable: a rotated
file that is already larger than the old offset is read from that offset.

The reader is line-based: a quoted CSV field containing a newline is split
into two lines.  It is meant for single-line records.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from csvtail.errors import ErrorKind, WatchError
from csvtail.files import UTF8_BOM, FileIdentity, identity_of_fd, probe_identity
from csvtail.logging import get_logger

_log = get_logger(__name__)


@dataclass
class TailState:
    """Mutable per-path read state, owned by exactly one reader."""

    path: Path
    handle: BinaryIO | None = None
    offset: int = 0  # bytes consumed; never beyond file size after a read
    carry: bytearray = field(default_factory=bytearray)  # never contains b"\n"
    bom_stripped: bool = False
    header_skipped: bool = False
    identity: FileIdentity | None = None

    def reset(self) -> None:
        """Forget everything read so far; the next read starts at byte 0."""
        self.offset = 0
        self.carry.clear()
        self.bom_stripped = False
        self.header_skipped = False


class TailReader:
    """Stateful reader returning lines appended to *path* since the last call.

    Args:
        path:        File to follow.  It need not exist yet.
        skip_header: Drop the first line after every open/reset.
        chunk_size:  Upper bound on the bytes requested per ``read()``.
    """

    def __init__(self, path: Path, *, skip_header: bool = True, chunk_size: int = 64 * 1024) -> None:
        self._state = TailState(path=Path(path))
        self._skip_header = skip_header
        self._chunk_size = chunk_size
        self.last_error: WatchError | None = None

    @property
    def path(self) -> Path:
        return self._state.path

    @property
    def state(self) -> TailState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state.handle is not None

    # ------------------------------------------------------------------
    # open / close
    # ------------------------------------------------------------------

    def open(self) -> bool:
        """Open the file if it is not open already.  Returns True when open.

        A missing or locked file is not an exception: ``last_error`` is set
        to a ``NOT_AVAILABLE`` result and False is returned so the caller can
        retry later.
        """
        if self._state.handle is not None:
            return True
        try:
            handle = open(self._state.path, "rb")
        except OSError as exc:
            self.last_error = WatchError.from_exception(ErrorKind.NOT_AVAILABLE, self._state.path, exc)
            return False

        try:
            identity = identity_of_fd(handle.fileno())
        except OSError:
            identity = None

        self._state.handle = handle
        self._state.identity = identity
        self._state.reset()
        _log.debug("tail opened", path=str(self._state.path), identity=identity)
        return True

    def close(self) -> None:
        """Release the file handle.  Safe to call repeatedly or before open()."""
        handle, self._state.handle = self._state.handle, None
        if handle is not None:
            handle.close()

    def __enter__(self) -> TailReader:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # reading
    # ------------------------------------------------------------------

    def read_appended_lines(self) -> list[str]:
        """Return complete lines appended since the previous call, in file order.

        Returns an empty list when the file is unavailable or has not grown.
        A line with no terminating ``\\n`` yet stays buffered.  ``last_error``
        is cleared on entry and set if this call hit a problem.
        """
        self.last_error = None
        out: list[str] = []

        if not self.open():
            return out

        if self._refresh_if_replaced() and not self.is_open:
            return out

        st = self._state
        assert st.handle is not None
        try:
            size = os.fstat(st.handle.fileno()).st_size
        except OSError as exc:
            self.last_error = WatchError.from_exception(ErrorKind.TRANSIENT_IO, st.path, exc)
            return out

        if size < st.offset:
            _log.info("file truncated", path=str(st.path), offset=st.offset, size=size)
            st.reset()
        if size == st.offset:
            return out

        try:
            st.handle.seek(st.offset)
            remaining = size - st.offset
            while remaining > 0:
                chunk = st.handle.read(min(self._chunk_size, remaining))
                if not chunk:
                    break
                st.offset += len(chunk)
                remaining -= len(chunk)
                st.carry += chunk
                self._strip_bom()
                if not self._skip_header_line():
                    continue
                self._extract_lines(out)
        except OSError as exc:
            self.last_error = WatchError.from_exception(ErrorKind.TRANSIENT_IO, st.path, exc)

        return out

    def _refresh_if_replaced(self) -> bool:
        """Reopen when the path now names a different file.  True if reopened."""
        st = self._state
        if st.identity is None:
            return False
        current = probe_identity(st.path)
        if current is None or current == st.identity:
            # Missing for a moment mid-rotation, or still the same file.
            return False
        _log.info("file replaced", path=str(st.path), old=st.identity, new=current)
        self.close()
        self.open()
        return True

    def _strip_bom(self) -> None:
        st = self._state
        if st.bom_stripped or not st.carry:
            return
        if st.carry.startswith(UTF8_BOM):
            del st.carry[: len(UTF8_BOM)]
            st.bom_stripped = True
        elif len(st.carry) >= len(UTF8_BOM) or not UTF8_BOM.startswith(st.carry):
            st.bom_stripped = True
        # else: a partial BOM so far; decide once more bytes arrive

    def _skip_header_line(self) -> bool:
        """Drop the header once.  False while the header line is still incomplete."""
        st = self._state
        if not self._skip_header or st.header_skipped:
            return True
        if not st.bom_stripped:
            return False
        pos = st.carry.find(b"\n")
        if pos < 0:
            return False
        del st.carry[: pos + 1]
        st.header_skipped = True
        return True

    def _extract_lines(self, out: list[str]) -> None:
        carry = self._state.carry
        start = 0
        while (pos := carry.find(b"\n", start)) >= 0:
            end = pos - 1 if pos > start and carry[pos - 1] == 0x0D else pos
            out.append(carry[start:end].decode("utf-8", errors="replace"))
            start = pos + 1
        if start:
            del carry[:start]
