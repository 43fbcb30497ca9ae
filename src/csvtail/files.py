"""Filesystem helpers shared by the tail reader and the directory watcher.

- :class:`FileIdentity` / :func:`probe_identity` / :func:`identity_of_fd` —
  "is this path still the same underlying file?" via ``(st_dev, st_ino)``.
- :func:`read_text_shared` — read a whole file that another process may be
  writing, renaming or deleting, with a leading UTF-8 BOM removed.

Identity is optional: some filesystems report ``st_ino == 0`` for every file,
in which case the probe returns ``None`` and callers must fall back to
size-only tracking.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import NamedTuple

UTF8_BOM = b"\xef\xbb\xbf"

# Matches the tail reader's chunk size; bounds each read() call.
_READ_CHUNK = 64 * 1024


class FileIdentity(NamedTuple):
    """Platform-stable identity of an underlying file, independent of its path."""

    volume: int  # st_dev
    file_index: int  # st_ino


def _identity(st: os.stat_result) -> FileIdentity | None:
    if not st.st_ino:
        return None
    return FileIdentity(volume=st.st_dev, file_index=st.st_ino)


def identity_of_fd(fd: int) -> FileIdentity | None:
    """Return the identity of an open file descriptor, or None if unsupported."""
    return _identity(os.fstat(fd))


def probe_identity(path: Path) -> FileIdentity | None:
    """Return the identity of the file currently at *path*.

    Returns None when the path does not exist right now or the filesystem
    cannot report an identity.  A missing path is common mid-rotation and
    is not an error.
    """
    try:
        return _identity(os.stat(path))
    except OSError:
        return None


def strip_bom(data: bytes) -> bytes:
    """Return *data* without a leading UTF-8 byte-order mark."""
    if data.startswith(UTF8_BOM):
        return data[len(UTF8_BOM):]
    return data


def read_text_shared(path: Path) -> str:
    """Read *path* in full and return it as text with any BOM removed.

    The file is opened read-only without locking, so a concurrent producer
    may keep appending; whatever is present when EOF is reached is returned.
    Undecodable bytes are replaced rather than raising.

    Raises:
        OSError: the file could not be opened or read.
    """
    parts: list[bytes] = []
    with open(path, "rb") as fh:
        while chunk := fh.read(_READ_CHUNK):
            parts.append(chunk)
    return strip_bom(b"".join(parts)).decode("utf-8", errors="replace")
