"""Latest-file selection for the directory watcher.

``find_latest_csv(directory, prefix)`` is the single entry point.  It scans
``directory`` (not recursively) for files named ``<prefix>*.csv`` and returns
the one with the newest modification time.  When two candidates share an
mtime (common on filesystems with coarse timestamps) the greater filename
in byte order wins, so the answer is always deterministic.

A missing or unreadable directory is not an error: it simply means there is
nothing to watch yet, and the caller polls again later.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import NamedTuple

from csvtail.logging import get_logger

_log = get_logger(__name__)

_SUFFIX = ".csv"


class FoundFile(NamedTuple):
    """Fingerprint of a candidate CSV file.

    The natural tuple order is not the selection order; use
    :func:`_selection_key` for that.
    """

    path: Path
    size: int  # bytes (st_size)
    mtime_ns: int  # st_mtime_ns, integer so ties compare exactly


def _selection_key(found: FoundFile) -> tuple[int, bytes]:
    return found.mtime_ns, os.fsencode(found.path.name)


def is_candidate_name(name: str, prefix: str) -> bool:
    """True if *name* starts with *prefix* and ends with ``.csv`` (any case)."""
    return name.startswith(prefix) and name.lower().endswith(_SUFFIX)


def find_latest_csv(directory: Path, prefix: str) -> FoundFile | None:
    """Return the newest ``<prefix>*.csv`` file in *directory*, or None.

    Args:
        directory: Directory to scan.  Subdirectories are ignored, even when
                   their names match.
        prefix:    Required filename prefix, matched case-sensitively.  The
                   ``.csv`` suffix is matched case-insensitively.

    Returns:
        The :class:`FoundFile` with the greatest ``(mtime_ns, name)``, or None
        when no entry qualifies or the directory cannot be listed.
    """
    best: FoundFile | None = None
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                if not is_candidate_name(entry.name, prefix):
                    continue
                try:
                    if entry.is_dir():
                        continue
                    st = entry.stat()
                except OSError:
                    continue  # removed between listing and stat
                found = FoundFile(path=Path(entry.path), size=st.st_size, mtime_ns=st.st_mtime_ns)
                if best is None or _selection_key(found) > _selection_key(best):
                    best = found
    except OSError as exc:
        _log.debug("directory not readable", directory=str(directory), error=str(exc))
        return None
    return best
