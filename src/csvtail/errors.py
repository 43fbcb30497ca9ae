"""Typed error results passed between the read/parse steps and the watcher loops.

The loops never branch on exception types.  Each step that can fail hands back
a :class:`WatchError` and the loop picks its log level and retry delay from
``kind`` alone.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path


class ErrorKind(enum.Enum):
    NOT_AVAILABLE = "not_available"  # file/dir missing or locked; retry soon
    TRANSIENT_IO = "transient_io"  # read or stat failed mid-cycle
    PARSE = "parse"  # chunk is not valid CSV; rows dropped
    HANDLER = "handler"  # the caller's row handler raised


@dataclass(frozen=True)
class WatchError:
    """One failed step of a poll cycle."""

    kind: ErrorKind
    path: Path | None
    detail: str

    @classmethod
    def from_exception(cls, kind: ErrorKind, path: Path | None, exc: BaseException) -> WatchError:
        return cls(kind=kind, path=path, detail=f"{type(exc).__name__}: {exc}")
