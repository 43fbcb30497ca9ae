"""Shared pytest helpers and fixtures for the csvtail test suite.

write_bytes(path, data)     — create/overwrite a file with raw bytes
append(path, text)          — append UTF-8 text to a file (creating it)
set_mtime_ns(path, ns)      — pin a file's mtime for deterministic selection
RowSink / sink              — row handler that records every (path, fields) call
fast_settings               — Settings with zero waits, for driving loops directly
strict_settings             — fast_settings plus strict CSV quoting
"""

import os
from pathlib import Path

import pytest

from csvtail.config import Settings


def write_bytes(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def append(path: Path, text: str) -> None:
    """Append *text* to *path* the way a producer would (open, write, close)."""
    with path.open("a", encoding="utf-8", newline="") as fh:
        fh.write(text)


def set_mtime_ns(path: Path, mtime_ns: int) -> None:
    os.utime(path, ns=(mtime_ns, mtime_ns))


class RowSink:
    """Row handler that records every call in order."""

    def __init__(self) -> None:
        self.calls: list[tuple[Path, list[str]]] = []

    def __call__(self, source: Path, fields: list[str]) -> None:
        self.calls.append((source, list(fields)))

    @property
    def rows(self) -> list[list[str]]:
        return [fields for _, fields in self.calls]

    def clear(self) -> None:
        self.calls.clear()


@pytest.fixture
def sink() -> RowSink:
    return RowSink()


@pytest.fixture
def fast_settings() -> Settings:
    """Settings whose waits are all zero so loops can be driven synchronously."""
    return Settings(
        watch={"interval_seconds": 0, "open_retry_seconds": 0, "recovery_seconds": 0},
    )


@pytest.fixture
def strict_settings() -> Settings:
    """``fast_settings`` with strict CSV quoting, so ``"a"b`` is a parse error."""
    return Settings(
        watch={"interval_seconds": 0, "open_retry_seconds": 0, "recovery_seconds": 0},
        csv={"strict": True},
    )
