"""CSV text → rows.

``parse_csv_text(text)`` is the single entry point used by both watchers.  It
treats no line as a header and no column as an index: every record comes back
as a plain ``list[str]``, with ragged widths passed through untouched.  Blank
lines produce no row.

Failures are returned, not raised: a :class:`ParsedChunk` always carries the
rows that parsed plus an optional :class:`~csvtail.errors.WatchError` of kind
``PARSE``.  When ``error`` is set the caller drops the chunk's rows.
"""

from __future__ import annotations

import csv
import io
import sys
from dataclasses import dataclass, field
from pathlib import Path

from csvtail.config import CsvSettings
from csvtail.errors import ErrorKind, WatchError

Row = list[str]

# Records have no length limit.  The stdlib default caps a field at 128 KiB;
# C long is 32 bits on Windows, so sys.maxsize alone can overflow there.
csv.field_size_limit(min(sys.maxsize, 2**31 - 1))


@dataclass(frozen=True)
class ParsedChunk:
    """Result of parsing one block of CSV text."""

    rows: list[Row] = field(default_factory=list)
    error: WatchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_csv_text(
    text: str,
    options: CsvSettings | None = None,
    *,
    source: Path | None = None,
) -> ParsedChunk:
    """Parse *text* into rows of string fields.

    Args:
        text:    CSV content; line terminators may be ``\\n`` or ``\\r\\n``.
        options: Delimiter and strictness; defaults to ``CsvSettings()``.
        source:  File the text came from, recorded on any error.

    Returns:
        :class:`ParsedChunk` with rows in input order.  On a parse failure
        ``error`` is set and ``rows`` holds whatever parsed before it.
    """
    if options is None:
        options = CsvSettings()

    reader = csv.reader(
        io.StringIO(text, newline=""),
        delimiter=options.delimiter,
        strict=options.strict,
    )
    rows: list[Row] = []
    try:
        for record in reader:
            if record:
                rows.append(record)
    except csv.Error as exc:
        return ParsedChunk(
            rows=rows,
            error=WatchError(
                kind=ErrorKind.PARSE,
                path=source,
                detail=f"line {reader.line_num}: {exc}",
            ),
        )
    return ParsedChunk(rows=rows)
