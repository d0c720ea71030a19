"""
import_engine.csv_parser - Low-level CSV reading and cleaning.

Responsibilities:
  • BOM removal (UTF-8 / UTF-8-SIG)
  • Header and cell whitespace stripping, blank-line skipping
  • Required Goodreads header check
  • Returns (row_number, row) pairs with the header counted as row 1
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass

from import_engine.field_map import REQUIRED_HEADERS


class EnvelopeError(Exception):
    """Raised when the upload as a whole cannot be processed."""
    pass


@dataclass(frozen=True)
class ParsedRow:
    row_number: int
    row: dict[str, str]


def parse_rows(raw: str | bytes) -> list[ParsedRow]:
    """
    Parse a whole export into rows.  An empty file yields no rows;
    a file with data but missing required headers raises EnvelopeError.
    """
    text = _decode(raw)
    if not text or not text.strip():
        return []

    try:
        reader = csv.DictReader(io.StringIO(text, newline=""))
        if reader.fieldnames is None:
            return []
        reader.fieldnames = [h.strip() for h in reader.fieldnames]

        missing = [h for h in REQUIRED_HEADERS if h not in reader.fieldnames]
        if missing:
            raise EnvelopeError(
                f"CSV is missing required Goodreads header: {missing[0]}"
            )

        rows: list[ParsedRow] = []
        row_number = 1                                   # row 1 = header
        for row in reader:
            cleaned = {
                k: v.strip() if isinstance(v, str) else ""
                for k, v in row.items() if k is not None
            }
            if not any(cleaned.values()):
                continue
            row_number += 1
            rows.append(ParsedRow(row_number=row_number, row=cleaned))
    except csv.Error as exc:
        raise EnvelopeError(f"CSV could not be read: {exc}") from exc

    return rows


def _decode(raw: str | bytes) -> str:
    if isinstance(raw, bytes):
        # Strip UTF-8 BOM
        if raw.startswith(b"\xef\xbb\xbf"):
            raw = raw[3:]
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise EnvelopeError("CSV is not valid UTF-8") from exc
    if raw.startswith("\ufeff"):
        return raw[1:]
    return raw
