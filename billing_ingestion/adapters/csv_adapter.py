"""
CSV source adapter.

Uses csv.reader. Configurable: delimiter (including ``auto`` detection),
quote character, has_header, trimming and empty-line skipping. Handles a BOM
via utf-8-sig when the encoding is utf-8. Reads from a file or from text.
"""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Any, Iterable, Iterator

from billing_kernel.exceptions import IngestionError
from billing_kernel.logging_config import get_logger

logger = get_logger("ingestion.csv")

_NAMED_DELIMITERS = {
    "tab": "\t",
    "\\t": "\t",
    "semicolon": ";",
    "comma": ",",
    "pipe": "|",
}


def _get_encoding(options: dict[str, Any]) -> str:
    enc = options.get("encoding", "utf-8")
    if enc.lower() == "utf-8":
        return "utf-8-sig"  # Strip BOM if present
    return enc


def detect_delimiter(first_line: str) -> str:
    """Tab wins over semicolon, semicolon over comma."""
    if "\t" in first_line:
        return "\t"
    if ";" in first_line:
        return ";"
    return ","


def resolve_delimiter(delimiter: str, sample: str) -> str:
    if delimiter == "auto":
        first_line = sample.splitlines()[0] if sample else ""
        resolved = detect_delimiter(first_line)
        logger.info("csv_delimiter_detected", extra={"delimiter": repr(resolved)})
        return resolved
    return _NAMED_DELIMITERS.get(delimiter.lower(), delimiter)


def _is_blank(row: list[str]) -> bool:
    return all(not cell.strip() for cell in row)


def _rows(
    lines: Iterable[str],
    options: dict[str, Any],
    delimiter: str,
) -> Iterator[dict[str, Any]]:
    quote = options.get("quote", '"')
    has_header = options.get("has_header", True)
    trim = options.get("trim", True)
    skip_empty = options.get("skip_empty_lines", True)

    reader = csv.reader(lines, delimiter=delimiter, quotechar=quote, strict=True)
    columns: list[str] | None = None
    try:
        for row in reader:
            if skip_empty and _is_blank(row):
                continue
            if trim:
                row = [cell.strip() for cell in row]
            if columns is None:
                if has_header:
                    columns = row
                    continue
                columns = [f"field_{i}" for i in range(len(row))]
            yield dict(zip(columns, row))
    except csv.Error as exc:
        raise IngestionError(
            f"Failed to parse CSV data: {exc}",
            context={"line": reader.line_num},
        ) from exc


class CsvSourceAdapter:
    """Read CSV as one dict per row."""

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        encoding = _get_encoding(options)
        with source_path.open("r", encoding=encoding, newline="") as f:
            first = f.readline()
            delimiter = resolve_delimiter(options.get("delimiter", ","), first)
            f.seek(0)
            yield from _rows(f, options, delimiter)

    def read_text(self, text: str, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        if text.startswith("\ufeff"):
            text = text[1:]
        delimiter = resolve_delimiter(options.get("delimiter", ","), text)
        yield from _rows(io.StringIO(text, newline=""), options, delimiter)
