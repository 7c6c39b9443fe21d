"""
XLSX source adapter for spreadsheet price lists.

Supports:
  - sheet by index (0-based) or name
  - skip_rows before the header row
  - cell normalization (strip strings, whole floats -> int, blank -> "")
  - duplicate header de-duplication (``sku``, ``sku_1``, ...)
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterator

import openpyxl


def _normalize_header_cell(value: Any) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def _cell_value(row: Any, col_idx: int) -> Any:
    """Get cell value from openpyxl row (0-based column index)."""
    try:
        cell = row[col_idx]
    except IndexError:
        return ""
    v = cell.value if cell is not None else None
    if v is None:
        return ""
    if isinstance(v, bool):
        return v
    if isinstance(v, float):
        return int(v) if v == int(v) else v
    if isinstance(v, int):
        return v
    return str(v).strip()


def _headers(header_row: Any) -> list[str]:
    headers: list[str] = []
    for c in range(len(header_row)):
        key = _normalize_header_cell(_cell_value(header_row, c)) or f"Column_{c + 1}"
        base = key
        cnt = 0
        while key in headers:
            cnt += 1
            key = f"{base}_{cnt}"
        headers.append(key)
    # Trailing empty header cells are formatting, not columns
    while headers and headers[-1].startswith("Column_") and not _cell_value(header_row, len(headers) - 1):
        headers.pop()
    return headers


class XlsxSourceAdapter:
    """
    Read .xlsx files as one dict per non-empty row, keyed by the header row.

    options:
      sheet: 0-based sheet index (int) or sheet name (str). Default: active sheet.
      skip_rows: rows to skip at the top of the sheet before the header.
    """

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        wb = openpyxl.load_workbook(source_path, read_only=True, data_only=True)
        try:
            sheet = self._get_sheet(wb, options)
            skip_rows = int(options.get("skip_rows", 0))
            rows = sheet.iter_rows(min_row=1 + skip_rows)
            header_row = next(rows, None)
            if header_row is None:
                return
            headers = _headers(header_row)
            ncols = len(headers)
            for row in rows:
                vals = [_cell_value(row, c) for c in range(ncols)]
                if not any(v != "" for v in vals):
                    continue
                yield dict(zip(headers, vals))
        finally:
            wb.close()

    def _get_sheet(self, wb: Any, options: dict[str, Any]) -> Any:
        sheet_ref = options.get("sheet")
        if sheet_ref is None:
            return wb.active
        if isinstance(sheet_ref, int):
            return wb.worksheets[sheet_ref]
        return wb[sheet_ref]
