"""
JSON source adapter.

Handles a JSON array (file is [{...}, {...}]), an object holding the array
at ``json_path`` (e.g. "data.records"), and JSON Lines (one object per line,
selected by ``format: jsonl`` or a ``.jsonl`` suffix). Keys are kept as
written; field lookups downstream are case-insensitive.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator

from billing_kernel.exceptions import IngestionError


def _get_nested(data: Any, path: str) -> Any:
    """Follow dot-separated path into dict/list. Returns None if key missing."""
    if not path.strip():
        return data
    for key in path.split("."):
        key = key.strip()
        if not key:
            continue
        if isinstance(data, list):
            try:
                data = data[int(key)]
            except (ValueError, IndexError):
                return None
        elif isinstance(data, dict) and key in data:
            data = data[key]
        else:
            return None
    return data


class JsonSourceAdapter:
    """Read JSON array or JSON Lines files as one dict per record."""

    def read(self, source_path: Path, options: dict[str, Any]) -> Iterator[dict[str, Any]]:
        fmt = options.get("format") or ("jsonl" if source_path.suffix == ".jsonl" else "array")
        encoding = options.get("encoding", "utf-8")

        if fmt == "jsonl":
            with source_path.open("r", encoding=encoding) as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        item = json.loads(line)
                    except json.JSONDecodeError as exc:
                        raise IngestionError(
                            f"Invalid JSON on line {line_no}: {exc.msg}",
                            context={"path": str(source_path), "line": line_no},
                        ) from exc
                    if isinstance(item, dict):
                        yield item
            return

        with source_path.open("r", encoding=encoding) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise IngestionError(
                    f"Invalid JSON: {exc.msg}", context={"path": str(source_path)}
                ) from exc
        json_path = options.get("json_path")
        root = _get_nested(data, json_path) if json_path else data
        if isinstance(root, dict):
            root = [root]
        if not isinstance(root, list):
            return
        for item in root:
            if isinstance(item, dict):
                yield item
