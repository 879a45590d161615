from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

from migration_job.app.core.errors import SourceLookupError
from migration_job.app.services.sources.base import ColumnStore


class JsonColumnStore(ColumnStore):
    """Reads ``<data_dir>/<keyspace>.<table>.jsonl`` exports, one row per line."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def table_path(self, keyspace: str, table: str) -> Path:
        return self.data_dir / f"{keyspace}.{table}.jsonl"

    def fetch_rows(
        self,
        keyspace: str,
        table: str,
        key_column: str,
        keys: Iterable[str],
        columns: List[str],
    ) -> List[Dict[str, Any]]:
        wanted = set(keys)
        path = self.table_path(keyspace, table)
        if not wanted:
            return []
        if not path.exists():
            raise SourceLookupError(f"Table export not found: {path}")

        rows: List[Dict[str, Any]] = []
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    if not line.strip():
                        continue
                    row = json.loads(line)
                    if row.get(key_column) in wanted:
                        rows.append({c: row.get(c) for c in columns})
        except (OSError, json.JSONDecodeError) as e:
            raise SourceLookupError(f"Failed reading {path}: {e}") from e
        return rows
