from __future__ import annotations

from typing import Any, Dict, Iterable, List


class ColumnStore:
    def close(self) -> None:
        pass

    def fetch_rows(
        self,
        keyspace: str,
        table: str,
        key_column: str,
        keys: Iterable[str],
        columns: List[str],
    ) -> List[Dict[str, Any]]:
        """Bulk lookup: rows of ``keyspace.table`` where ``key_column`` is in ``keys``.

        Rows come back projected to ``columns`` in no particular order; keys
        with no row are simply absent.
        """
        raise NotImplementedError
