from __future__ import annotations
from typing import Any, Dict, List

from migration_job.app.models.records import RelationRecord, UpsertRecord


class GraphSink:
    def close(self) -> None:
        pass

    def upsert_users(self, records: List[UpsertRecord]) -> Dict[str, Any]:
        raise NotImplementedError

    def upsert_relations(self, records: List[RelationRecord]) -> Dict[str, Any]:
        raise NotImplementedError
