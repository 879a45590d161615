from __future__ import annotations

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Tuple

from migration_job.app.models.records import RelationRecord, UpsertRecord
from migration_job.app.services.sinks.base import GraphSink


def jsonencoder(o: Any) -> Any:
    if isinstance(o, datetime):
        return o.isoformat()
    return str(o)


def jsonl_append(path: Path, objs: List[Dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        for obj in objs:
            f.write(json.dumps(obj, default=jsonencoder) + "\n")


class JsonGraphSink(GraphSink):
    """File-backed stand-in for the graph store with the same merge semantics.

    Nodes are keyed by ``userId`` and edges by ``(userId, relationUserId)`` so
    replaying a batch leaves the snapshot unchanged. Every write is also
    appended to a JSONL log for inspection.
    """

    def __init__(self, out_dir: Path, user_label: str = "userV3", relation_type: str = "connect"):
        self.path_nodes = out_dir / "graph_nodes.jsonl"
        self.path_rels = out_dir / "graph_rels.jsonl"
        self.snapshot_path = out_dir / "graph_snapshot.json"
        self.user_label = user_label
        self.relation_type = relation_type

        self.nodes: Dict[str, Dict[str, Any]] = {}
        self.rels: Dict[Tuple[str, str], Dict[str, Any]] = {}
        # workers share one sink; the store serializes its own writes
        self._lock = threading.Lock()

    def close(self) -> None:
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        self.snapshot_path.write_text(json.dumps({
            "nodes": [{"label": self.user_label, "properties": p} for p in self.nodes.values()],
            "relationships": [
                {"type": self.relation_type, "from": a, "to": b, "properties": p}
                for (a, b), p in self.rels.items()
            ],
        }, indent=2, default=jsonencoder), encoding="utf-8")

    def upsert_users(self, records: List[UpsertRecord]) -> Dict[str, Any]:
        if not records:
            return {"nodes_upserted": 0}
        created = 0
        rows = [r.to_params() for r in records]
        with self._lock:
            for r, props in zip(records, rows):
                if r.user_id not in self.nodes:
                    created += 1
                # last write wins, no merge of role lists
                self.nodes[r.user_id] = props
            jsonl_append(self.path_nodes, rows)
        return {"nodes_upserted": len(records), "nodes_created": created}

    def upsert_relations(self, records: List[RelationRecord]) -> Dict[str, Any]:
        if not records:
            return {"relationships_attempted": 0}
        created = 0
        written = []
        with self._lock:
            for r in records:
                # MATCH semantics: both endpoints must already exist
                if r.user_id not in self.nodes or r.relation_user_id not in self.nodes:
                    continue
                key = (r.user_id, r.relation_user_id)
                if key not in self.rels:
                    created += 1
                    self.rels[key] = {}
                self.rels[key].update(r.properties)
                written.append(r.to_params())
            jsonl_append(self.path_rels, written)
        return {"relationships_attempted": len(records), "relationships_created": created}
