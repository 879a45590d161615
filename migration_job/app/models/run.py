from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

RunKind = Literal["users", "relations"]
RunPhase = Literal["reading", "dispatching", "draining", "done"]
RunStatus = Literal["running", "success", "partial", "failed"]
BatchStatus = Literal["success", "failed"]
BatchStage = Literal["read", "source_lookup", "resolve", "write"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchOutcome(BaseModel):
    batch_index: int
    size: int
    status: BatchStatus = "success"
    stage: Optional[BatchStage] = None
    error: Optional[str] = None

    first_key: Optional[str] = None
    last_key: Optional[str] = None

    records_written: int = 0
    records_dropped: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "success"


class MigrationReport(BaseModel):
    run_id: str
    kind: RunKind
    phase: RunPhase = "reading"
    status: RunStatus = "running"

    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    batches_total: int = 0
    batches_succeeded: int = 0
    batches_failed: int = 0

    records_read: int = 0
    records_written: int = 0
    records_dropped: int = 0

    failures: List[BatchOutcome] = []

    def record(self, outcome: BatchOutcome) -> None:
        self.batches_total += 1
        self.records_read += outcome.size
        self.records_written += outcome.records_written
        self.records_dropped += outcome.records_dropped
        if outcome.ok:
            self.batches_succeeded += 1
        else:
            self.batches_failed += 1
            self.failures.append(outcome)

    def finish(self) -> None:
        self.phase = "done"
        self.finished_at = _utcnow()
        if self.batches_failed == 0:
            self.status = "success"
        elif self.batches_succeeded == 0:
            self.status = "failed"
        else:
            self.status = "partial"
