from __future__ import annotations

import concurrent.futures
import logging
import uuid
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, TypeVar

from migration_job.app.core.errors import DestinationWriteError, EnrichmentParseError, SourceLookupError
from migration_job.app.core.settings import Settings
from migration_job.app.models.records import RelationRecord, UpsertRecord
from migration_job.app.models.run import BatchOutcome, MigrationReport
from migration_job.app.services.attributes import fetch_user_attributes
from migration_job.app.services.factory import create_stores
from migration_job.app.services.joiner import join_user_record
from migration_job.app.services.reader import (
    RelationRow,
    iter_relation_batches,
    iter_user_id_batches,
    parse_relation_properties,
)
from migration_job.app.services.roles import fetch_role_records, resolve_roles
from migration_job.app.services.sinks.base import GraphSink
from migration_job.app.services.sources.base import ColumnStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _batch_keys(batch: Sequence[Any]) -> Dict[str, Optional[str]]:
    def key(item: Any) -> str:
        return item[0] if isinstance(item, tuple) else str(item)

    if not batch:
        return {"first_key": None, "last_key": None}
    return {"first_key": key(batch[0]), "last_key": key(batch[-1])}


class MigrationPipeline:
    """Drives a single bulk run: read batches, fan out to a worker pool, drain.

    Batches are independent. Within a batch the lookups, the join and the
    write run sequentially on one worker thread and the write commits as a
    single transaction. A failing batch is reported, never retried, and
    never cancels its siblings.

    Ids that appear in two in-flight batches race; the graph store's
    last-write-wins upsert decides the final state.
    """

    def __init__(
        self,
        settings: Settings,
        source: Optional[ColumnStore] = None,
        graph: Optional[GraphSink] = None,
    ):
        self.settings = settings
        self.settings.ensure_out_dirs()
        self.run_id = settings.run_id or str(uuid.uuid4())

        if source is None and graph is None:
            source, graph = create_stores(settings)
        elif source is None or graph is None:
            raise ValueError("pass both source and graph, or neither")
        self.source = source
        self.graph = graph

    def close(self) -> None:
        try:
            self.graph.close()
        finally:
            self.source.close()

    # ---------- entry points ----------

    def onboard_users(self, stream: Iterable[str]) -> MigrationReport:
        report = MigrationReport(run_id=self.run_id, kind="users")
        self._enter(report, "reading")
        batches = iter_user_id_batches(stream, self.settings.batch_size)
        return self._run(report, batches, self.process_user_batch)

    def update_relations(self, stream: Iterable[str]) -> MigrationReport:
        report = MigrationReport(run_id=self.run_id, kind="relations")
        self._enter(report, "reading")
        batches = iter_relation_batches(stream, self.settings.batch_size)
        return self._run(report, batches, self.process_relation_batch)

    # ---------- orchestration ----------

    def _enter(self, report: MigrationReport, phase: str) -> None:
        report.phase = phase  # type: ignore[assignment]
        logger.info(f"[{report.run_id}] {report.kind} run -> {phase}")

    def _collect(self, report: MigrationReport, future: concurrent.futures.Future, index: int) -> None:
        try:
            outcome = future.result()
        except Exception as e:
            # process_*_batch already contains its errors; this is the last line
            logger.exception(f"[{report.run_id}] batch {index} crashed outside its handler")
            outcome = BatchOutcome(batch_index=index, size=0, status="failed", error=f"{type(e).__name__}: {e}")
        report.record(outcome)

    def _run(
        self,
        report: MigrationReport,
        batches: Iterator[List[T]],
        worker: Callable[[int, List[T]], BatchOutcome],
    ) -> MigrationReport:
        limit = self.settings.pending_limit
        pending: Dict[concurrent.futures.Future, int] = {}
        read_failure: Optional[BatchOutcome] = None

        logger.info(
            f"[{report.run_id}] Starting {report.kind} migration with {self.settings.max_workers} workers, "
            f"batch size {self.settings.batch_size}"
        )
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.settings.max_workers,
            thread_name_prefix="migration",
        ) as executor:
            self._enter(report, "dispatching")
            index = 0
            while True:
                try:
                    batch = next(batches, None)
                except Exception as e:
                    # batches already submitted may have committed; stop reading and still drain
                    logger.exception(f"[{report.run_id}] reading batch {index} failed, dispatch stopped")
                    read_failure = BatchOutcome(
                        batch_index=index, size=0, status="failed", stage="read", error=f"{type(e).__name__}: {e}"
                    )
                    break
                if batch is None:
                    break
                # bound in-flight batches so the reader is consumed lazily
                if len(pending) >= limit:
                    done, _ = concurrent.futures.wait(pending, return_when=concurrent.futures.FIRST_COMPLETED)
                    for f in done:
                        self._collect(report, f, pending.pop(f))
                pending[executor.submit(worker, index, batch)] = index
                index += 1

            self._enter(report, "draining")
            for f in concurrent.futures.as_completed(list(pending)):
                self._collect(report, f, pending.pop(f))

        if read_failure is not None:
            report.record(read_failure)
        report.finish()
        logger.info(
            f"[{report.run_id}] {report.kind} migration finished: {report.status}. "
            f"Batches: {report.batches_total} (ok {report.batches_succeeded}, failed {report.batches_failed}); "
            f"records read {report.records_read}, written {report.records_written}, dropped {report.records_dropped}"
        )
        for failure in report.failures:
            logger.error(
                f"[{report.run_id}] batch {failure.batch_index} failed at {failure.stage}: {failure.error}"
            )
        return report

    # ---------- per-batch work ----------

    def build_user_records(self, user_ids: List[str]) -> List[UpsertRecord]:
        attributes = fetch_user_attributes(self.source, self.settings, user_ids)
        organisation_by_user = {
            a.user_id: a.organisation_id for a in attributes if a.user_id and a.organisation_id
        }
        role_records = fetch_role_records(self.source, self.settings, list(organisation_by_user))
        roles = resolve_roles(role_records, organisation_by_user)

        # keep reader order inside the batch; the store returns rows unordered
        position = {uid: i for i, uid in reversed(list(enumerate(user_ids)))}
        attributes = sorted(attributes, key=lambda a: position.get(a.user_id, len(position)))

        records: List[UpsertRecord] = []
        seen: Set[str] = set()
        for attr in attributes:
            if attr.user_id in seen:
                continue
            seen.add(attr.user_id)
            rec = join_user_record(attr, roles.get(attr.user_id, []))
            if rec is not None:
                records.append(rec)
        return records

    def process_user_batch(self, index: int, user_ids: List[str]) -> BatchOutcome:
        outcome = BatchOutcome(batch_index=index, size=len(user_ids), **_batch_keys(user_ids))
        logger.info(f"Starting processing batch {index} of {len(user_ids)} user IDs")
        try:
            records = self.build_user_records(user_ids)
        except SourceLookupError as e:
            logger.error(f"Batch {index} ({outcome.first_key}..{outcome.last_key}) source lookup failed: {e}")
            return outcome.model_copy(update={"status": "failed", "stage": "source_lookup", "error": str(e)})
        except Exception as e:
            logger.exception(f"Batch {index} failed while resolving records")
            return outcome.model_copy(update={"status": "failed", "stage": "resolve", "error": f"{type(e).__name__}: {e}"})

        outcome.records_dropped = len(user_ids) - len(records)
        try:
            self.graph.upsert_users(records)
        except DestinationWriteError as e:
            logger.error(f"Batch {index} ({outcome.first_key}..{outcome.last_key}) write failed: {e}")
            return outcome.model_copy(update={"status": "failed", "stage": "write", "error": str(e)})
        except Exception as e:
            logger.exception(f"Batch {index} failed while writing")
            return outcome.model_copy(update={"status": "failed", "stage": "write", "error": f"{type(e).__name__}: {e}"})

        outcome.records_written = len(records)
        logger.info(f"Finished processing batch {index}: {len(records)} written, {outcome.records_dropped} dropped")
        return outcome

    def build_relation_records(self, rows: List[RelationRow]) -> List[RelationRecord]:
        records: List[RelationRecord] = []
        for user_id, blob, relation_user_id in rows:
            if not user_id or not relation_user_id:
                logger.warning(f"Skipping relation row with missing endpoint: {user_id!r} -> {relation_user_id!r}")
                continue
            try:
                props = parse_relation_properties(blob)
            except EnrichmentParseError as e:
                logger.warning(f"Skipping relation {user_id} -> {relation_user_id}: {e}")
                continue
            logger.debug(f"Processing relation for userId: {user_id}, relationUserId: {relation_user_id}, relProps: {props}")
            records.append(RelationRecord(user_id=user_id, properties=props, relation_user_id=relation_user_id))
        return records

    def process_relation_batch(self, index: int, rows: List[RelationRow]) -> BatchOutcome:
        outcome = BatchOutcome(batch_index=index, size=len(rows), **_batch_keys(rows))
        records = self.build_relation_records(rows)
        outcome.records_dropped = len(rows) - len(records)
        try:
            self.graph.upsert_relations(records)
        except DestinationWriteError as e:
            logger.error(f"Relation batch {index} ({outcome.first_key}..{outcome.last_key}) write failed: {e}")
            return outcome.model_copy(update={"status": "failed", "stage": "write", "error": str(e)})
        except Exception as e:
            logger.exception(f"Relation batch {index} failed while writing")
            return outcome.model_copy(update={"status": "failed", "stage": "write", "error": f"{type(e).__name__}: {e}"})

        outcome.records_written = len(records)
        return outcome
