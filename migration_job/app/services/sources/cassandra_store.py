from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from cassandra import ConsistencyLevel, DriverException, OperationTimedOut, RequestExecutionException, RequestValidationException
from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile, NoHostAvailable
from cassandra.query import ValueSequence, dict_factory

from migration_job.app.core.errors import SourceLookupError
from migration_job.app.services.sources.base import ColumnStore

logger = logging.getLogger(__name__)

_LOOKUP_ERRORS = (
    DriverException,
    NoHostAvailable,
    OperationTimedOut,
    RequestExecutionException,
    RequestValidationException,
)


class CassandraColumnStore(ColumnStore):
    def __init__(
        self,
        contact_points: List[str],
        port: int = 9042,
        username: Optional[str] = None,
        password: Optional[str] = None,
        consistency_level: str = "LOCAL_QUORUM",
        request_timeout: float = 30.0,
    ):
        try:
            consistency = ConsistencyLevel.name_to_value[consistency_level.upper()]
        except KeyError:
            raise ValueError(f"Unknown Cassandra consistency level: {consistency_level}") from None

        profile = ExecutionProfile(
            consistency_level=consistency,
            request_timeout=request_timeout,
            row_factory=dict_factory,
        )
        auth_provider = None
        if username:
            auth_provider = PlainTextAuthProvider(username=username, password=password or "")

        self.cluster = Cluster(
            contact_points=contact_points,
            port=port,
            auth_provider=auth_provider,
            execution_profiles={EXEC_PROFILE_DEFAULT: profile},
        )
        self.session = self.cluster.connect()
        logger.info(f"Connected to Cassandra at {contact_points}:{port} (consistency {consistency_level})")

    def close(self) -> None:
        self.cluster.shutdown()

    def fetch_rows(
        self,
        keyspace: str,
        table: str,
        key_column: str,
        keys: Iterable[str],
        columns: List[str],
    ) -> List[Dict[str, Any]]:
        key_list = list(dict.fromkeys(keys))
        if not key_list:
            return []
        query = f"SELECT {', '.join(columns)} FROM {keyspace}.{table} WHERE {key_column} IN %s"
        try:
            rows = self.session.execute(query, (ValueSequence(key_list),))
            return [dict(r) for r in rows]
        except _LOOKUP_ERRORS as e:
            raise SourceLookupError(
                f"Lookup on {keyspace}.{table} for {len(key_list)} keys failed: {e}"
            ) from e
