from __future__ import annotations
from typing import Tuple

from migration_job.app.core.settings import Settings
from migration_job.app.services.sinks.base import GraphSink
from migration_job.app.services.sinks.json_store import JsonGraphSink
from migration_job.app.services.sources.base import ColumnStore
from migration_job.app.services.sources.json_store import JsonColumnStore


def create_source(settings: Settings) -> ColumnStore:
    if settings.source_backend == "json":
        return JsonColumnStore(settings.source_data_dir)

    from migration_job.app.services.sources.cassandra_store import CassandraColumnStore

    return CassandraColumnStore(
        contact_points=settings.cassandra_contact_points,
        port=settings.cassandra_port,
        username=settings.cassandra_username,
        password=settings.cassandra_password,
        consistency_level=settings.cassandra_consistency_level,
        request_timeout=settings.cassandra_request_timeout,
    )


def create_graph_sink(settings: Settings) -> GraphSink:
    if settings.graph_sink == "json":
        return JsonGraphSink(
            settings.out_dir,
            user_label=settings.user_label,
            relation_type=settings.relation_type,
        )

    from migration_job.app.services.sinks.neo4j_sink import Neo4jGraphSink

    return Neo4jGraphSink(
        uri=settings.neo4j_uri,
        user=settings.neo4j_user,
        password=settings.neo4j_password,
        database=settings.neo4j_database,
        auth_enabled=settings.neo4j_auth_enabled,
        timeout=settings.neo4j_timeout,
        user_label=settings.user_label,
        relation_type=settings.relation_type,
        write_mode=settings.neo4j_write_mode,
    )


def create_stores(settings: Settings) -> Tuple[ColumnStore, GraphSink]:
    source = create_source(settings)
    try:
        graph_sink = create_graph_sink(settings)
    except Exception:
        source.close()
        raise
    return source, graph_sink
