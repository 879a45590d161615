from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from neo4j import GraphDatabase
from neo4j.exceptions import DriverError, Neo4jError

from migration_job.app.core.errors import DestinationWriteError
from migration_job.app.core.settings import Neo4jWriteMode
from migration_job.app.models.records import RelationRecord, UpsertRecord
from migration_job.app.services.sinks.base import GraphSink

logger = logging.getLogger(__name__)


def user_cypher(label: str, bulk: bool) -> str:
    if bulk:
        return f"""
        UNWIND $rows AS row
        MERGE (u:{label} {{userId: row.userId}})
        SET u.organisationId = row.organisationId,
            u.designation = row.designation,
            u.role = row.role
        """
    return f"""
    MERGE (u:{label} {{userId: $userId}})
    SET u.organisationId = $organisationId,
        u.designation = $designation,
        u.role = $role
    RETURN u.userId
    """


def relation_cypher(label: str, rel_type: str, bulk: bool) -> str:
    if bulk:
        return f"""
        UNWIND $rows AS row
        MATCH (u:{label} {{userId: row.userId}}), (r:{label} {{userId: row.relationUserId}})
        MERGE (u)-[rel:{rel_type}]->(r)
        SET rel += row.props
        """
    return f"""
    MATCH (u:{label} {{userId: $userId}}), (r:{label} {{userId: $relationUserId}})
    MERGE (u)-[rel:{rel_type}]->(r)
    SET rel += $props
    """


class Neo4jGraphSink(GraphSink):
    """Writes each batch in one explicit transaction.

    Explicit transactions are not retried by the driver, so a failed batch
    surfaces as ``DestinationWriteError`` exactly once.
    """

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        database: Optional[str] = None,
        auth_enabled: bool = True,
        timeout: int = 30,
        user_label: str = "userV3",
        relation_type: str = "connect",
        write_mode: Neo4jWriteMode = "unwind",
        driver: Any = None,
    ):
        if driver is not None:
            self.driver = driver
        elif auth_enabled:
            self.driver = GraphDatabase.driver(uri, auth=(user, password))
        else:
            logger.info(f"Using timeout config of : {timeout}")
            self.driver = GraphDatabase.driver(
                uri,
                connection_timeout=timeout,
                liveness_check_timeout=10,
            )
        self.database = database
        self.user_label = user_label
        self.relation_type = relation_type
        self.write_mode = write_mode

    def close(self) -> None:
        self.driver.close()

    def _write(self, cypher: str, params: List[Dict[str, Any]]) -> Dict[str, int]:
        """Run the statement once with ``rows`` (unwind) or once per row, all in one transaction."""
        counters = {"nodes_created": 0, "relationships_created": 0, "properties_set": 0}
        try:
            with self.driver.session(database=self.database) as session:
                with session.begin_transaction() as tx:
                    if self.write_mode == "unwind":
                        results = [tx.run(cypher, rows=params)]
                    else:
                        results = [tx.run(cypher, **p) for p in params]
                    for result in results:
                        c = result.consume().counters
                        counters["nodes_created"] += c.nodes_created
                        counters["relationships_created"] += c.relationships_created
                        counters["properties_set"] += c.properties_set
                    tx.commit()
        except (Neo4jError, DriverError) as e:
            raise DestinationWriteError(f"Neo4j transaction failed: {e}") from e
        return counters

    def upsert_users(self, records: List[UpsertRecord]) -> Dict[str, Any]:
        if not records:
            return {"nodes_upserted": 0}
        cypher = user_cypher(self.user_label, self.write_mode == "unwind")
        counters = self._write(cypher, [r.to_params() for r in records])
        logger.info(f"Committed Neo4j transaction for batch of {len(records)} users")
        return {"nodes_upserted": len(records), **counters}

    def upsert_relations(self, records: List[RelationRecord]) -> Dict[str, Any]:
        if not records:
            return {"relationships_attempted": 0}
        cypher = relation_cypher(self.user_label, self.relation_type, self.write_mode == "unwind")
        counters = self._write(cypher, [r.to_params() for r in records])
        logger.info(f"Committed Neo4j transaction for batch of {len(records)} relations")
        return {"relationships_attempted": len(records), **counters}
