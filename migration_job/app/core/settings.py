from __future__ import annotations

import re
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SourceBackend = Literal["cassandra", "json"]
GraphSinkType = Literal["neo4j", "json"]
Neo4jWriteMode = Literal["unwind", "per_record"]

_CYPHER_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Backends
    source_backend: SourceBackend = "cassandra"
    graph_sink: GraphSinkType = "neo4j"

    # Paths (json backends only)
    source_data_dir: Path = Path(__file__).resolve().parents[2] / "data" / "source"
    out_dir: Path = Path(__file__).resolve().parents[2] / "data" / "out"

    # Cassandra
    cassandra_hosts: str = "localhost"
    cassandra_port: int = 9042
    cassandra_username: Optional[str] = None
    cassandra_password: Optional[str] = None
    cassandra_consistency_level: str = "LOCAL_QUORUM"
    cassandra_request_timeout: float = 30.0

    keyspace: str = "sunbird"
    user_table: str = "user"
    user_roles_table: str = "user_roles"

    # Neo4j
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "password"
    neo4j_database: Optional[str] = None
    neo4j_auth_enabled: bool = True
    neo4j_timeout: int = 30
    neo4j_write_mode: Neo4jWriteMode = "unwind"

    user_label: str = "userV3"
    relation_type: str = "connect"

    # Batching
    batch_size: int = Field(default=4000, gt=0)
    max_workers: int = Field(default=10, gt=0)
    max_pending_batches: Optional[int] = Field(default=None, gt=0)

    # Run metadata
    run_id: str = ""
    log_level: str = "INFO"

    @field_validator("user_label", "relation_type", "keyspace", "user_table", "user_roles_table")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        # These end up interpolated into CQL/Cypher text, parameters can't carry them.
        if not _CYPHER_IDENTIFIER.match(value):
            raise ValueError(f"not a valid identifier: {value!r}")
        return value

    @property
    def cassandra_contact_points(self) -> List[str]:
        return [h.strip() for h in self.cassandra_hosts.split(",") if h.strip()]

    @property
    def pending_limit(self) -> int:
        return self.max_pending_batches or 2 * self.max_workers

    def ensure_out_dirs(self) -> None:
        if self.graph_sink == "json":
            self.out_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    return Settings()
