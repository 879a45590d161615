"""Role resolution.

A role grant carries a scope: one or more documents naming the organisation
the grant is valid in. A role is kept for a user only when it has at least
one scope entry and every entry names the user's own organisation.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from migration_job.app.core.errors import EnrichmentParseError
from migration_job.app.core.settings import Settings
from migration_job.app.models.records import ROLE_COLUMNS, EncodedScope, RoleRecord, Scope, StructuredScope
from migration_job.app.services.sources.base import ColumnStore

logger = logging.getLogger(__name__)

ORGANISATION_ID = "organisationId"


def normalize_scope(scope: Scope) -> List[Dict[str, Any]]:
    if isinstance(scope, StructuredScope):
        docs = scope.documents
    else:
        text = scope.text.strip()
        if not text:
            return []
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as e:
            raise EnrichmentParseError(f"scope is not valid JSON: {e}") from e
        if isinstance(decoded, dict):
            decoded = [decoded]
        if not isinstance(decoded, list):
            raise EnrichmentParseError(f"scope must be a list of documents, got {type(decoded).__name__}")
        docs = decoded

    for d in docs:
        if not isinstance(d, Mapping):
            raise EnrichmentParseError(f"scope entry is not a document: {d!r}")
    return [dict(d) for d in docs]


def fetch_role_records(store: ColumnStore, settings: Settings, user_ids: Iterable[str]) -> List[RoleRecord]:
    ids = list(user_ids)
    rows = store.fetch_rows(settings.keyspace, settings.user_roles_table, "userid", ids, ROLE_COLUMNS)
    logger.info(f"Fetched {len(rows)} role records from {settings.keyspace}.{settings.user_roles_table} for {len(ids)} ids")
    return [RoleRecord.from_row(r) for r in rows]


def resolve_roles(records: Iterable[RoleRecord], organisation_by_user: Mapping[str, str]) -> Dict[str, List[str]]:
    """Reduce role records to ``{user_id: [role, ...]}`` under the scope rule.

    Scope entries are pooled per (user, role) across all grant rows before
    the check, so one foreign-organisation grant vetoes the role. Records
    whose scope cannot be parsed are logged and dropped individually.
    """
    pooled: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
    for rec in records:
        if not rec.user_id or not rec.role:
            continue
        if rec.user_id not in organisation_by_user:
            continue
        try:
            docs = normalize_scope(rec.scope)
        except EnrichmentParseError as e:
            logger.warning(f"Failed to parse scope for userId {rec.user_id}, role {rec.role}: {e}")
            continue
        pooled.setdefault((rec.user_id, rec.role), []).extend(docs)

    resolved: Dict[str, List[str]] = {user_id: [] for user_id in organisation_by_user}
    for (user_id, role), docs in pooled.items():
        org_id = organisation_by_user[user_id]
        if docs and all(d.get(ORGANISATION_ID) == org_id for d in docs):
            resolved[user_id].append(role)
        else:
            logger.debug(f"Dropping role {role} for userId {user_id}: scope outside organisation {org_id}")
    return resolved
