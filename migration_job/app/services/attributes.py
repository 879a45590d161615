from __future__ import annotations

import logging
from typing import Iterable, List

from migration_job.app.core.settings import Settings
from migration_job.app.models.records import USER_COLUMNS, UserAttributes
from migration_job.app.services.sources.base import ColumnStore

logger = logging.getLogger(__name__)


def fetch_user_attributes(store: ColumnStore, settings: Settings, user_ids: Iterable[str]) -> List[UserAttributes]:
    ids = list(user_ids)
    rows = store.fetch_rows(settings.keyspace, settings.user_table, "id", ids, USER_COLUMNS)
    logger.info(f"Fetched {len(rows)} user records from {settings.keyspace}.{settings.user_table} for {len(ids)} ids")
    return [UserAttributes.from_row(r) for r in rows]
