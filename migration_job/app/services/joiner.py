from __future__ import annotations

import json
import logging
from typing import Any, List, Mapping, Optional

from migration_job.app.core.errors import EnrichmentParseError
from migration_job.app.models.records import UpsertRecord, UserAttributes

logger = logging.getLogger(__name__)


def parse_profile_details(payload: Any) -> Optional[Mapping[str, Any]]:
    if payload is None:
        return None
    if isinstance(payload, Mapping):
        return payload
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8")
    if not isinstance(payload, str):
        raise EnrichmentParseError(f"unsupported profile payload type {type(payload).__name__}")
    if not payload.strip():
        return None
    try:
        decoded = json.loads(payload)
    except json.JSONDecodeError as e:
        raise EnrichmentParseError(f"profile details are not valid JSON: {e}") from e
    if not isinstance(decoded, Mapping):
        raise EnrichmentParseError(f"profile details must be a document, got {type(decoded).__name__}")
    return decoded


def extract_designation(payload: Any, user_id: str) -> Optional[str]:
    """Designation from ``professionalDetails``, best effort."""
    try:
        details = parse_profile_details(payload)
    except EnrichmentParseError as e:
        logger.warning(f"Failed to parse profile details for user {user_id}: {e}")
        return None
    if not details:
        return None

    professional = details.get("professionalDetails")
    if isinstance(professional, list):
        professional = professional[0] if professional else None
    if not isinstance(professional, Mapping):
        return None

    designation = professional.get("designation")
    if designation is None:
        return None
    logger.debug(f"Extracted designation for user {user_id}: {designation}")
    return str(designation)


def join_user_record(attributes: UserAttributes, roles: List[str]) -> Optional[UpsertRecord]:
    if not attributes.user_id or not attributes.organisation_id:
        logger.warning(f"User is missing ID or rootOrgId: id={attributes.user_id!r} rootorgid={attributes.organisation_id!r}")
        return None
    if not roles:
        logger.warning(f"Skipping user {attributes.user_id}: no roles scoped to organisation {attributes.organisation_id}")
        return None

    return UpsertRecord(
        user_id=attributes.user_id,
        organisation_id=attributes.organisation_id,
        designation=extract_designation(attributes.profile_details, attributes.user_id),
        roles=list(roles),
    )
