from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

# Column names as they live in the user / user_roles tables
USER_COLUMNS = ["id", "rootorgid", "profiledetails", "roles"]
ROLE_COLUMNS = ["userid", "role", "scope"]


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


@dataclass(frozen=True)
class UserAttributes:
    user_id: str
    organisation_id: str
    profile_details: Any = None
    roles: Any = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UserAttributes":
        return cls(
            user_id=_text(row.get("id")),
            organisation_id=_text(row.get("rootorgid")),
            profile_details=row.get("profiledetails"),
            roles=row.get("roles"),
        )


@dataclass(frozen=True)
class StructuredScope:
    """Scope that arrived already decoded by the driver."""
    documents: List[Dict[str, Any]]


@dataclass(frozen=True)
class EncodedScope:
    """Scope stored as JSON text."""
    text: str


Scope = Union[StructuredScope, EncodedScope]


def scope_from_raw(value: Any) -> Scope:
    if isinstance(value, str):
        return EncodedScope(value)
    if value is None:
        return StructuredScope([])
    if isinstance(value, Mapping):
        return StructuredScope([dict(value)])
    return StructuredScope(list(value))


@dataclass(frozen=True)
class RoleRecord:
    user_id: str
    role: str
    scope: Scope

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RoleRecord":
        return cls(
            user_id=_text(row.get("userid")),
            role=_text(row.get("role")),
            scope=scope_from_raw(row.get("scope")),
        )


@dataclass
class UpsertRecord:
    user_id: str
    organisation_id: str
    designation: Optional[str]
    roles: List[str] = field(default_factory=list)

    def to_params(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "organisationId": self.organisation_id,
            "designation": self.designation,
            "role": list(self.roles),
        }


@dataclass
class RelationRecord:
    user_id: str
    properties: Dict[str, str]
    relation_user_id: str

    def to_params(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "relationUserId": self.relation_user_id,
            "props": dict(self.properties),
        }
