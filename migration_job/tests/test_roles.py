import pytest

from migration_job.app.core.errors import EnrichmentParseError
from migration_job.app.models.records import EncodedScope, RoleRecord, StructuredScope, scope_from_raw
from migration_job.app.services.roles import fetch_role_records, normalize_scope, resolve_roles
from migration_job.tests.fakes import role_row


def rec(user_id, role, scope):
    return RoleRecord(user_id=user_id, role=role, scope=scope_from_raw(scope))


def test_matching_scope_keeps_role():
    records = [rec("u1", "admin", [{"organisationId": "org1"}])]
    assert resolve_roles(records, {"u1": "org1"}) == {"u1": ["admin"]}


def test_foreign_scope_drops_role():
    records = [rec("u1", "admin", [{"organisationId": "org1"}])]
    assert resolve_roles(records, {"u1": "org2"}) == {"u1": []}


def test_encoded_scope_is_parsed():
    records = [rec("u1", "editor", '[{"organisationId": "org1"}]')]
    assert resolve_roles(records, {"u1": "org1"}) == {"u1": ["editor"]}


def test_empty_scope_contributes_nothing():
    records = [
        rec("u1", "admin", []),
        rec("u1", "viewer", ""),
        rec("u1", "auditor", None),
    ]
    assert resolve_roles(records, {"u1": "org1"}) == {"u1": []}


def test_partial_match_is_rejected():
    records = [rec("u1", "admin", [{"organisationId": "org1"}, {"organisationId": "org9"}])]
    assert resolve_roles(records, {"u1": "org1"}) == {"u1": []}


def test_foreign_grant_on_another_row_vetoes_role():
    records = [
        rec("u1", "admin", [{"organisationId": "org1"}]),
        rec("u1", "admin", [{"organisationId": "org9"}]),
    ]
    assert resolve_roles(records, {"u1": "org1"}) == {"u1": []}


def test_repeated_grants_collapse():
    records = [
        rec("u1", "admin", [{"organisationId": "org1"}]),
        rec("u1", "admin", '[{"organisationId": "org1"}]'),
        rec("u1", "viewer", [{"organisationId": "org1"}]),
    ]
    assert resolve_roles(records, {"u1": "org1"}) == {"u1": ["admin", "viewer"]}


def test_malformed_scope_only_drops_that_record():
    records = [
        rec("u1", "admin", "[{not json"),
        rec("u1", "viewer", [{"organisationId": "org1"}]),
        rec("u2", "admin", [{"organisationId": "org2"}]),
    ]
    resolved = resolve_roles(records, {"u1": "org1", "u2": "org2"})
    assert resolved == {"u1": ["viewer"], "u2": ["admin"]}


def test_records_for_unknown_users_are_ignored():
    records = [rec("ghost", "admin", [{"organisationId": "org1"}])]
    assert resolve_roles(records, {"u1": "org1"}) == {"u1": []}


def test_single_scope_document_is_wrapped():
    assert scope_from_raw({"organisationId": "org1"}) == StructuredScope([{"organisationId": "org1"}])
    assert normalize_scope(EncodedScope('{"organisationId": "org1"}')) == [{"organisationId": "org1"}]


@pytest.mark.parametrize("text", ["42", '"org1"', "[1, 2]", "{broken"])
def test_normalize_scope_rejects_non_documents(text):
    with pytest.raises(EnrichmentParseError):
        normalize_scope(EncodedScope(text))


def test_fetch_role_records_uses_one_bulk_lookup(store, settings):
    store.add("sunbird", "user_roles", role_row("u1", "admin", "org1"), role_row("u3", "admin", "org1"))
    records = fetch_role_records(store, settings, ["u1", "u2"])

    assert [r.user_id for r in records] == ["u1"]
    assert store.calls == [("sunbird", "user_roles", "userid", ["u1", "u2"], ["userid", "role", "scope"])]
