import json

import pytest

from migration_job.app.models.records import UserAttributes
from migration_job.app.services.attributes import fetch_user_attributes
from migration_job.app.services.joiner import extract_designation, join_user_record
from migration_job.tests.fakes import user_row


@pytest.mark.parametrize(
    "payload, expected",
    [
        (json.dumps({"professionalDetails": [{"designation": "Engineer"}, {"designation": "Other"}]}), "Engineer"),
        (json.dumps({"professionalDetails": {"designation": "Manager"}}), "Manager"),
        ({"professionalDetails": [{"designation": "Analyst"}]}, "Analyst"),
        (json.dumps({"professionalDetails": []}), None),
        (json.dumps({"professionalDetails": [{"org": "x"}]}), None),
        (json.dumps({"personalDetails": {}}), None),
        ("", None),
        (None, None),
        ("{not json", None),
        ("[1, 2]", None),
    ],
)
def test_extract_designation(payload, expected):
    assert extract_designation(payload, "u1") == expected


def test_join_builds_record():
    attrs = UserAttributes("u1", "org1", json.dumps({"professionalDetails": [{"designation": "Engineer"}]}))
    record = join_user_record(attrs, ["admin"])
    assert record.to_params() == {
        "userId": "u1",
        "organisationId": "org1",
        "designation": "Engineer",
        "role": ["admin"],
    }


def test_bad_profile_keeps_record_without_designation():
    record = join_user_record(UserAttributes("u1", "org1", "{broken"), ["admin"])
    assert record is not None
    assert record.designation is None


@pytest.mark.parametrize(
    "attrs, roles",
    [
        (UserAttributes("", "org1"), ["admin"]),
        (UserAttributes("u1", ""), ["admin"]),
        (UserAttributes("u1", "org1"), []),
    ],
)
def test_incomplete_users_are_dropped(attrs, roles):
    assert join_user_record(attrs, roles) is None


def test_fetch_user_attributes_projects_user_columns(store, settings):
    store.add("sunbird", "user", user_row("u1", "org1", "Engineer"), user_row("u9", "org1"))
    attrs = fetch_user_attributes(store, settings, ["u1", "u2"])

    assert [(a.user_id, a.organisation_id) for a in attrs] == [("u1", "org1")]
    assert store.calls[0][:3] == ("sunbird", "user", "id")
    assert store.calls[0][4] == ["id", "rootorgid", "profiledetails", "roles"]


def test_user_attributes_trim_identifiers():
    attrs = UserAttributes.from_row({"id": " u1 ", "rootorgid": None})
    assert attrs.user_id == "u1"
    assert attrs.organisation_id == ""
