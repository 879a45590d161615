import pytest
from fastapi.testclient import TestClient

from migration_job.app.api.routes.migration import get_pipeline
from migration_job.app.main import app, cli
from migration_job.app.services.pipeline import MigrationPipeline
from migration_job.tests.fakes import role_row, user_row


@pytest.fixture
def client(settings, store, graph):
    store.add("sunbird", "user", user_row("u1", "org1", "Engineer"), user_row("u2", "org1"))
    store.add("sunbird", "user_roles", role_row("u1", "admin", "org1"), role_row("u2", "viewer", "org1"))
    pipeline = MigrationPipeline(settings, source=store, graph=graph)

    def override():
        yield pipeline

    app.dependency_overrides[get_pipeline] = override
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_onboard_upload(client, graph):
    resp = client.post(
        "/datamigration/onBoardNewUsers",
        files={"file": ("users.csv", b"id,name\r\nu1,A\r\nu2,B\r\n", "text/csv")},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["kind"] == "users"
    assert body["status"] == "success"
    assert body["records_written"] == 2
    assert set(graph.nodes) == {"u1", "u2"}


def test_relations_upload(client, graph):
    client.post("/datamigration/onBoardNewUsers", files={"file": ("u.csv", b"id\nu1\nu2\n", "text/csv")})
    resp = client.post(
        "/datamigration/updateRelationsUsers",
        files={"file": ("r.csv", b'a,b,c\nu1,"{type:friend,since:2020}",u2\n', "text/csv")},
    )

    assert resp.status_code == 200
    assert graph.rels == {("u1", "u2"): {"type": "friend", "since": "2020"}}


def test_malformed_upload_is_bad_request(client):
    resp = client.post("/datamigration/onBoardNewUsers", files={"file": ("x.csv", b"", "text/csv")})
    assert resp.status_code == 400


def test_cli_runs_with_json_backends(tmp_path, capsys):
    source_dir = tmp_path / "source"
    source_dir.mkdir()
    (source_dir / "sunbird.user.jsonl").write_text(
        '{"id": "u1", "rootorgid": "org1", "profiledetails": null, "roles": null}\n', encoding="utf-8"
    )
    (source_dir / "sunbird.user_roles.jsonl").write_text(
        '{"userid": "u1", "role": "admin", "scope": "[{\\"organisationId\\": \\"org1\\"}]"}\n', encoding="utf-8"
    )
    users = tmp_path / "users.csv"
    users.write_text("id\nu1\n", encoding="utf-8")

    code = cli([
        "onboard", str(users),
        "--env-file", str(tmp_path / "missing.env"),
        "--source-backend", "json",
        "--graph-sink", "json",
        "--source-data-dir", str(source_dir),
        "--out-dir", str(tmp_path / "out"),
    ])

    assert code == 0
    assert '"records_written": 1' in capsys.readouterr().out
    assert (tmp_path / "out" / "graph_snapshot.json").exists()


def test_cli_malformed_file(tmp_path):
    empty = tmp_path / "empty.csv"
    empty.write_text("", encoding="utf-8")
    code = cli([
        "onboard", str(empty),
        "--env-file", str(tmp_path / "missing.env"),
        "--source-backend", "json",
        "--graph-sink", "json",
        "--out-dir", str(tmp_path / "out"),
    ])
    assert code == 2
