from __future__ import annotations

import pytest

from migration_job.app.core.settings import Settings
from migration_job.app.services.sinks.json_store import JsonGraphSink
from migration_job.tests.fakes import FakeColumnStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        source_backend="json",
        graph_sink="json",
        source_data_dir=tmp_path / "source",
        out_dir=tmp_path / "out",
        batch_size=2,
        max_workers=2,
        run_id="test-run",
    )


@pytest.fixture
def store() -> FakeColumnStore:
    return FakeColumnStore()


@pytest.fixture
def graph(tmp_path) -> JsonGraphSink:
    return JsonGraphSink(tmp_path / "out")
