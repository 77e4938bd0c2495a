import pytest
from fastapi.testclient import TestClient

from src.config.configuration import ReactorConfiguration
from src.server.dependencies import ReactorRuntime, set_runtime
from src.server.thread.store import SQLiteThreadStore


@pytest.fixture
def runtime(tmp_path):
    configuration = ReactorConfiguration(
        title_dispatch_delay=0,
        model_stop_delay=0,
        db_path=str(tmp_path / "threads_api.db"),
    )
    runtime = ReactorRuntime(configuration=configuration, store=SQLiteThreadStore(configuration.db_path))
    set_runtime(runtime)
    yield runtime
    set_runtime(None)


@pytest.fixture
def client(runtime):
    from src.server.app import app

    with TestClient(app) as test_client:
        yield test_client
