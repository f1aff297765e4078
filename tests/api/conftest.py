import pytest
from fastapi.testclient import TestClient

from cachette_app.api.app import create_app


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime)) as c:
        yield c
