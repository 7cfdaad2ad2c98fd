import pytest
from fastapi.testclient import TestClient

from mcadmin.api.main import app


@pytest.fixture
def client():
    return TestClient(app)

