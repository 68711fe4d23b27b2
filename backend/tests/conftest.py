import pytest
from fastapi.testclient import TestClient

from streamchat.main import app
from streamchat.services.gemini_service import get_client
from streamchat.ui.transport import parse_sse


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")


@pytest.fixture
def use_provider():
    """Install a fake Gemini client for the chat endpoint."""
    def install(fake):
        app.dependency_overrides[get_client] = lambda: fake
        return fake

    yield install
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


def sse_events(response) -> list[dict]:
    return list(parse_sse(response.text.splitlines()))


@pytest.fixture
def read_events():
    return sse_events
