import importlib

import httpx
import pytest
from fastapi.testclient import TestClient

from notesync.client.cache import NoteCache
from notesync.client.orchestrator import SyncOrchestrator
from notesync.client.transport import NotesTransport


@pytest.fixture()
def app_module(tmp_path, monkeypatch):
    # isolate data dir per test
    monkeypatch.setenv("APP_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("JWT_SECRET", "dev-secret-for-tests")
    monkeypatch.setenv("JWT_EXP_MINUTES", "15")

    # reload so the module-level stores pick up the new data dir
    import notesync.api.auth
    import notesync.api.notes
    import notesync.main
    importlib.reload(notesync.api.notes)
    importlib.reload(notesync.api.auth)
    importlib.reload(notesync.main)
    return notesync.main


@pytest.fixture()
def client(app_module):
    return TestClient(app_module.app)


@pytest.fixture()
def headers_for(app_module):
    from notesync.utils.jwt_auth import create_access_token

    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers


@pytest.fixture()
def make_orchestrator(app_module):
    """Orchestrators talking to the in-process app, one per simulated device."""
    from notesync.utils.jwt_auth import create_access_token

    def _make(user_id: str = "userA") -> SyncOrchestrator:
        http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app_module.app), base_url="http://test")
        transport = NotesTransport(base_url="http://test", token=create_access_token(user_id), client=http)
        return SyncOrchestrator(NoteCache(), transport)

    return _make


@pytest.fixture()
def mock_orchestrator():
    """Orchestrators whose requests are answered by a scripted httpx handler."""

    def _make(handler, cache=None) -> SyncOrchestrator:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
        transport = NotesTransport(base_url="http://test", token="t", client=http)
        return SyncOrchestrator(cache if cache is not None else NoteCache(), transport)

    return _make
