import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from verifyhub.main import app
from verifyhub.services.verification.orchestrator import get_orchestrator

from tests.helpers.fakes import make_orchestrator


class _SyncASGIClient:
    """Minimal synchronous wrapper around httpx.AsyncClient for ASGI apps."""

    def __init__(self, app):
        transport = httpx.ASGITransport(app=app)
        self._client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    def request(self, method: str, url: str, **kwargs):
        return asyncio.run(self._client.request(method, url, **kwargs))

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def close(self) -> None:
        asyncio.run(self._client.aclose())


@pytest.fixture
def client():
    """Create test client compatible with older/newer httpx releases."""
    try:
        test_client = TestClient(app)
    except TypeError:
        test_client = None
    if test_client is not None:
        yield test_client
        return
    fallback_client = _SyncASGIClient(app)
    try:
        yield fallback_client
    finally:
        fallback_client.close()


@pytest.fixture
def override_orchestrator():
    """Install an orchestrator built from stubs for the duration of a test."""
    installed = []

    def _install(orchestrator=None, **kwargs):
        engine = orchestrator or make_orchestrator(**kwargs)
        app.dependency_overrides[get_orchestrator] = lambda: engine
        installed.append(engine)
        return engine

    yield _install
    app.dependency_overrides.pop(get_orchestrator, None)
