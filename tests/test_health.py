# tests/test_health.py
from fastapi.testclient import TestClient

from storefront_core import __version__


def test_health(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_root_describes_service(client: TestClient) -> None:
    r = client.get("/")
    assert r.status_code == 200
    data = r.json()
    assert data["version"] == __version__
    assert data["docs"] == "/docs"
