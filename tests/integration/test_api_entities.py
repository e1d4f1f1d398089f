"""Integration tests for /entities routes."""
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from admirror.api.main import create_app
from admirror.db.engine import get_session
from admirror.models.entities import Network, Zone
from admirror.sync.service import MirrorSyncService
from admirror.sync.session import SyncSession


@pytest.fixture(name="client")
def client_fixture(engine):
    service = MirrorSyncService(
        engine=engine,
        session=SyncSession(),
        settings=SimpleNamespace(rate_limit_interval_seconds=0.0),
        client_factory=lambda limiter: None,
    )
    app = create_app(engine=engine, sync_service=service)

    def override_session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = override_session
    with TestClient(app) as c:
        yield c


@pytest.fixture
def seeded(test_session):
    test_session.add(Network(remote_id=101, name="Riverside Gazette"))
    test_session.add(Network(local_id="n-draft", name="Draft network"))
    test_session.add(Zone(remote_id=301, name="Leaderboard", network_id=101))
    test_session.commit()


class TestEntityRoutes:
    def test_counts(self, client, seeded):
        resp = client.get("/entities/counts")
        assert resp.status_code == 200
        body = resp.json()
        assert body["networks"] == {"synced": 1, "local": 1}
        assert body["zones"] == {"synced": 1, "local": 0}
        assert body["placements"] == {"synced": 0, "local": 0}

    def test_list_all(self, client, seeded):
        resp = client.get("/entities/networks")
        assert resp.status_code == 200
        assert [n["name"] for n in resp.json()] == ["Riverside Gazette", "Draft network"]

    def test_list_local_only(self, client, seeded):
        resp = client.get("/entities/networks", params={"origin": "local"})
        body = resp.json()
        assert len(body) == 1
        assert body[0]["local_id"] == "n-draft"
        assert body[0]["remote_id"] is None

    def test_list_synced_only(self, client, seeded):
        resp = client.get("/entities/zones", params={"origin": "synced"})
        assert [z["remote_id"] for z in resp.json()] == [301]

    def test_unknown_type_404(self, client):
        resp = client.get("/entities/creatives")
        assert resp.status_code == 404

    def test_bad_origin_422(self, client):
        resp = client.get("/entities/networks", params={"origin": "remote"})
        assert resp.status_code == 422
