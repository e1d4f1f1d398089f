"""Shared test fixtures."""
import json
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from admirror.models.entities import (  # noqa: F401
    Advertisement, Advertiser, Campaign, Network, Placement, Zone,
)
from admirror.models.sync import SyncLog, SyncRun  # noqa: F401

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str):
    return json.loads((FIXTURES_DIR / name).read_text())


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


class FakeBroadstreet:
    """
    In-memory stand-in for BroadstreetClient serving the fixture payloads.

    Set `fail` to {method_name: exception} to make a getter raise.
    """

    def __init__(self, fail=None):
        self.networks = load_fixture("broadstreet_networks.json")["networks"]
        self.advertisers = load_fixture("broadstreet_advertisers.json")
        self.zones = load_fixture("broadstreet_zones.json")
        self.campaigns = load_fixture("broadstreet_campaigns.json")
        self.advertisements = load_fixture("broadstreet_advertisements.json")
        self.placements = load_fixture("broadstreet_placements.json")
        self.fail = fail or {}
        self.calls = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    def _maybe_fail(self, method: str) -> None:
        if method in self.fail:
            raise self.fail[method]

    async def get_networks(self):
        self.calls.append(("get_networks", None))
        self._maybe_fail("get_networks")
        return list(self.networks)

    async def get_advertisers(self, network_id):
        self.calls.append(("get_advertisers", network_id))
        self._maybe_fail("get_advertisers")
        return list(self.advertisers.get(str(network_id), []))

    async def get_zones(self, network_id):
        self.calls.append(("get_zones", network_id))
        self._maybe_fail("get_zones")
        return list(self.zones.get(str(network_id), []))

    async def get_campaigns_by_advertiser(self, advertiser_id):
        self.calls.append(("get_campaigns_by_advertiser", advertiser_id))
        self._maybe_fail("get_campaigns_by_advertiser")
        return list(self.campaigns.get(str(advertiser_id), []))

    async def get_advertisements(self, network_id):
        self.calls.append(("get_advertisements", network_id))
        self._maybe_fail("get_advertisements")
        return list(self.advertisements.get(str(network_id), []))

    async def get_placements(self, campaign_id):
        self.calls.append(("get_placements", campaign_id))
        self._maybe_fail("get_placements")
        return list(self.placements.get(str(campaign_id), []))


@pytest.fixture(name="fake_broadstreet")
def fake_broadstreet_fixture() -> FakeBroadstreet:
    return FakeBroadstreet()


@pytest.fixture(name="make_broadstreet")
def make_broadstreet_fixture():
    """Factory for FakeBroadstreet with injected failures."""
    return FakeBroadstreet
