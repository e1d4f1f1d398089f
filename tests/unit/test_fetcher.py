"""Tests for CollectionFetcher.

The client is the in-memory FakeBroadstreet (or an AsyncMock); parent ids
come from rows seeded straight into the in-memory mirror.
"""
from unittest.mock import AsyncMock

import pytest
from sqlmodel import Session

from admirror.broadstreet.client import BroadstreetHTTPError
from admirror.broadstreet.fetcher import CollectionFetcher, FetchResult
from admirror.models.entities import Advertiser, Campaign, Network


def _seed_networks(engine, *remote_ids, local=0):
    with Session(engine) as s:
        for rid in remote_ids:
            s.add(Network(remote_id=rid, name=f"Network {rid}"))
        for i in range(local):
            s.add(Network(local_id=f"draft-{i}", name=f"Draft {i}"))
        s.commit()


class TestFetchNetworks:
    @pytest.mark.asyncio
    async def test_returns_normalized_records(self, engine, fake_broadstreet):
        fetcher = CollectionFetcher(fake_broadstreet, engine)
        result = await fetcher.fetch("networks")
        assert result.ok
        assert [r["remote_id"] for r in result.records] == [101, 102]

    @pytest.mark.asyncio
    async def test_api_error_becomes_failure(self, engine, make_broadstreet):
        client = make_broadstreet(fail={
            "get_networks": BroadstreetHTTPError(500, "/networks", "oops"),
        })
        result = await CollectionFetcher(client, engine).fetch("networks")
        assert not result.ok
        assert "500" in result.error.message
        assert result.records == []

    @pytest.mark.asyncio
    async def test_payload_without_id_rejected_alone(self, engine):
        client = AsyncMock()
        client.get_networks = AsyncMock(return_value=[
            {"name": "no id"},
            {"id": 101, "name": "Riverside"},
        ])
        result = await CollectionFetcher(client, engine).fetch("networks")
        assert result.ok
        assert [r["remote_id"] for r in result.records] == [101]
        assert len(result.rejected) == 1
        assert "no numeric id" in result.rejected[0]

    @pytest.mark.asyncio
    async def test_unknown_type(self, engine, fake_broadstreet):
        result = await CollectionFetcher(fake_broadstreet, engine).fetch("creatives")
        assert not result.ok
        assert fake_broadstreet.calls == []


class TestFetchChildren:
    @pytest.mark.asyncio
    async def test_one_request_per_synced_parent(self, engine, fake_broadstreet):
        _seed_networks(engine, 101, 102, local=1)
        result = await CollectionFetcher(fake_broadstreet, engine).fetch("advertisers")

        assert result.ok
        assert fake_broadstreet.calls == [
            ("get_advertisers", 101),
            ("get_advertisers", 102),
        ]
        assert sorted(r["remote_id"] for r in result.records) == [201, 202, 203]
        by_id = {r["remote_id"]: r for r in result.records}
        assert by_id[203]["network_id"] == 102

    @pytest.mark.asyncio
    async def test_no_parents_yields_empty_collection(self, engine, fake_broadstreet):
        result = await CollectionFetcher(fake_broadstreet, engine).fetch("zones")
        assert result.ok
        assert result.records == []
        assert fake_broadstreet.calls == []

    @pytest.mark.asyncio
    async def test_progress_reported_per_parent(self, engine, fake_broadstreet):
        _seed_networks(engine, 101, 102)
        seen = []

        async def on_progress(done, total):
            seen.append((done, total))

        await CollectionFetcher(fake_broadstreet, engine).fetch(
            "zones", on_progress=on_progress
        )
        assert seen == [(1, 2), (2, 2)]

    @pytest.mark.asyncio
    async def test_failure_on_any_parent_fails_collection(self, engine, make_broadstreet):
        _seed_networks(engine, 101, 102)
        client = make_broadstreet(fail={
            "get_zones": BroadstreetHTTPError(429, "/zones", "slow down"),
        })
        result = await CollectionFetcher(client, engine).fetch("zones")
        assert not result.ok
        assert result.entity_type == "zones"

    @pytest.mark.asyncio
    async def test_bad_child_payload_skipped(self, engine):
        _seed_networks(engine, 101)
        client = AsyncMock()
        client.get_zones = AsyncMock(return_value=[
            {"id": "301", "name": "string id"},
            {"id": 302, "name": "Sidebar"},
        ])
        result = await CollectionFetcher(client, engine).fetch("zones")
        assert result.ok
        assert [r["remote_id"] for r in result.records] == [302]
        assert result.rejected == ["zones payload rejected: zone payload has no numeric id: '301'"]

    @pytest.mark.asyncio
    async def test_duplicates_dropped_first_wins(self, engine):
        with Session(engine) as s:
            s.add(Advertiser(remote_id=201, name="A"))
            s.add(Advertiser(remote_id=202, name="B"))
            s.commit()

        client = AsyncMock()
        client.get_campaigns_by_advertiser = AsyncMock(side_effect=[
            [{"id": 401, "name": "first"}],
            [{"id": 401, "name": "second"}, {"id": 402, "name": "other"}],
        ])
        result = await CollectionFetcher(client, engine).fetch("campaigns")
        assert [(r["remote_id"], r["name"]) for r in result.records] == [
            (401, "first"), (402, "other"),
        ]

    @pytest.mark.asyncio
    async def test_placements_without_id_kept_for_validation(self, engine):
        with Session(engine) as s:
            s.add(Campaign(remote_id=401, name="C"))
            s.commit()

        client = AsyncMock()
        client.get_placements = AsyncMock(return_value=[
            {"advertisement_id": 501},
            {"advertisement_id": 502},
            {"advertisement_id": 501, "zone_id": 301},
        ])
        result = await CollectionFetcher(client, engine).fetch("placements")
        assert len(result.records) == 3
        assert result.records[2]["remote_id"] == "401:501:301"


class TestFetchResult:
    def test_success(self):
        result = FetchResult.success("zones", [{"remote_id": 1}])
        assert result.ok
        assert result.error is None
        assert result.rejected == []

    def test_failure(self):
        result = FetchResult.failure("zones", "boom")
        assert not result.ok
        assert str(result.error) == "boom"
