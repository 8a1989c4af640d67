"""
Tests for region and single-object queries over the registered sources.
"""
import asyncio

import pytest

from euris.aggregator import Aggregator, ResourceMode, build_aggregator, parse_key
from euris.errors import CacheClosedError, MalformedKey, NotFound, UpstreamUnavailable
from euris.sources import SourceKind, make_descriptor

BBOX = (4.0, 46.0, 6.0, 48.0)


# =============================================================================
# Keys
# =============================================================================

class TestParseKey:
    """Tests for composite key parsing."""

    def test_valid_key(self):
        assert parse_key("lock@BEGNE00001") == (SourceKind.LOCK, "BEGNE00001")

    def test_id_may_contain_separator(self):
        assert parse_key("bridge@a@b") == (SourceKind.BRIDGE, "a@b")

    @pytest.mark.parametrize("key", ["lockL1", "@L1", "lock@", ""])
    def test_malformed(self, key):
        with pytest.raises(MalformedKey):
            parse_key(key)

    def test_unknown_kind(self):
        with pytest.raises(NotFound):
            parse_key("ferry@L1")


# =============================================================================
# Region Queries
# =============================================================================

class TestQueryRegion:
    """Tests for region queries."""

    @pytest.mark.asyncio
    async def test_single_lock(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")

        resources = await aggregator.query_region(BBOX)

        assert list(resources) == ["lock@L1"]
        assert resources["lock@L1"]["properties"]["name"] == "Lock One"
        assert resources["lock@L1"]["geometry"]["coordinates"] == [5.0, 47.0]

    @pytest.mark.asyncio
    async def test_same_id_in_two_sources(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "42", "Lock 42")
        catalog.add(SourceKind.BRIDGE, "42", "Bridge 42")

        resources = await aggregator.query_region(BBOX)

        assert set(resources) == {"lock@42", "bridge@42"}
        assert resources["lock@42"]["properties"]["name"] == "Lock 42"
        assert resources["bridge@42"]["properties"]["name"] == "Bridge 42"

    @pytest.mark.asyncio
    async def test_failed_entity_is_dropped(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")
        catalog.add(SourceKind.LOCK, "L2", "Lock Two")
        catalog.failing_details.add((SourceKind.LOCK, "L2"))

        resources = await aggregator.query_region(BBOX)

        assert list(resources) == ["lock@L1"]

    @pytest.mark.asyncio
    async def test_failed_source_is_skipped(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")
        catalog.add(SourceKind.BRIDGE, "B1", "Bridge One")
        catalog.failing_lists.add(SourceKind.BRIDGE)

        resources = await aggregator.query_region(BBOX)

        assert list(resources) == ["lock@L1"]

    @pytest.mark.asyncio
    async def test_empty_region(self, aggregator):
        assert await aggregator.query_region(BBOX) == {}

    @pytest.mark.asyncio
    async def test_duplicate_ids_loaded_once(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")
        catalog.add(SourceKind.LOCK, "L1", "Lock One")

        resources = await aggregator.query_region(BBOX)

        assert list(resources) == ["lock@L1"]
        assert catalog.detail_calls == [(SourceKind.LOCK, "L1")]

    @pytest.mark.asyncio
    async def test_details_cached_between_queries(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")

        await aggregator.query_region(BBOX)
        await aggregator.query_region(BBOX)

        assert catalog.detail_calls == [(SourceKind.LOCK, "L1")]
        assert len(catalog.list_calls) == 4

    @pytest.mark.asyncio
    async def test_concurrent_queries_share_loads(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")
        catalog.release.clear()

        first = asyncio.ensure_future(aggregator.query_region(BBOX))
        second = asyncio.ensure_future(aggregator.query_region(BBOX))
        await asyncio.sleep(0.01)
        catalog.release.set()

        assert await first == await second
        assert catalog.detail_calls == [(SourceKind.LOCK, "L1")]

    @pytest.mark.asyncio
    async def test_note_mode(self, aggregator, catalog):
        catalog.add(SourceKind.BRIDGE, "B1", "Bridge One", point=(5.5, 47.5))

        resources = await aggregator.query_region(BBOX, ResourceMode.NOTE)

        note = resources["bridge@B1"]
        assert note["group"] == "EuRIS_Bridge"
        assert note["position"] == {"longitude": 5.5, "latitude": 47.5}
        assert "Operating times today" not in note["description"]

    @pytest.mark.asyncio
    async def test_timeout_keeps_shared_load(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")
        catalog.release.clear()

        with pytest.raises(asyncio.TimeoutError):
            await aggregator.query_region(BBOX, timeout=0.05)

        catalog.release.set()
        resources = await aggregator.query_region(BBOX)

        assert list(resources) == ["lock@L1"]
        assert catalog.detail_calls == [(SourceKind.LOCK, "L1")]

    @pytest.mark.asyncio
    async def test_query_around(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")

        resources = await aggregator.query_around((5.0, 47.0), 2000)

        assert list(resources) == ["lock@L1"]
        _, bbox = catalog.list_calls[0]
        min_lon, min_lat, max_lon, max_lat = bbox
        assert min_lon < 5.0 < max_lon
        assert min_lat < 47.0 < max_lat


# =============================================================================
# Single Object
# =============================================================================

class TestQueryOne:
    """Tests for single-object lookups."""

    @pytest.mark.asyncio
    async def test_note_with_side_data(self, aggregator, catalog):
        catalog.add(
            SourceKind.LOCK,
            "L1",
            "Lock One",
            payload={"compactLock2": {"objectName": "Lock One", "longitude": 5.1, "latitude": 47.1}},
        )
        catalog.schedules["L1"] = [
            {"dateStart": "2024-06-01T08:00:00", "dateEnd": "2024-06-01T18:00:00",
             "statusMessage": "Operational"},
        ]
        catalog.notice_payloads["L1"] = [
            {"id": "N1", "title": "low water", "messageTypeMessage": "warning", "originator": "VNF"},
        ]

        note = await aggregator.query_one("lock@L1")

        assert note["name"] == "Lock One"
        assert note["position"] == {"longitude": 5.1, "latitude": 47.1}
        assert "08:00 - 18:00 Operational" in note["description"]
        assert "Notice to skippers 1" in note["description"]
        assert "Low water" in note["description"]

    @pytest.mark.asyncio
    async def test_unknown_kind(self, aggregator):
        with pytest.raises(NotFound):
            await aggregator.query_one("ferry@L1")

    @pytest.mark.asyncio
    async def test_disabled_source(self, aggregator):
        with pytest.raises(NotFound):
            await aggregator.query_one("berth@B1")

    @pytest.mark.asyncio
    async def test_malformed_key(self, aggregator):
        with pytest.raises(MalformedKey):
            await aggregator.query_one("lockL1")

    @pytest.mark.asyncio
    async def test_side_data_failure_raises(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")
        catalog.failing_notices = True

        with pytest.raises(UpstreamUnavailable):
            await aggregator.query_one("lock@L1")

    @pytest.mark.asyncio
    async def test_shares_details_cache_with_region_queries(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")

        await aggregator.query_region(BBOX)
        await aggregator.query_one("lock@L1")

        assert catalog.detail_calls == [(SourceKind.LOCK, "L1")]

    @pytest.mark.asyncio
    async def test_feature_list_payload(self, aggregator, catalog):
        catalog.add(SourceKind.BRIDGE, "B1", "Bridge One", payload={"feature": [{"objectname": "x"}]})

        note = await aggregator.query_one("bridge@B1")

        assert note["name"] == "B1"
        assert note["position"] is None


# =============================================================================
# Administration
# =============================================================================

class TestAdministration:
    """Tests for invalidation, configuration and shutdown."""

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")
        await aggregator.query_one("lock@L1")

        assert aggregator.invalidate("lock", "L1") is True
        assert aggregator.invalidate(SourceKind.LOCK, "L1") is False

        await aggregator.query_one("lock@L1")
        assert len(catalog.detail_calls) == 2

    def test_invalidate_unknown_source(self, aggregator):
        with pytest.raises(NotFound):
            aggregator.invalidate("ferry", "L1")
        with pytest.raises(NotFound):
            aggregator.invalidate(SourceKind.BERTH, "B1")

    def test_configure_source(self, aggregator, catalog):
        aggregator.configure_source(
            SourceKind.BERTH, make_descriptor(SourceKind.BERTH, catalog, 60)
        )
        assert SourceKind.BERTH in aggregator.registry

        aggregator.registry.seal()
        with pytest.raises(RuntimeError):
            aggregator.configure_source(
                SourceKind.NOTICE, make_descriptor(SourceKind.NOTICE, catalog, 60)
            )

    def test_stats(self, aggregator):
        stats = aggregator.get_stats()

        assert stats["sources"] == ["lock", "bridge"]
        assert set(stats["caches"]) == {
            "lock_details",
            "bridge_details",
            "operating_times",
            "notices",
        }
        assert stats["caches"]["notices"]["ttl_seconds"] == 900

    @pytest.mark.asyncio
    async def test_shutdown(self, aggregator, catalog):
        catalog.add(SourceKind.LOCK, "L1", "Lock One")
        await aggregator.query_region(BBOX)

        await aggregator.shutdown()

        assert all(cache.closed for cache in aggregator.caches())
        assert catalog.closed
        with pytest.raises(CacheClosedError):
            await aggregator.schedule_cache.get("L1")

    @pytest.mark.asyncio
    async def test_shutdown_without_client(self, catalog, make_settings):
        built = build_aggregator(make_settings(enable_bridges=False), catalog)
        aggregator = Aggregator(
            built.registry,
            built.schedule_cache,
            built.notices_cache,
        )

        await aggregator.shutdown()

        assert not catalog.closed
