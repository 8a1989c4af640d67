"""
Shared fixtures: an in-memory EuRIS catalog and settings for building aggregators.
"""
import asyncio
from types import SimpleNamespace

import pytest

from euris.aggregator import build_aggregator
from euris.errors import UpstreamUnavailable
from euris.sources import Entity, SourceKind


class FakeCatalog:
    """In-memory stand-in for EurisClient."""

    def __init__(self):
        self.entities = {kind: [] for kind in SourceKind}
        self.payloads = {}
        self.schedules = {}
        self.notice_payloads = {}
        self.failing_lists = set()
        self.failing_details = set()
        self.failing_notices = False
        self.list_calls = []
        self.detail_calls = []
        self.release = asyncio.Event()
        self.release.set()
        self.closed = False

    def add(self, kind, entity_id, name, point=(5.0, 47.0), payload=None):
        self.entities[kind].append(Entity(entity_id, name, point, kind))
        self.payloads[(kind, entity_id)] = payload or self.default_payload(kind, name)

    @staticmethod
    def default_payload(kind, name):
        if kind is SourceKind.LOCK:
            return {"compactLock2": {"objectName": name}, "sublocks": []}
        return {"feature": {"objectname": name, "height": 500}}

    async def list_entities(self, kind, bbox):
        self.list_calls.append((kind, bbox))
        if kind in self.failing_lists:
            raise UpstreamUnavailable(f"{kind.value} layer down", source=kind.value)
        return list(self.entities[kind])

    async def details(self, kind, entity_id):
        self.detail_calls.append((kind, entity_id))
        await self.release.wait()
        if (kind, entity_id) in self.failing_details:
            raise UpstreamUnavailable(f"{kind.value} details down", source=kind.value)
        return self.payloads.get((kind, entity_id), {})

    async def operating_times(self, entity_id):
        return self.schedules.get(entity_id, [])

    async def notices(self, entity_id):
        if self.failing_notices:
            raise UpstreamUnavailable("notices down", source="notices")
        return self.notice_payloads.get(entity_id, [])

    def close(self):
        self.closed = True


@pytest.fixture
def make_settings():
    """Factory for settings objects; keyword arguments override the defaults."""

    def _make(**overrides):
        values = {
            "enable_locks": True,
            "enable_bridges": True,
            "enable_berths": False,
            "enable_notices": False,
            "cache_duration_minutes": 60,
            "notices_cache_minutes": 15,
            "cache_sweep_interval_seconds": None,
        }
        values.update(overrides)
        return SimpleNamespace(**values)

    return _make


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def aggregator(catalog, make_settings):
    return build_aggregator(make_settings(), catalog)
