"""
Source registry: which sources are active and how each one is queried,
cached and formatted.
"""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Protocol
import logging

from euris.cache import AsyncLoadingCache, CacheCategory, get_policy_for_category
from euris.geo import BBox, Point
from .formatting import Formatter, Note, Summary
from .models import Details, Entity, Notices, Schedule, SourceKind, parse_details

logger = logging.getLogger("sources.registry")

ListFn = Callable[[BBox], Awaitable[List[Entity]]]
SummaryFn = Callable[[Point, Details], Summary]
NoteFn = Callable[[Optional[Point], Details, Optional[Schedule], Optional[Notices]], Note]


class CatalogClient(Protocol):
    """
    Interface the registry needs from the EuRIS client.

    Implementations:
    - EurisClient: HTTP client for the portal
    - test fakes returning canned payloads
    """

    async def list_entities(self, kind: SourceKind, bbox: BBox) -> List[Entity]:
        ...

    async def details(self, kind: SourceKind, entity_id: str) -> Dict[str, Any]:
        ...


# Resource set presentation per source
RESOURCE_SETS: Dict[SourceKind, Dict[str, Any]] = {
    SourceKind.LOCK: {
        "id": "a562d4bd-db15-4875-a262-e0b04e484e63",
        "name": "Locks",
        "description": "European inland waterway locks",
        "style": {"width": 7, "stroke": "black", "fill": "yellow", "lineDash": [1, 0]},
    },
    SourceKind.BRIDGE: {
        "id": "7c1b5f9e-2d8a-4c11-9f0e-5a3e6b2d8c41",
        "name": "Bridges",
        "description": "European inland waterway bridges",
        "style": {"width": 7, "stroke": "black", "fill": "orange", "lineDash": [1, 0]},
    },
    SourceKind.BERTH: {
        "id": "3f6e2a10-8b4d-4e7a-a1c2-9d0b7e5f4a63",
        "name": "Berths",
        "description": "European inland waterway berths",
        "style": {"width": 7, "stroke": "black", "fill": "blue", "lineDash": [1, 0]},
    },
    SourceKind.NOTICE: {
        "id": "e9d4c2b7-6a15-4f38-b0e1-2c7a9f3d5b84",
        "name": "Notices",
        "description": "Notices to skippers",
        "style": {"width": 7, "stroke": "black", "fill": "red", "lineDash": [1, 0]},
    },
}


@dataclass(frozen=True)
class SourceDescriptor:
    """Everything needed to query, cache and format one source."""
    kind: SourceKind
    list: ListFn
    details_cache: AsyncLoadingCache
    to_summary: SummaryFn
    to_note: NoteFn
    name: str = ""
    description: str = ""
    style: Dict[str, Any] = field(default_factory=dict)
    resource_set_id: str = ""


class SourceRegistry:
    """
    Active sources keyed by kind.

    Filled once at startup and sealed; lookups are dict lookups.
    """

    def __init__(self):
        self._sources: Dict[SourceKind, SourceDescriptor] = {}
        self._sealed = False

    def register(self, kind: SourceKind, descriptor: SourceDescriptor) -> None:
        """
        Register a source.

        Raises:
            RuntimeError: If the registry is sealed
            ValueError: If the kind is already registered or does not match
        """
        if self._sealed:
            raise RuntimeError("Source registry is sealed")
        if descriptor.kind is not kind:
            raise ValueError(f"Descriptor for {descriptor.kind.value} registered as {kind.value}")
        if kind in self._sources:
            raise ValueError(f"Source {kind.value} already registered")
        self._sources[kind] = descriptor
        logger.info(f"Registered source {kind.value}")

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def get(self, kind: SourceKind) -> Optional[SourceDescriptor]:
        return self._sources.get(kind)

    def all(self) -> Iterator[SourceDescriptor]:
        return iter(list(self._sources.values()))

    def kinds(self) -> List[SourceKind]:
        return list(self._sources.keys())

    def __contains__(self, kind: object) -> bool:
        return kind in self._sources

    def __len__(self) -> int:
        return len(self._sources)


def make_descriptor(
    kind: SourceKind,
    client: CatalogClient,
    cache_duration_minutes: int,
    sweep_interval: Optional[float] = None,
    formatter: Optional[Formatter] = None,
) -> SourceDescriptor:
    """Bind a source kind to the client, a details cache and a formatter."""
    formatter = formatter or Formatter.for_kind(kind)

    async def load_details(entity_id: str) -> Details:
        raw = await client.details(kind, entity_id)
        return parse_details(kind, entity_id, raw)

    async def list_entities(bbox: BBox) -> List[Entity]:
        return await client.list_entities(kind, bbox)

    details_cache = AsyncLoadingCache(
        loader=load_details,
        policy=get_policy_for_category(CacheCategory.DETAILS, cache_duration_minutes),
        name=f"{kind.value}_details",
        sweep_interval=sweep_interval,
    )
    presentation = RESOURCE_SETS[kind]

    return SourceDescriptor(
        kind=kind,
        list=list_entities,
        details_cache=details_cache,
        to_summary=formatter.summary,
        to_note=formatter.note,
        name=presentation["name"],
        description=presentation["description"],
        style=presentation["style"],
        resource_set_id=presentation["id"],
    )


def enabled_kinds(settings) -> List[SourceKind]:
    """Source kinds switched on by feature flags."""
    flags = {
        SourceKind.LOCK: settings.enable_locks,
        SourceKind.BRIDGE: settings.enable_bridges,
        SourceKind.BERTH: settings.enable_berths,
        SourceKind.NOTICE: settings.enable_notices,
    }
    return [kind for kind, enabled in flags.items() if enabled]


def build_registry(settings, client: CatalogClient) -> SourceRegistry:
    """Create the registry for the enabled sources. The caller seals it."""
    registry = SourceRegistry()
    for kind in enabled_kinds(settings):
        registry.register(kind, make_descriptor(
            kind,
            client,
            cache_duration_minutes=settings.cache_duration_minutes,
            sweep_interval=settings.cache_sweep_interval_seconds,
        ))
    return registry
