"""
Aggregation of all registered sources into one resource map.

Region queries fan out to every source's list query, then to each source's
details cache, and merge the formatted results under composite keys.
Single-object lookups join an object's details with today's operating
times and its active notices.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from euris.cache import AsyncLoadingCache, CacheCategory, get_policy_for_category
from euris.errors import Exhausted, MalformedKey, NotFound
from euris.geo import BBox, Point, bbox_from_center
from euris.sources.models import (
    KEY_SEPARATOR,
    Entity,
    NoticeToSkippers,
    Notices,
    OperatingTime,
    Schedule,
    SourceKind,
)
from euris.sources.registry import SourceDescriptor, SourceRegistry, build_registry

logger = logging.getLogger("aggregator")

ResourceMap = Dict[str, Dict[str, Any]]


class ResourceMode(Enum):
    """Representation produced for each entity of a region query."""
    SUMMARY = "summary"  # map marker
    NOTE = "note"        # long-form note, without side data


def parse_key(key: str) -> Tuple[SourceKind, str]:
    """
    Split a composite key into source kind and entity id.

    Raises:
        MalformedKey: If the key has no separator or an empty part
        NotFound: If the kind is not a known source kind
    """
    kind_text, separator, entity_id = key.partition(KEY_SEPARATOR)
    if not separator or not kind_text or not entity_id:
        raise MalformedKey(f"Malformed resource key '{key}'")
    try:
        kind = SourceKind(kind_text)
    except ValueError:
        raise NotFound(f"Unknown source kind '{kind_text}'") from None
    return kind, entity_id


class Aggregator:
    """
    Orchestrates region and single-object queries over a SourceRegistry.

    Failure policy for region queries: partial results. A source whose list
    query fails is left out; an entity whose details cannot be loaded is
    dropped. Single-object lookups raise the first error they meet.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        schedule_cache: AsyncLoadingCache,
        notices_cache: AsyncLoadingCache,
        invalidator=None,
        client=None,
    ):
        """
        Args:
            registry: Active sources
            schedule_cache: Today's operating times per entity id
            notices_cache: Active notices per entity id
            invalidator: Optional ScheduledInvalidator stopped on shutdown
            client: Optional client closed on shutdown
        """
        self._registry = registry
        self._schedule_cache = schedule_cache
        self._notices_cache = notices_cache
        self._invalidator = invalidator
        self._client = client

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    @property
    def schedule_cache(self) -> AsyncLoadingCache:
        return self._schedule_cache

    @property
    def notices_cache(self) -> AsyncLoadingCache:
        return self._notices_cache

    def attach_invalidator(self, invalidator) -> None:
        self._invalidator = invalidator

    # =========================================================================
    # Region queries
    # =========================================================================

    async def query_region(
        self,
        bbox: BBox,
        mode: ResourceMode = ResourceMode.SUMMARY,
        timeout: Optional[float] = None,
    ) -> ResourceMap:
        """
        Resources of every source inside a bounding box.

        Args:
            bbox: (min_lon, min_lat, max_lon, max_lat)
            mode: Summary markers or notes
            timeout: Seconds before the query is abandoned. Shared loads
                keep running for other callers.

        Returns:
            Composite key -> summary or note
        """
        if timeout is not None:
            return await asyncio.wait_for(self._query_region(bbox, mode), timeout)
        return await self._query_region(bbox, mode)

    async def query_around(
        self,
        point: Point,
        radius_m: float,
        mode: ResourceMode = ResourceMode.SUMMARY,
        timeout: Optional[float] = None,
    ) -> ResourceMap:
        """Resources within roughly radius_m metres of a (lon, lat) point."""
        return await self.query_region(bbox_from_center(point, radius_m), mode, timeout)

    async def _query_region(self, bbox: BBox, mode: ResourceMode) -> ResourceMap:
        descriptors = list(self._registry.all())
        partials = await asyncio.gather(
            *(self._query_source(descriptor, bbox, mode) for descriptor in descriptors)
        )

        resources: ResourceMap = {}
        for partial in partials:
            resources.update(partial)
        logger.info(
            f"Region query {bbox}: {len(resources)} resources "
            f"from {len(descriptors)} sources"
        )
        return resources

    async def _query_source(
        self,
        descriptor: SourceDescriptor,
        bbox: BBox,
        mode: ResourceMode,
    ) -> ResourceMap:
        try:
            entities = await descriptor.list(bbox)
        except Exception as e:
            logger.warning(f"Source {descriptor.kind.value} unavailable for {bbox}: {e}")
            return {}

        # One details request per distinct id
        unique: Dict[str, Entity] = {}
        for entity in entities:
            unique.setdefault(entity.id, entity)

        resolved = await asyncio.gather(
            *(self._resolve_entity(descriptor, entity, mode) for entity in unique.values())
        )
        return {key: resource for key, resource in resolved if resource is not None}

    async def _resolve_entity(
        self,
        descriptor: SourceDescriptor,
        entity: Entity,
        mode: ResourceMode,
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        try:
            details = await descriptor.details_cache.get(entity.id)
        except Exception as e:
            error = Exhausted(descriptor.kind.value, entity.id, e)
            logger.warning(f"Dropping {entity.key}: {error}")
            return entity.key, None

        if mode is ResourceMode.NOTE:
            return entity.key, descriptor.to_note(entity.point, details, None, None)
        return entity.key, descriptor.to_summary(entity.point, details)

    # =========================================================================
    # Single object
    # =========================================================================

    async def query_one(self, key: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Note for one object, with today's operating times and active notices.

        Raises:
            MalformedKey: If the key cannot be parsed
            NotFound: If the key's source is not registered
            UpstreamUnavailable: If any of the three lookups fails
        """
        if timeout is not None:
            return await asyncio.wait_for(self._query_one(key), timeout)
        return await self._query_one(key)

    async def _query_one(self, key: str) -> Dict[str, Any]:
        kind, entity_id = parse_key(key)
        descriptor = self._registry.get(kind)
        if descriptor is None:
            raise NotFound(f"Source '{kind.value}' is not enabled")

        details, schedule, notices = await asyncio.gather(
            descriptor.details_cache.get(entity_id),
            self._schedule_cache.get(entity_id),
            self._notices_cache.get(entity_id),
        )
        return descriptor.to_note(details.point, details, schedule, notices)

    # =========================================================================
    # Administration
    # =========================================================================

    def configure_source(self, kind: SourceKind, descriptor: SourceDescriptor) -> None:
        """Register an additional source. Fails once the registry is sealed."""
        self._registry.register(kind, descriptor)

    def invalidate(self, kind: Union[SourceKind, str], entity_id: str) -> bool:
        """
        Forget everything cached for one object.

        Returns:
            True if any cache held an entry for it
        """
        if not isinstance(kind, SourceKind):
            try:
                kind = SourceKind(kind)
            except ValueError:
                raise NotFound(f"Unknown source kind '{kind}'") from None
        descriptor = self._registry.get(kind)
        if descriptor is None:
            raise NotFound(f"Source '{kind.value}' is not enabled")

        removed = descriptor.details_cache.invalidate(entity_id)
        removed = self._schedule_cache.invalidate(entity_id) or removed
        removed = self._notices_cache.invalidate(entity_id) or removed
        return removed

    def caches(self) -> List[AsyncLoadingCache]:
        return [d.details_cache for d in self._registry.all()] + [
            self._schedule_cache,
            self._notices_cache,
        ]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "sources": [kind.value for kind in self._registry.kinds()],
            "caches": {cache.name: cache.get_stats() for cache in self.caches()},
        }

    async def shutdown(self) -> None:
        """Stop the daily invalidation, then end the caches and close the client."""
        if self._invalidator is not None:
            await self._invalidator.stop()
        for cache in self.caches():
            await cache.end()
        if self._client is not None:
            self._client.close()
        logger.info("Aggregator shut down")


def build_side_caches(settings, client) -> Tuple[AsyncLoadingCache, AsyncLoadingCache]:
    """Caches for operating times and notices, shared by all sources."""

    async def load_schedule(entity_id: str) -> Schedule:
        return [OperatingTime.from_raw(r) for r in await client.operating_times(entity_id)]

    async def load_notices(entity_id: str) -> Notices:
        return [NoticeToSkippers.from_raw(r) for r in await client.notices(entity_id)]

    schedule_cache = AsyncLoadingCache(
        loader=load_schedule,
        policy=get_policy_for_category(
            CacheCategory.OPERATING_TIMES, settings.cache_duration_minutes
        ),
        name="operating_times",
        sweep_interval=settings.cache_sweep_interval_seconds,
    )
    notices_cache = AsyncLoadingCache(
        loader=load_notices,
        policy=get_policy_for_category(
            CacheCategory.NOTICES,
            settings.cache_duration_minutes,
            override_minutes=settings.notices_cache_minutes,
        ),
        name="notices",
        sweep_interval=settings.cache_sweep_interval_seconds,
    )
    return schedule_cache, notices_cache


def build_aggregator(settings, client) -> Aggregator:
    """Aggregator over the sources enabled in settings."""
    registry = build_registry(settings, client)
    schedule_cache, notices_cache = build_side_caches(settings, client)
    return Aggregator(registry, schedule_cache, notices_cache, client=client)
