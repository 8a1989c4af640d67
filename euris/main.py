"""
EuRIS Resources - FastAPI resource provider
Publishes EuRIS locks, bridges, berths and notices as read-only resources
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from euris.aggregator import Aggregator, ResourceMode, build_aggregator, parse_key
from euris.errors import NotFound, UpstreamUnavailable
from euris.euris_client import EurisClient
from euris.geo import parse_bbox, parse_point
from euris.scheduler import ScheduledInvalidator, parse_time_of_day
from euris.sources.registry import SourceRegistry
from config.settings import settings

logger = logging.getLogger("main")

APP_VERSION = "v0.1.0"
APP_NAME = "EuRIS Resources"
PROVIDER_TYPE = "EuRIS"

AggregatorFactory = Callable[[], Aggregator]


def _default_aggregator() -> Aggregator:
    return build_aggregator(settings, EurisClient())


def build_resource_sets(resources: Dict[str, Any], registry: SourceRegistry) -> Dict[str, Any]:
    """Group summary features into one ResourceSet per source."""
    sets: Dict[str, Any] = {}
    for descriptor in registry.all():
        sets[descriptor.resource_set_id] = {
            "type": "ResourceSet",
            "name": descriptor.name,
            "description": descriptor.description,
            "styles": {"default": descriptor.style},
            "values": {"type": "FeatureCollection", "features": []},
        }
    for key, feature in resources.items():
        kind, _ = parse_key(key)
        descriptor = registry.get(kind)
        if descriptor is not None:
            sets[descriptor.resource_set_id]["values"]["features"].append(feature)
    return sets


def create_app(aggregator_factory: Optional[AggregatorFactory] = None) -> FastAPI:
    """
    Build the application.

    Args:
        aggregator_factory: Builds the aggregator at startup; defaults to
            the EuRIS client with the configured sources
    """
    factory = aggregator_factory or _default_aggregator

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        aggregator = factory()
        aggregator.registry.seal()
        invalidator = ScheduledInvalidator(
            aggregator.schedule_cache,
            at=parse_time_of_day(settings.schedule_reset_time),
        )
        aggregator.attach_invalidator(invalidator)
        invalidator.start()
        app.state.aggregator = aggregator
        logger.info(
            f"{PROVIDER_TYPE} provider started with sources: "
            f"{[k.value for k in aggregator.registry.kinds()]}"
        )
        try:
            yield
        finally:
            await aggregator.shutdown()

    app = FastAPI(
        title=APP_NAME,
        description="EuRIS inland waterway data as read-only resources",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    _register_routes(app)
    return app


def _aggregator(request: Request) -> Aggregator:
    return request.app.state.aggregator


def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok", "source": "euris", "provider": PROVIDER_TYPE}

    @app.get("/version")
    def version_info():
        return {"name": APP_NAME, "version": APP_VERSION}

    @app.get("/cache/stats")
    def cache_stats(request: Request):
        """Cache statistics per source."""
        return _aggregator(request).get_stats()

    @app.delete("/cache/{kind}/{entity_id}")
    def invalidate_entity(kind: str, entity_id: str, request: Request):
        """Forget everything cached for one object."""
        try:
            removed = _aggregator(request).invalidate(kind, entity_id)
        except NotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"invalidated": removed}

    @app.get("/resources/euris")
    async def list_resources(
        request: Request,
        position: Optional[str] = Query(None, description="Center as 'lon,lat'"),
        distance: Optional[float] = Query(None, gt=0, description="Radius in metres"),
        bbox: Optional[str] = Query(None, description="'min_lon,min_lat,max_lon,max_lat'"),
        mode: ResourceMode = Query(ResourceMode.SUMMARY),
    ):
        """List resources around a position or inside a bounding box."""
        logger.debug(
            f"Incoming request to list {PROVIDER_TYPE} resources - "
            f"position={position} distance={distance} bbox={bbox} mode={mode.value}"
        )
        aggregator = _aggregator(request)
        try:
            if bbox:
                query = aggregator.query_region(
                    parse_bbox(bbox), mode, timeout=settings.request_timeout_seconds
                )
            elif position:
                query = aggregator.query_around(
                    parse_point(position),
                    distance or settings.default_distance_meters,
                    mode,
                    timeout=settings.request_timeout_seconds,
                )
            else:
                raise HTTPException(status_code=400, detail="Either position or bbox is required")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        try:
            resources = await query
        except asyncio.TimeoutError:
            raise HTTPException(status_code=504, detail="EuRIS query timed out")

        if mode is ResourceMode.SUMMARY:
            return {
                "resourceSets": build_resource_sets(resources, aggregator.registry),
                "resources": resources,
            }
        return {"resources": resources}

    @app.get("/resources/euris/{key}")
    async def get_resource(key: str, request: Request):
        """Note for one object, e.g. /resources/euris/lock@BEGNE00001."""
        logger.debug(f"Incoming request to get {PROVIDER_TYPE} resource - id: {key}")
        try:
            return await _aggregator(request).query_one(
                key, timeout=settings.request_timeout_seconds
            )
        except NotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except UpstreamUnavailable as e:
            raise HTTPException(status_code=502, detail=str(e))
        except asyncio.TimeoutError:
            raise HTTPException(status_code=504, detail="EuRIS query timed out")

    @app.put("/resources/euris/{key}")
    def set_resource(key: str):
        return JSONResponse(
            status_code=405,
            content={"detail": f"{PROVIDER_TYPE} resources are read-only"},
        )

    @app.delete("/resources/euris/{key}")
    def delete_resource(key: str):
        return JSONResponse(
            status_code=405,
            content={"detail": f"{PROVIDER_TYPE} resources are read-only"},
        )


app = create_app()
