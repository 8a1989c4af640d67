"""
Client for the EuRIS portal (https://www.eurisportal.eu).

Object lists come from the portal's ArcGIS feature layers, details and
side data from the VisuRIS API. Requests are blocking (requests) and run
in worker threads so callers on the event loop never block.
"""
import asyncio
import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from euris.errors import UpstreamUnavailable
from euris.geo import BBox, bbox_to_projected
from euris.sources.models import Entity, SourceKind
from config.settings import settings

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("euris_client")

WGS84_WKID = 4326
WORLD_MERCATOR_WKID = 3395

# ArcGIS feature layer per source
LAYERS: Dict[SourceKind, str] = {
    SourceKind.LOCK: "locks",
    SourceKind.BRIDGE: "bridges",
    SourceKind.BERTH: "berths",
    SourceKind.NOTICE: "ntsmessages",
}

# Layers whose spatial filter only accepts projected envelopes
PROJECTED_LAYERS = {SourceKind.BERTH, SourceKind.NOTICE}

DETAIL_ENDPOINTS: Dict[SourceKind, str] = {
    SourceKind.LOCK: "visuris/api/Locks_v2/GetLock",
    SourceKind.BRIDGE: "visuris/api/Bridges/GetBridge",
    SourceKind.BERTH: "visuris/api/Berths_v2/GetBerth",
    SourceKind.NOTICE: "visuris/api/NtsMessages/GetNtsMessage",
}

OPERATING_TIMES_ENDPOINT = "visuris/api/OperatingTimes/GetOperatingTimes"
NOTICES_ENDPOINT = "visuris/api/NtsMessages/GetNtsMessagesForObject"

# Transient failures worth retrying; HTTP error statuses are not
RETRYABLE_ERRORS = (requests.ConnectionError, requests.Timeout)


class EurisClient:
    """
    Async facade over the EuRIS HTTP API.

    A semaphore bounds the number of concurrent upstream requests across
    all parallel queries.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        max_concurrent_requests: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = (base_url or settings.euris_base_url).rstrip("/")
        self._user_agent = user_agent or settings.euris_user_agent
        self._timeout = timeout or settings.upstream_timeout_seconds
        self._semaphore = asyncio.Semaphore(
            max_concurrent_requests or settings.max_concurrent_requests
        )
        self._session = session or requests.Session()

    def _get_headers(self) -> dict:
        return {
            "User-Agent": self._user_agent,
            "Accept": "application/json",
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        reraise=True,
    )
    def _make_request(self, path: str, params: Dict[str, Any]) -> Any:
        """
        Blocking GET with retry on connection errors and timeouts.

        Returns:
            Decoded JSON body
        """
        response = self._session.get(
            f"{self._base_url}/{path}",
            headers=self._get_headers(),
            params=params,
            timeout=self._timeout,
        )
        response.raise_for_status()
        return response.json()

    async def _get(self, path: str, params: Dict[str, Any], source: str) -> Any:
        """Run a request in a worker thread, mapping failures to UpstreamUnavailable."""
        async with self._semaphore:
            try:
                return await asyncio.to_thread(self._make_request, path, params)
            except (requests.RequestException, ValueError) as e:
                logger.error(f"EuRIS request failed: {path} {params} - {e}")
                raise UpstreamUnavailable(f"{source}: {e}", source=source) from e

    # =========================================================================
    # Catalog
    # =========================================================================

    def _envelope(self, kind: SourceKind, bbox: BBox) -> Dict[str, Any]:
        wkid = WGS84_WKID
        if kind in PROJECTED_LAYERS:
            bbox = bbox_to_projected(bbox)
            wkid = WORLD_MERCATOR_WKID
        return {
            "geometry": json.dumps({
                "xmin": bbox[0],
                "ymin": bbox[1],
                "xmax": bbox[2],
                "ymax": bbox[3],
                "spatialReference": {"wkid": wkid},
            }),
            "inSR": wkid,
        }

    async def list_entities(self, kind: SourceKind, bbox: BBox) -> List[Entity]:
        """
        List the objects of one source intersecting a bounding box.

        Output geometry is always WGS84.
        """
        params = {
            "f": "json",
            "returnGeometry": "true",
            "outFields": "*",
            "spatialRel": "esriSpatialRelIntersects",
            "geometryType": "esriGeometryEnvelope",
            "outSR": WGS84_WKID,
        }
        params.update(self._envelope(kind, bbox))

        data = await self._get(
            f"api/arcgis/rest/services/{LAYERS[kind]}/0/query", params, source=kind.value
        )
        if isinstance(data, dict) and data.get("error"):
            raise UpstreamUnavailable(
                f"{kind.value}: {data['error'].get('message', 'query failed')}",
                source=kind.value,
            )

        entities = []
        for feature in (data or {}).get("features", []):
            entity = Entity.from_arcgis_feature(kind, feature)
            if entity is not None:
                entities.append(entity)
        logger.debug(f"Listed {len(entities)} {kind.value} entities in {bbox}")
        return entities

    async def details(self, kind: SourceKind, entity_id: str) -> Dict[str, Any]:
        """Raw details payload of one object."""
        data = await self._get(DETAIL_ENDPOINTS[kind], {"isrs": entity_id}, source=kind.value)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise UpstreamUnavailable(
                f"{kind.value}: unexpected details payload for {entity_id}",
                source=kind.value,
            )
        return data

    # =========================================================================
    # Side data
    # =========================================================================

    async def operating_times(self, entity_id: str, day: Optional[date] = None) -> List[Dict[str, Any]]:
        """Operating periods of an object for one day (today by default)."""
        day = day or date.today()
        data = await self._get(
            OPERATING_TIMES_ENDPOINT,
            {"isrs": entity_id, "date": day.isoformat()},
            source="operating_times",
        )
        return data if isinstance(data, list) else []

    async def notices(self, entity_id: str) -> List[Dict[str, Any]]:
        """Active notices to skippers for an object."""
        data = await self._get(NOTICES_ENDPOINT, {"isrs": entity_id}, source="notices")
        return data if isinstance(data, list) else []

    def close(self) -> None:
        self._session.close()
