"""
Data models for EuRIS sources.

These dataclasses are the canonical shape of catalog data. Raw portal
payloads are mapped into them once, when they are fetched; nothing
downstream inspects the raw JSON again.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple, Union
from enum import Enum

from euris.geo import Point
from euris.utils.helpers import safe_float, safe_str

KEY_SEPARATOR = "@"


class SourceKind(Enum):
    """Categories of geospatial entities published by the catalog."""
    LOCK = "lock"
    BRIDGE = "bridge"
    BERTH = "berth"
    NOTICE = "notice"


def composite_key(kind: SourceKind, entity_id: str) -> str:
    """Key that is unique across all sources: 'lock@BEGNE00001'."""
    return f"{kind.value}{KEY_SEPARATOR}{entity_id}"


@dataclass(frozen=True)
class Entity:
    """An entity returned by a source's list query."""
    id: str
    name: str
    point: Point  # (lon, lat)
    kind: SourceKind

    @property
    def key(self) -> str:
        return composite_key(self.kind, self.id)

    @classmethod
    def from_arcgis_feature(cls, kind: SourceKind, feature: Dict[str, Any]) -> Optional["Entity"]:
        """Map an ArcGIS query feature. Returns None for features without id or geometry."""
        attributes = feature.get("attributes") or {}
        geometry = feature.get("geometry") or {}
        entity_id = safe_str(attributes.get("LOCODE") or attributes.get("ISRS")).strip()
        x = safe_float(geometry.get("x"))
        y = safe_float(geometry.get("y"))
        if not entity_id or x is None or y is None:
            return None
        name = safe_str(
            attributes.get("OBJNAM") or attributes.get("OBJECTNAME") or attributes.get("NAME"),
            default=entity_id,
        )
        return cls(id=entity_id, name=name, point=(x, y), kind=kind)


@dataclass(frozen=True)
class Dimensions:
    """Clearance of one lock chamber or bridge opening, in metres."""
    height: Optional[float] = None
    length: Optional[float] = None
    width: Optional[float] = None


def _cm_to_m(value: Any) -> Optional[float]:
    cm = safe_float(value)
    return cm / 100 if cm is not None else None


def _hectometre_to_km(value: Any) -> Optional[float]:
    hm = safe_float(value)
    return hm / 10 if hm is not None else None


def _point_from(section: Dict[str, Any]) -> Optional[Point]:
    for lon_key, lat_key in (("longitude", "latitude"), ("lon", "lat"), ("x", "y")):
        lon = safe_float(section.get(lon_key))
        lat = safe_float(section.get(lat_key))
        if lon is not None and lat is not None:
            return lon, lat
    return None


@dataclass(frozen=True)
class _DetailsBase:
    id: str
    name: str
    locode: str
    dimensions: Tuple[Dimensions, ...] = ()
    contact_phone: Optional[str] = None
    waterway_name: Optional[str] = None
    km: Optional[float] = None
    point: Optional[Point] = None


@dataclass(frozen=True)
class LockDetails(_DetailsBase):
    """Lock with one Dimensions entry per chamber."""

    @classmethod
    def from_raw(cls, entity_id: str, raw: Dict[str, Any]) -> "LockDetails":
        lock = raw.get("compactLock2") or {}
        chambers = tuple(
            Dimensions(
                height=_cm_to_m(s.get("clHeight")),
                length=_cm_to_m(s.get("mlengthcm")),
                width=_cm_to_m(s.get("mwidthcm")),
            )
            for s in raw.get("sublocks") or []
        )
        return cls(
            id=entity_id,
            name=safe_str(lock.get("objectName"), default=entity_id),
            locode=safe_str(lock.get("locode"), default=entity_id),
            dimensions=chambers,
            contact_phone=lock.get("contactPhone") or None,
            waterway_name=lock.get("rT_NAME") or lock.get("wW_NAME") or None,
            km=_hectometre_to_km(lock.get("hectom")),
            point=_point_from(lock),
        )


@dataclass(frozen=True)
class BridgeDetails(_DetailsBase):
    """Bridge with a single opening."""

    @classmethod
    def from_raw(cls, entity_id: str, raw: Dict[str, Any]) -> "BridgeDetails":
        bridge = raw.get("feature") or {}
        return cls(
            id=entity_id,
            name=safe_str(bridge.get("objectname"), default=entity_id),
            locode=safe_str(bridge.get("locode"), default=entity_id),
            dimensions=(
                Dimensions(
                    height=_cm_to_m(bridge.get("height")),
                    width=_cm_to_m(bridge.get("mwidthcm")),
                ),
            ),
            contact_phone=bridge.get("contactPhone") or None,
            waterway_name=bridge.get("rT_NAME") or bridge.get("wW_NAME") or None,
            km=_hectometre_to_km(bridge.get("hectom")),
            point=_point_from(bridge),
        )


@dataclass(frozen=True)
class BerthDetails(_DetailsBase):
    """Berth; the portal publishes length and width of the quay."""

    @classmethod
    def from_raw(cls, entity_id: str, raw: Dict[str, Any]) -> "BerthDetails":
        berth = raw.get("compactBerth2") or {}
        return cls(
            id=entity_id,
            name=safe_str(berth.get("objectname"), default="Berth"),
            locode=safe_str(berth.get("locode"), default=entity_id),
            dimensions=(
                Dimensions(
                    length=_cm_to_m(berth.get("mlengthcm")),
                    width=_cm_to_m(berth.get("mwidthcm")),
                ),
            ),
            contact_phone=berth.get("contactPhone") or None,
            waterway_name=berth.get("rT_NAME") or berth.get("wW_NAME") or None,
            km=_hectometre_to_km(berth.get("hectom")),
            point=_point_from(berth),
        )


@dataclass(frozen=True)
class GenericRisDetails(_DetailsBase):
    """Any RIS object whose payload has no source specific section."""
    attributes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, entity_id: str, raw: Dict[str, Any]) -> "GenericRisDetails":
        section = raw.get("feature")
        if not isinstance(section, dict):
            section = raw
        name = section.get("objectname") or section.get("objectName") or section.get("title")
        attributes = {
            k: safe_str(v)
            for k, v in section.items()
            if isinstance(v, (str, int, float)) and not isinstance(v, bool)
        }
        return cls(
            id=entity_id,
            name=safe_str(name, default=entity_id),
            locode=safe_str(section.get("locode"), default=entity_id),
            waterway_name=section.get("rT_NAME") or section.get("wW_NAME") or None,
            km=_hectometre_to_km(section.get("hectom")),
            point=_point_from(section),
            attributes=attributes,
        )


Details = Union[LockDetails, BridgeDetails, BerthDetails, GenericRisDetails]

# Section that marks a payload as belonging to a specific source
_DETAILS_SECTIONS = {
    SourceKind.LOCK: ("compactLock2", LockDetails),
    SourceKind.BRIDGE: ("feature", BridgeDetails),
    SourceKind.BERTH: ("compactBerth2", BerthDetails),
}


def parse_details(kind: SourceKind, entity_id: str, raw: Optional[Dict[str, Any]]) -> Details:
    """
    Map a raw details payload to its variant.

    Payloads without the section their source normally carries fall back
    to GenericRisDetails.
    """
    if not isinstance(raw, dict):
        raw = {}
    section, details_cls = _DETAILS_SECTIONS.get(kind, (None, GenericRisDetails))
    if section is not None and isinstance(raw.get(section), dict):
        return details_cls.from_raw(entity_id, raw)
    return GenericRisDetails.from_raw(entity_id, raw)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True)
class OperatingTime:
    """One operating period of an object today."""
    start: Optional[datetime]
    end: Optional[datetime]
    status_message: str = ""
    remarks: Tuple[str, ...] = ()
    directions: Tuple[str, ...] = ()

    @property
    def time_display(self) -> str:
        """Format as '08:00 - 12:00'."""
        start = self.start.strftime("%H:%M") if self.start else "?"
        end = self.end.strftime("%H:%M") if self.end else "?"
        return f"{start} - {end}"

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "OperatingTime":
        return cls(
            start=_parse_datetime(raw.get("dateStart")),
            end=_parse_datetime(raw.get("dateEnd")),
            status_message=safe_str(raw.get("statusMessage")),
            remarks=tuple(
                safe_str(r.get("remark"))
                for r in raw.get("operationEventRemarks") or []
                if r.get("remark")
            ),
            directions=tuple(
                safe_str(d.get("fairwayDirectionCode"))
                for d in raw.get("operationEventTargetDirections") or []
                if d.get("fairwayDirectionCode")
            ),
        )


Schedule = List[OperatingTime]


def _text(node: Any) -> str:
    """Unwrap an xml-to-json '{_text: ...}' node."""
    if isinstance(node, dict):
        return safe_str(node.get("_text"))
    return safe_str(node)


@dataclass(frozen=True)
class NoticeToSkippers:
    """
    A notice to skippers affecting an object.

    The RIS message is split into a header and sections; their ids are
    kept so the full message can be looked up on the portal.
    """
    id: str
    title: str
    message_type: str
    originator: str
    issued: Optional[datetime]
    valid_from: Optional[datetime]
    valid_until: Optional[datetime]
    contents: str = ""
    links: Tuple[Tuple[str, str], ...] = ()
    header_id: Optional[str] = None
    section_ids: Tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "NoticeToSkippers":
        ftm = ((raw.get("xml") or {}).get("RIS_Message") or {}).get("ftm") or {}
        communication = ftm.get("communication") or []
        if isinstance(communication, dict):
            communication = [communication]
        return cls(
            id=safe_str(raw.get("id") or raw.get("ntsNumber")),
            title=safe_str(raw.get("title")),
            message_type=safe_str(raw.get("messageTypeMessage")),
            originator=safe_str(raw.get("originator")),
            issued=_parse_datetime(raw.get("dateIssue")),
            valid_from=_parse_datetime(raw.get("dateStart")),
            valid_until=_parse_datetime(raw.get("dateEnd")),
            contents=_text(ftm.get("contents")),
            links=tuple(
                (_text(c.get("label")), _text(c.get("number")))
                for c in communication
            ),
            header_id=safe_str(raw.get("headerId")) or None,
            section_ids=tuple(safe_str(s) for s in raw.get("sectionIds") or []),
        )


Notices = List[NoticeToSkippers]
