"""
Formatting of source details into map markers and long-form notes.

One Formatter serves every source; what differs between sources is data
in its FormatSpec (labels, which dimensions to show, detail page URL).
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from html import escape
from typing import Any, Callable, Dict, List, Optional, Tuple

from euris.geo import Point
from euris.utils.helpers import format_metres
from .models import Details, Notices, Schedule, SourceKind

Summary = Dict[str, Any]
Note = Dict[str, Any]

PORTAL_URL = "https://www.eurisportal.eu"


@dataclass(frozen=True)
class FormatSpec:
    """Source specific formatting configuration."""
    group: str
    detail_url: str                                  # formatted with locode=
    note_fields: Tuple[Tuple[str, str], ...]         # (label, Dimensions attribute)
    summary_fields: Tuple[Tuple[str, str], ...] = ()
    count_label: Optional[str] = None                # e.g. "Basin(s)"
    summary_contact: bool = False


FORMAT_SPECS: Dict[SourceKind, FormatSpec] = {
    SourceKind.LOCK: FormatSpec(
        group="EuRIS_Lock",
        detail_url=PORTAL_URL + "/visuris/api/Locks_v2/GetLock?isrs={locode}",
        note_fields=(("Δ", "height"), ("L", "length"), ("W", "width")),
        summary_fields=(("Δ", "height"),),
        count_label="Basin(s)",
        summary_contact=True,
    ),
    SourceKind.BRIDGE: FormatSpec(
        group="EuRIS_Bridge",
        detail_url=PORTAL_URL + "/visuris/api/Bridges/GetBridge?isrs={locode}",
        note_fields=(("H", "height"), ("W", "width")),
        summary_fields=(("H", "height"), ("W", "width")),
    ),
    SourceKind.BERTH: FormatSpec(
        group="EuRIS_Berth",
        detail_url=PORTAL_URL + "/visuris/api/Berths_v2/GetBerth?isrs={locode}",
        note_fields=(("L", "length"), ("W", "width")),
        summary_fields=(("L", "length"), ("W", "width")),
    ),
    SourceKind.NOTICE: FormatSpec(
        group="EuRIS_Notice",
        detail_url=PORTAL_URL + "/visuris/api/NtsMessages/GetNtsMessage?isrs={locode}",
        note_fields=(),
    ),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _date(value: Optional[datetime], fmt: str) -> str:
    return value.strftime(fmt) if value else "?"


class Formatter:
    """
    Turns details into a map marker (summary) or a note.

    Usage:
        formatter = Formatter(FORMAT_SPECS[SourceKind.LOCK])
        feature = formatter.summary((5.0, 46.0), details)
    """

    def __init__(self, spec: FormatSpec, clock: Callable[[], datetime] = _utc_now):
        self.spec = spec
        self._clock = clock

    @classmethod
    def for_kind(cls, kind: SourceKind) -> "Formatter":
        return cls(FORMAT_SPECS[kind])

    # =========================================================================
    # Map marker
    # =========================================================================

    def summary(self, point: Point, details: Details) -> Summary:
        """GeoJSON point feature with a one-line description."""
        return {
            "type": "Feature",
            "geometry": {
                "type": "Point",
                "coordinates": [point[0], point[1]],
            },
            "properties": {
                "name": details.name,
                "description": self.summary_description(details),
            },
        }

    def summary_description(self, details: Details) -> str:
        """
        One-line description, e.g. '2 Basin(s) - Δ 3.5m; Δ 2m - +33 3 85 00 00 00'.
        """
        parts: List[str] = []
        if self.spec.count_label:
            parts.append(f"{len(details.dimensions)} {self.spec.count_label}")
        if self.spec.summary_fields and details.dimensions:
            parts.append("; ".join(
                " * ".join(
                    f"{label} {format_metres(getattr(dims, attr))}"
                    for label, attr in self.spec.summary_fields
                )
                for dims in details.dimensions
            ))
        if self.spec.summary_contact and details.contact_phone:
            parts.append(details.contact_phone)
        return " - ".join(parts)

    # =========================================================================
    # Note
    # =========================================================================

    def note(
        self,
        point: Optional[Point],
        details: Details,
        schedule: Optional[Schedule] = None,
        notices: Optional[Notices] = None,
    ) -> Note:
        """Long-form note with today's operating times and active notices."""
        position = None
        if point is not None:
            position = {"longitude": point[0], "latitude": point[1]}
        return {
            "timestamp": self._clock().isoformat(),
            "name": details.name,
            "description": self.render(details, schedule, notices),
            "position": position,
            "group": self.spec.group,
            "url": self.spec.detail_url.format(locode=details.locode),
            "mimeType": "text/plain",
            "properties": {
                "readOnly": True,
            },
        }

    def render(
        self,
        details: Details,
        schedule: Optional[Schedule] = None,
        notices: Optional[Notices] = None,
    ) -> str:
        """HTML description of an object."""
        html = [f"<h3>{escape(details.name)}</h3>"]

        if details.waterway_name or details.km is not None:
            location = escape(details.waterway_name or "")
            if details.km is not None:
                location += f", km {details.km:g}"
            html.append(f"<div><p>{location.lstrip(', ')}</p></div>")

        if self.spec.note_fields and details.dimensions:
            html.append(self._render_dimensions(details))

        if details.contact_phone:
            html.append(
                "<h4>Contact</h4>"
                f"<div><p><label>Phone: </label><span>{escape(details.contact_phone)}</span></p></div>"
            )

        if notices:
            html.append("<div>")
            for index, notice in enumerate(notices, start=1):
                html.append("<hr/>")
                html.append(f"<h4>Notice to skippers {index}</h4>")
                html.append(self._render_notice(notice))
            html.append("</div>")

        if schedule:
            html.append("<hr/><div><h4>Operating times today</h4>")
            for period in schedule:
                html.append(self._render_operating_time(period))
            html.append("</div>")

        return "\n".join(html)

    def _render_dimensions(self, details: Details) -> str:
        header = "".join(f"<th>{escape(label)}</th>" for label, _ in self.spec.note_fields)
        rows = []
        for dims in details.dimensions:
            cells = "".join(
                f"<td>{format_metres(getattr(dims, attr))}</td>"
                for _, attr in self.spec.note_fields
            )
            rows.append(f"<tr>{cells}</tr>")
        label = ""
        if self.spec.count_label:
            label = f"<p>{len(details.dimensions)} {escape(self.spec.count_label)}</p>"
        return (
            f"<div><h4>Dimensions</h4>{label}"
            f"<table><tr>{header}</tr>{''.join(rows)}</table></div>"
        )

    def _render_notice(self, notice) -> str:
        html = [
            f"<p>{escape(notice.message_type.capitalize())}, published by "
            f"{escape(notice.originator)} on {_date(notice.issued, '%B %d %Y, %H:%M')}</p>",
            f"<p>Valid from {_date(notice.valid_from, '%B %d %Y')} "
            f"to {_date(notice.valid_until, '%B %d %Y')}</p>",
            f"<p><b>{escape(notice.title.capitalize())}</b></p>",
        ]
        if notice.contents:
            html.append(f"<p>{escape(notice.contents)}</p>")
        if notice.links:
            links = "<br/>".join(
                f'<a href="{escape(url)}">{escape(label)}</a>'
                for label, url in notice.links
            )
            html.append(f"<p>{links}</p>")
        return "\n".join(html)

    def _render_operating_time(self, period) -> str:
        lines = [f"{period.time_display} {escape(period.status_message)}".rstrip()]
        lines.extend(
            f"Remark {i}: {escape(remark)}" for i, remark in enumerate(period.remarks, start=1)
        )
        lines.extend(
            f"Direction {i}: {escape(d)}" for i, d in enumerate(period.directions, start=1)
        )
        return f"<p>{'<br/>'.join(lines)}</p>"
