"""
Geographic helpers: bounding boxes around a position and Mercator projection.
"""
import math
from typing import Tuple

Point = Tuple[float, float]                      # (lon, lat) in degrees
BBox = Tuple[float, float, float, float]         # (min_lon, min_lat, max_lon, max_lat)

EARTH_RADIUS_M = 6371000.0

# WGS84 ellipsoid
WGS84_SEMI_MAJOR_M = 6378137.0
WGS84_SEMI_MINOR_M = 6356752.314245
WGS84_ECCENTRICITY = math.sqrt(1 - (WGS84_SEMI_MINOR_M / WGS84_SEMI_MAJOR_M) ** 2)

MAX_PROJECTED_LAT = 89.5


def destination_point(point: Point, bearing_deg: float, distance_m: float) -> Point:
    """
    Return the point reached from `point` along a great circle.

    Spherical earth with mean radius 6371 km.
    """
    lon, lat = point
    lat_rad = math.radians(lat)
    lon_rad = math.radians(lon)
    bearing_rad = math.radians(bearing_deg)
    angular = distance_m / EARTH_RADIUS_M

    new_lat_rad = math.asin(
        math.sin(lat_rad) * math.cos(angular)
        + math.cos(lat_rad) * math.sin(angular) * math.cos(bearing_rad)
    )
    new_lon_rad = lon_rad + math.atan2(
        math.sin(bearing_rad) * math.sin(angular) * math.cos(lat_rad),
        math.cos(angular) - math.sin(lat_rad) * math.sin(new_lat_rad),
    )
    return math.degrees(new_lon_rad), math.degrees(new_lat_rad)


def bbox_from_center(point: Point, radius_m: float) -> BBox:
    """
    Bounding box spanned by the NW and SE points of a circle around `point`.

    The corners lie on the circle (bearings -45 and 135 degrees), so the box
    is smaller than the true enclosing box. Good enough for a catalog query.
    """
    if radius_m < 0:
        raise ValueError("radius_m must be >= 0")
    nw_lon, nw_lat = destination_point(point, -45.0, radius_m)
    se_lon, se_lat = destination_point(point, 135.0, radius_m)
    return (
        min(nw_lon, se_lon),
        min(nw_lat, se_lat),
        max(nw_lon, se_lon),
        max(nw_lat, se_lat),
    )


def to_projected(lon: float, lat: float) -> Point:
    """
    Forward ellipsoidal Mercator projection (WGS84) in metres.

    Latitude is clamped to +/-89.5 degrees; the projection diverges at the poles.
    """
    lat = max(-MAX_PROJECTED_LAT, min(MAX_PROJECTED_LAT, lat))
    phi = math.radians(lat)
    e = WGS84_ECCENTRICITY
    e_sin = e * math.sin(phi)

    x = WGS84_SEMI_MAJOR_M * math.radians(lon)
    y = WGS84_SEMI_MAJOR_M * math.log(
        math.tan(math.pi / 4 + phi / 2) * ((1 - e_sin) / (1 + e_sin)) ** (e / 2)
    )
    return x, y


def bbox_to_projected(bbox: BBox) -> BBox:
    """Project both corners of a lon/lat bounding box."""
    min_x, min_y = to_projected(bbox[0], bbox[1])
    max_x, max_y = to_projected(bbox[2], bbox[3])
    return min_x, min_y, max_x, max_y


def parse_point(text: str) -> Point:
    """Parse 'lon,lat' into a point."""
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 2:
        raise ValueError(f"Expected 'lon,lat', got '{text}'")
    lon, lat = float(parts[0]), float(parts[1])
    if not -180 <= lon <= 180 or not -90 <= lat <= 90:
        raise ValueError(f"Position out of range: {text}")
    return lon, lat


def parse_bbox(text: str) -> BBox:
    """Parse 'min_lon,min_lat,max_lon,max_lat' into a bounding box."""
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 4:
        raise ValueError(f"Expected four comma separated numbers, got '{text}'")
    min_lon, min_lat, max_lon, max_lat = (float(p) for p in parts)
    if min_lon > max_lon or min_lat > max_lat:
        raise ValueError(f"Bounding box corners out of order: {text}")
    return min_lon, min_lat, max_lon, max_lat
