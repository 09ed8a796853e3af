from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from geoalchemy2.elements import WKBElement
from geoalchemy2.shape import from_shape
from shapely.geometry import Point, Polygon

EARTH_RADIUS_KM = 6371.0
SRID = 4326


@dataclass(frozen=True)
class BoundingBox:
    """
    Lat/lon box. When min_lon > max_lon the box crosses the antimeridian and
    covers [min_lon, 180] plus [-180, max_lon].
    """

    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.min_lon > self.max_lon

    def lon_ranges(self) -> list[tuple[float, float]]:
        if self.crosses_antimeridian:
            return [(self.min_lon, 180.0), (-180.0, self.max_lon)]
        return [(self.min_lon, self.max_lon)]

    def contains(self, lat: float, lon: float) -> bool:
        if not self.min_lat <= lat <= self.max_lat:
            return False
        return any(lo <= lon <= hi for lo, hi in self.lon_ranges())


def point_geography(lat: float | None, lon: float | None) -> WKBElement | None:
    """Point for the `geom` column; shapely axis order is lon lat."""
    if lat is None or lon is None:
        return None
    return from_shape(Point(lon, lat), srid=SRID)


def point_ewkt(lat: float, lon: float) -> str:
    return f"SRID={SRID};{Point(lon, lat).wkt}"


def polygon_ewkt(vertices: Sequence[tuple[float, float]]) -> str:
    return f"SRID={SRID};{Polygon([(lon, lat) for lat, lon in vertices]).wkt}"


def _wrap_lon(lon: float) -> float:
    return ((lon + 180.0) % 360.0) - 180.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def circle_bbox(lat: float, lon: float, radius_km: float) -> BoundingBox:
    """
    Conservative box around a circle, used as an SQL pre-filter.

    Longitudes wrap across the antimeridian. Near the poles the longitude span
    degenerates, so it falls back to the full range.
    """
    dlat = math.degrees(radius_km / EARTH_RADIUS_KM)
    min_lat, max_lat = max(-90.0, lat - dlat), min(90.0, lat + dlat)
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)
    dlon = math.degrees(radius_km / (EARTH_RADIUS_KM * cos_lat))
    if dlon >= 180.0:
        return BoundingBox(min_lat, max_lat, -180.0, 180.0)

    lo, hi = lon - dlon, lon + dlon
    if lo < -180.0 or hi > 180.0:
        return BoundingBox(min_lat, max_lat, _wrap_lon(lo), _wrap_lon(hi))
    return BoundingBox(min_lat, max_lat, lo, hi)


def polygon_bbox(vertices: Sequence[tuple[float, float]]) -> BoundingBox:
    lats = [v[0] for v in vertices]
    lons = [v[1] for v in vertices]
    return BoundingBox(min(lats), max(lats), min(lons), max(lons))


def point_in_polygon(lat: float, lon: float, vertices: Sequence[tuple[float, float]]) -> bool:
    # ray casting on the lon/lat plane; points on an edge count as inside
    n = len(vertices)
    if n < 3:
        return False
    inside = False
    j = n - 1
    for i in range(n):
        yi, xi = vertices[i]
        yj, xj = vertices[j]
        if _on_segment(lat, lon, yi, xi, yj, xj):
            return True
        if (yi > lat) != (yj > lat):
            x_cross = (xj - xi) * (lat - yi) / (yj - yi) + xi
            if lon < x_cross:
                inside = not inside
        j = i
    return inside


def _on_segment(py: float, px: float, y1: float, x1: float, y2: float, x2: float, eps: float = 1e-12) -> bool:
    cross = (px - x1) * (y2 - y1) - (py - y1) * (x2 - x1)
    if abs(cross) > eps:
        return False
    return min(x1, x2) - eps <= px <= max(x1, x2) + eps and min(y1, y2) - eps <= py <= max(y1, y2) + eps
