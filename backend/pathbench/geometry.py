from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

EARTH_RADIUS_M = 6_371_000.0


class LatLonPoint(Protocol):
    @property
    def latitude(self) -> float: ...

    @property
    def longitude(self) -> float: ...


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def as_lon_lat(self) -> tuple[float, float]:
        """GeoJSON axis order, which is what map layers draw."""
        return (self.longitude, self.latitude)


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, a))))


def distance_m(a: LatLonPoint, b: LatLonPoint) -> float:
    """Great-circle distance between two points, in meters."""
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)
