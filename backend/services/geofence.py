from dataclasses import dataclass
from enum import Enum
from math import atan2, cos, radians, sin, sqrt

from backend.errors import ValidationError

EARTH_RADIUS_METERS = 6371000.0


class GeofenceStatus(str, Enum):
    WITHIN = "within"
    OUTSIDE = "outside"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Coord:
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValidationError("Latitude must be between -90 and 90.", field="coordinates")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValidationError("Longitude must be between -180 and 180.", field="coordinates")


@dataclass(frozen=True)
class GeofenceResult:
    status: GeofenceStatus
    distance_meters: float | None

    @property
    def within_range(self) -> bool:
        return self.status is GeofenceStatus.WITHIN

    @property
    def available(self) -> bool:
        return self.status is not GeofenceStatus.UNAVAILABLE


def haversine_meters(a: Coord, b: Coord) -> float:
    d_lat = radians(b.latitude - a.latitude)
    d_lon = radians(b.longitude - a.longitude)
    h = sin(d_lat / 2) ** 2 + cos(radians(a.latitude)) * cos(radians(b.latitude)) * sin(d_lon / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * atan2(sqrt(h), sqrt(1 - h))


def classroom_center(classroom: dict) -> Coord | None:
    """A classroom has a geofence only when both latitude and longitude are set."""
    lat = classroom.get("latitude")
    lng = classroom.get("longitude")
    if lat is None or lng is None:
        return None
    return Coord(float(lat), float(lng))


def evaluate(point: Coord, center: Coord | None, radius_meters: float) -> GeofenceResult:
    if center is None:
        return GeofenceResult(GeofenceStatus.UNAVAILABLE, None)
    distance = haversine_meters(point, center)
    status = GeofenceStatus.WITHIN if distance <= radius_meters else GeofenceStatus.OUTSIDE
    return GeofenceResult(status, round(distance, 2))
