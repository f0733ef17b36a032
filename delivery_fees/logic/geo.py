# delivery_fees/logic/geo.py
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from .. import config
from ..utils.parsing import parse_latitude, parse_longitude


@dataclass(frozen=True)
class Coordinate:
    """A point on Earth in decimal degrees."""
    latitude: float
    longitude: float

    @classmethod
    def validated(cls, latitude, longitude, prefix: str = "") -> "Coordinate":
        """Build a Coordinate from raw input, raising InvalidCoordinate on bad values."""
        return cls(
            parse_latitude(latitude, f"{prefix}Lat" if prefix else "latitude"),
            parse_longitude(longitude, f"{prefix}Lng" if prefix else "longitude"),
        )

    @classmethod
    def from_optional(cls, latitude, longitude) -> Optional["Coordinate"]:
        """Coordinate for stored values; None when unset or zero (unconfigured)."""
        if latitude in (None, "") or longitude in (None, ""):
            return None
        try:
            point = cls.validated(latitude, longitude)
        except ValueError:
            return None
        if point.is_unset():
            return None
        return point

    def is_unset(self) -> bool:
        return self.latitude == 0 and self.longitude == 0

    def to_dict(self) -> dict:
        return {"lat": self.latitude, "lng": self.longitude}


def haversine_distance(point1: Coordinate, point2: Coordinate) -> float:
    """Great-circle distance in km between two coordinates, rounded to 2 decimals."""
    lat1_rad = math.radians(point1.latitude)
    lat2_rad = math.radians(point2.latitude)
    dlat = math.radians(point2.latitude - point1.latitude)
    dlon = math.radians(point2.longitude - point1.longitude)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    # rounding can push a marginally above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    distance = config.EARTH_RADIUS_KM * c

    return round(distance, 2)


def estimate_delivery_time(distance_km: float) -> str:
    """Human readable delivery window for a distance.

    Travel at AVERAGE_SPEED_KMH plus PREP_TIME_MINUTES gives the lower bound;
    the upper bound adds ETA_MARGIN. Windows longer than an hour are expressed
    in hours.
    """
    travel_minutes = (distance_km / config.AVERAGE_SPEED_KMH) * 60
    # round first so float noise (e.g. 18.999999999) does not move the ceiling
    min_time = math.ceil(round(config.PREP_TIME_MINUTES + travel_minutes, 6))
    max_time = math.ceil(Decimal(min_time) * Decimal(config.ETA_MARGIN))

    if max_time <= 60:
        return f"{min_time}-{max_time} دقيقة"

    min_hours = min_time // 60
    max_hours = math.ceil(max_time / 60)
    if min_hours == max_hours:
        return f"حوالي {min_hours} ساعة"
    return f"{min_hours}-{max_hours} ساعة"


def is_point_in_polygon(point: Coordinate, polygon: Sequence[Coordinate]) -> bool:
    """Ray casting test. Polygon vertices are taken in order and closed implicitly."""
    inside = False
    x, y = point.latitude, point.longitude
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i].latitude, polygon[i].longitude
        xj, yj = polygon[j].latitude, polygon[j].longitude
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside
