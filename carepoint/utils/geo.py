"""Great-circle distance and display helpers for coordinates."""

import math

from pydantic import BaseModel, ConfigDict, Field

EARTH_RADIUS_KM = 6371.0


class Coordinate(BaseModel):
    """A WGS84 latitude/longitude pair."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two coordinates in kilometres."""
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    dphi = math.radians(b.latitude - a.latitude)
    dlambda = math.radians(b.longitude - a.longitude)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def format_distance(km: float) -> str:
    """Render metres below one kilometre, otherwise kilometres to one decimal."""
    if km < 1:
        return f"{int(math.floor(km * 1000 + 0.5))}m"
    return f"{km:.1f}km"


def format_coordinate_pair(latitude: float, longitude: float) -> str:
    return f"{latitude:.4f}, {longitude:.4f}"


def format_duration(seconds: float) -> str:
    """Render a travel time as minutes, or hours and minutes above one hour."""
    minutes = int(round(seconds / 60.0))
    if minutes < 60:
        return f"{max(minutes, 1)} min"
    hours, rest = divmod(minutes, 60)
    return f"{hours} h {rest} min" if rest else f"{hours} h"
