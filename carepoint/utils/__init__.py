"""
Utils module for CarePoint
"""

from .geo import (
    Coordinate,
    distance_km,
    format_coordinate_pair,
    format_distance,
    format_duration,
)
from .http import default_headers, get_session

__all__ = [
    "Coordinate",
    "distance_km",
    "format_coordinate_pair",
    "format_distance",
    "format_duration",
    "default_headers",
    "get_session",
]
