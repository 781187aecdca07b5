"""Error taxonomy for CarePoint lookups."""

from typing import Optional


class CarePointError(Exception):
    """Base class for all CarePoint errors."""


class LocationError(CarePointError):
    """Device geolocation failed. Carries a message suitable for the user."""

    user_message = "An unknown error occurred while getting location."

    def __init__(self, message: Optional[str] = None) -> None:
        if message:
            self.user_message = message
        super().__init__(self.user_message)


class UnsupportedEnvironment(LocationError):
    user_message = "Geolocation is not supported in this environment."


class PermissionDenied(LocationError):
    user_message = "Location access denied. Please enable location permissions."


class PositionUnavailable(LocationError):
    user_message = "Location information is unavailable."


class GeolocationTimeout(LocationError):
    user_message = "Location request timed out. Please try again."


class NetworkFailure(CarePointError):
    """A downstream HTTP call failed or returned a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NoRouteFound(CarePointError):
    """The directions service answered without a usable route."""


class NoNearbyFacilities(CarePointError):
    """No facility is available to act on."""


class QueryFailed(CarePointError):
    """An inventory or catalog query failed."""
