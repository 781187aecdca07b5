"""Device location and reverse geocoding.

The device capability is modelled as a callback-style provider (success and
error callbacks, like a browser geolocation API). ``LocationResolver`` turns
that into a single awaitable with its own timeout, then reverse geocodes the
position through Nominatim.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, Optional, Protocol, Union

import requests
import structlog
from pydantic import BaseModel

from carepoint.config import CarePointSettings, get_settings
from carepoint.errors import (
    GeolocationTimeout,
    LocationError,
    NetworkFailure,
    PermissionDenied,
    PositionUnavailable,
    UnsupportedEnvironment,
)
from carepoint.utils.geo import Coordinate, format_coordinate_pair
from carepoint.utils.http import default_headers, get_session

logger = structlog.get_logger(__name__)


class Permission(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNKNOWN = "unknown"


class GeolocationErrorCode(IntEnum):
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3


@dataclass(frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout: float = 10.0
    maximum_age: float = 300.0


@dataclass(frozen=True)
class GeolocationPosition:
    coords: Coordinate
    timestamp: float = field(default_factory=time.time)
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class GeolocationFailure:
    code: int
    message: str = ""


SuccessCallback = Callable[[GeolocationPosition], None]
ErrorCallback = Callable[[GeolocationFailure], None]


class GeolocationProvider(Protocol):
    def get_current_position(
        self,
        on_success: SuccessCallback,
        on_error: ErrorCallback,
        options: PositionOptions,
    ) -> None:
        ...


class StaticPositionProvider:
    """Provider that always reports the same position.

    Used by the CLI (coordinates given on the command line or in the
    environment) and by tests. ``permission`` mimics the browser permission
    query result: ``granted``, ``denied`` or ``prompt``.
    """

    def __init__(
        self,
        latitude: float,
        longitude: float,
        accuracy: Optional[float] = None,
        permission: str = "granted",
    ) -> None:
        self.coords = Coordinate(latitude=latitude, longitude=longitude)
        self.accuracy = accuracy
        self.permission = permission

    def query_permission(self) -> str:
        return self.permission

    def get_current_position(
        self,
        on_success: SuccessCallback,
        on_error: ErrorCallback,
        options: PositionOptions,
    ) -> None:
        if self.permission == "denied":
            on_error(GeolocationFailure(GeolocationErrorCode.PERMISSION_DENIED, "User denied Geolocation"))
            return
        on_success(GeolocationPosition(coords=self.coords, accuracy=self.accuracy))


class ResolvedLocation(BaseModel):
    coords: Optional[Coordinate] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    formatted_address: Optional[str] = None


@dataclass(frozen=True)
class LocationState:
    """Last known location snapshot for one session."""

    location: ResolvedLocation = field(default_factory=ResolvedLocation)
    permission: Permission = Permission.UNKNOWN
    error: Optional[str] = None
    is_loading: bool = False


def coordinate_only_location(coords: Coordinate) -> ResolvedLocation:
    return ResolvedLocation(
        coords=coords,
        formatted_address=format_coordinate_pair(coords.latitude, coords.longitude),
    )


def _first_text(data: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return str(value)
    return None


def build_resolved_location(coords: Coordinate, data: Dict[str, Any]) -> ResolvedLocation:
    """Map a Nominatim reverse response onto a ResolvedLocation."""
    address = data.get("address")
    if not isinstance(address, dict):
        address = {}
    city = _first_text(address, "city", "town", "village", "hamlet")
    state = _first_text(address, "state", "region")
    country = _first_text(address, "country")
    display_name = _first_text(data, "display_name")

    if city and state:
        formatted = f"{city}, {state}"
    elif city:
        formatted = city
    elif display_name:
        formatted = ",".join(display_name.split(",")[:2]).strip()
    else:
        formatted = format_coordinate_pair(coords.latitude, coords.longitude)

    return ResolvedLocation(
        coords=coords,
        address=display_name or None,
        city=city or None,
        state=state or None,
        country=country or None,
        formatted_address=formatted,
    )


def _fetch_reverse_geocode(
    session: requests.Session,
    settings: CarePointSettings,
    coords: Coordinate,
) -> Dict[str, Any]:
    params = {
        "format": "json",
        "lat": str(coords.latitude),
        "lon": str(coords.longitude),
        "addressdetails": "1",
    }
    try:
        resp = session.get(
            settings.nominatim_url,
            params=params,
            headers=default_headers(settings),
            timeout=settings.http_timeout,
        )
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as exc:
        raise NetworkFailure(f"Reverse geocoding failed: {exc}") from exc
    except ValueError as exc:
        raise NetworkFailure(f"Reverse geocoding returned invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise NetworkFailure("Reverse geocoding returned an unexpected payload")
    return data


async def reverse_geocode(
    coords: Coordinate,
    session: Optional[requests.Session] = None,
    settings: Optional[CarePointSettings] = None,
) -> ResolvedLocation:
    """Reverse geocode ``coords``; never raises.

    On any failure the result keeps the coordinates and uses them, to four
    decimals, as the formatted address.
    """
    settings = settings or get_settings()
    session = session or get_session()
    try:
        data = await asyncio.to_thread(_fetch_reverse_geocode, session, settings, coords)
    except NetworkFailure as exc:
        logger.warning(
            "Reverse geocoding failed, using coordinates",
            lat=coords.latitude,
            lon=coords.longitude,
            error=str(exc),
        )
        return coordinate_only_location(coords)
    return build_resolved_location(coords, data)


_ERROR_BY_CODE = {
    GeolocationErrorCode.PERMISSION_DENIED: PermissionDenied,
    GeolocationErrorCode.POSITION_UNAVAILABLE: PositionUnavailable,
    GeolocationErrorCode.TIMEOUT: GeolocationTimeout,
}


def error_for_failure(failure: GeolocationFailure) -> LocationError:
    error_cls = _ERROR_BY_CODE.get(failure.code)
    if error_cls is None:
        return LocationError()
    return error_cls()


class LocationResolver:
    """Resolves the device position for one session and keeps its last state."""

    def __init__(
        self,
        provider: Optional[GeolocationProvider],
        settings: Optional[CarePointSettings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.provider = provider
        self.settings = settings or get_settings()
        self.session = session
        self.state = LocationState()

    @property
    def options(self) -> PositionOptions:
        return PositionOptions(
            enable_high_accuracy=True,
            timeout=self.settings.geolocation_timeout,
            maximum_age=self.settings.geolocation_max_age,
        )

    def snapshot(self) -> LocationState:
        return self.state

    def _refresh_permission(self) -> None:
        query = getattr(self.provider, "query_permission", None)
        if not callable(query):
            return
        status = query()
        if status == "granted":
            permission = Permission.GRANTED
        elif status == "denied":
            permission = Permission.DENIED
        else:
            permission = Permission.UNKNOWN
        self.state = replace(self.state, permission=permission)

    async def _await_position(self, options: PositionOptions) -> GeolocationPosition:
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def _settle(outcome: Union[GeolocationPosition, GeolocationFailure]) -> None:
            if not future.done():
                future.set_result(outcome)

        def on_success(position: GeolocationPosition) -> None:
            loop.call_soon_threadsafe(_settle, position)

        def on_error(failure: GeolocationFailure) -> None:
            loop.call_soon_threadsafe(_settle, failure)

        try:
            self.provider.get_current_position(on_success, on_error, options)
        except LocationError:
            raise
        except Exception as exc:
            logger.warning("Geolocation provider failed", error=str(exc))
            raise PositionUnavailable() from exc

        try:
            outcome = await asyncio.wait_for(future, timeout=options.timeout)
        except asyncio.TimeoutError as exc:
            raise GeolocationTimeout() from exc

        if isinstance(outcome, GeolocationFailure):
            raise error_for_failure(outcome)
        return outcome

    async def resolve_current_location(self) -> ResolvedLocation:
        """Get the device position and describe it.

        Raises a ``LocationError`` subclass when the position cannot be
        obtained; the user-facing message is also recorded on ``state``.
        """
        if self.provider is None:
            error = UnsupportedEnvironment()
            self.state = replace(self.state, error=error.user_message)
            raise error

        self.state = replace(self.state, is_loading=True, error=None)
        try:
            self._refresh_permission()
            position = await self._await_position(self.options)
            location = await reverse_geocode(position.coords, session=self.session, settings=self.settings)
        except PermissionDenied as exc:
            logger.warning("Location permission denied")
            self.state = replace(self.state, permission=Permission.DENIED, error=exc.user_message)
            raise
        except LocationError as exc:
            logger.warning("Location lookup failed", error=exc.user_message)
            self.state = replace(self.state, error=exc.user_message)
            raise
        finally:
            self.state = replace(self.state, is_loading=False)

        logger.info(
            "Resolved current location",
            lat=location.coords.latitude,
            lon=location.coords.longitude,
            formatted_address=location.formatted_address,
        )
        self.state = LocationState(location=location, permission=Permission.GRANTED)
        return location
