"""Driving directions via OpenRouteService, with a straight-line fallback,
and hand-off of a destination to an external maps app.
"""
from __future__ import annotations

import asyncio
import re
import threading
import webbrowser
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence
from urllib.parse import quote

import requests
import structlog
from pydantic import BaseModel, Field, ValidationError

from carepoint.config import CarePointSettings, get_settings
from carepoint.errors import NetworkFailure, NoRouteFound
from carepoint.utils.geo import Coordinate, distance_km
from carepoint.utils.http import get_session

logger = structlog.get_logger(__name__)

ESTIMATED_ROUTE_NOTICE = (
    "Using estimated route. For detailed directions, the route will open in your maps app."
)

_ORS_ACCEPT = "application/json, application/geo+json, application/gpx+xml, img/png; charset=utf-8"


class RouteStep(BaseModel):
    instruction: str
    distance_meters: float
    duration_seconds: float
    geometry: List[Coordinate] = Field(default_factory=list)


class Route(BaseModel):
    distance_meters: float
    duration_seconds: float
    geometry: List[Coordinate]
    steps: List[RouteStep]
    is_estimated: bool = False


# OpenRouteService GeoJSON response, narrowed to the fields we read.

class _OrsStep(BaseModel):
    instruction: str = ""
    distance: float = 0.0
    duration: float = 0.0
    way_points: List[int] = Field(default_factory=list)


class _OrsSegment(BaseModel):
    distance: float
    duration: float
    steps: List[_OrsStep] = Field(default_factory=list)


class _OrsProperties(BaseModel):
    segments: List[_OrsSegment] = Field(default_factory=list)


class _OrsGeometry(BaseModel):
    coordinates: List[List[float]] = Field(default_factory=list)


class _OrsFeature(BaseModel):
    properties: _OrsProperties
    geometry: _OrsGeometry


class _OrsResponse(BaseModel):
    features: List[_OrsFeature] = Field(default_factory=list)


def _to_coordinate(position: Sequence[float]) -> Coordinate:
    # GeoJSON positions are [lng, lat(, elevation)]
    return Coordinate(latitude=position[1], longitude=position[0])


def parse_directions(payload: Any) -> Route:
    """Map the first route segment of a directions response onto a Route."""
    try:
        response = _OrsResponse.model_validate(payload)
        if not response.features or not response.features[0].properties.segments:
            raise NoRouteFound("Directions response contained no route")
        feature = response.features[0]
        segment = feature.properties.segments[0]
        geometry = [_to_coordinate(p) for p in feature.geometry.coordinates]
    except (ValidationError, IndexError) as exc:
        raise NoRouteFound(f"Directions response could not be parsed: {exc}") from exc

    steps = []
    for step in segment.steps:
        step_geometry: List[Coordinate] = []
        if len(step.way_points) == 2:
            start, end = step.way_points
            step_geometry = geometry[start:end + 1]
        steps.append(
            RouteStep(
                instruction=step.instruction,
                distance_meters=step.distance,
                duration_seconds=step.duration,
                geometry=step_geometry,
            )
        )

    return Route(
        distance_meters=segment.distance,
        duration_seconds=segment.duration,
        geometry=geometry,
        steps=steps,
    )


def estimate_route(origin: Coordinate, destination: Coordinate, speed_kmh: float = 50.0) -> Route:
    """Straight-line route between two points at a fixed average speed."""
    km = distance_km(origin, destination)
    duration = km / speed_kmh * 3600
    geometry = [origin, destination]
    return Route(
        distance_meters=km * 1000,
        duration_seconds=duration,
        geometry=geometry,
        steps=[
            RouteStep(
                instruction=f"Head to destination ({km:.1f}km)",
                distance_meters=km * 1000,
                duration_seconds=duration,
                geometry=geometry,
            )
        ],
        is_estimated=True,
    )


def _request_directions(
    session: requests.Session,
    settings: CarePointSettings,
    origin: Coordinate,
    destination: Coordinate,
) -> Dict[str, Any]:
    if not settings.ors_api_key:
        raise NetworkFailure("ORS_API_KEY is not configured")

    params = {
        "api_key": settings.ors_api_key,
        "start": f"{origin.longitude},{origin.latitude}",
        "end": f"{destination.longitude},{destination.latitude}",
    }
    try:
        resp = session.get(
            settings.ors_directions_url,
            params=params,
            headers={"Accept": _ORS_ACCEPT},
            timeout=settings.http_timeout,
        )
        resp.raise_for_status()
        return resp.json()
    except requests.RequestException as exc:
        raise NetworkFailure(f"Directions request failed: {exc}") from exc
    except ValueError as exc:
        raise NetworkFailure(f"Directions service returned invalid JSON: {exc}") from exc


class RoutingResolver:
    """Computes a route and keeps the latest one, plus an advisory notice."""

    def __init__(
        self,
        settings: Optional[CarePointSettings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session = session or get_session()
        self.route: Optional[Route] = None
        self.error: Optional[str] = None
        self.is_loading = False

    async def get_route(self, origin: Coordinate, destination: Coordinate) -> Route:
        """Fetch a driving route; fall back to an estimated straight line on any failure."""
        self.is_loading = True
        self.error = None
        try:
            payload = await asyncio.to_thread(
                _request_directions, self.session, self.settings, origin, destination
            )
            route = parse_directions(payload)
        except (NetworkFailure, NoRouteFound) as exc:
            logger.warning("Directions unavailable, using estimated route", error=str(exc))
            route = estimate_route(origin, destination, self.settings.fallback_speed_kmh)
            self.error = ESTIMATED_ROUTE_NOTICE
        finally:
            self.is_loading = False

        logger.info(
            "Route resolved",
            distance_m=round(route.distance_meters),
            duration_s=round(route.duration_seconds),
            estimated=route.is_estimated,
        )
        self.route = route
        return route


# ─── External maps hand-off ─────────────────────────────────────────


class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"
    OTHER = "other"


class LaunchAction(str, Enum):
    OPEN_TAB = "open_tab"
    NAVIGATE = "navigate"


@dataclass(frozen=True)
class MapsLaunchStep:
    delay_seconds: float
    action: LaunchAction
    url: str


def detect_platform(user_agent: Optional[str]) -> Platform:
    ua = user_agent or ""
    if re.search(r"iPad|iPhone|iPod", ua):
        return Platform.IOS
    if "Android" in ua:
        return Platform.ANDROID
    return Platform.OTHER


def _encode(value: str) -> str:
    return quote(value, safe="-_.!~*'()")


def _latlng(coord: Coordinate) -> str:
    return f"{coord.latitude},{coord.longitude}"


def apple_maps_url(destination: Coordinate, label: Optional[str] = None) -> str:
    url = f"https://maps.apple.com/?daddr={_latlng(destination)}"
    if label:
        url += f"&q={_encode(label)}"
    return url


def google_maps_url(
    destination: Coordinate,
    label: Optional[str] = None,
    origin: Optional[Coordinate] = None,
) -> str:
    url = f"https://www.google.com/maps/dir/?api=1&destination={_latlng(destination)}"
    if label:
        url += f"&query={_encode(label)}"
    if origin is not None:
        url += f"&origin={_latlng(origin)}"
    return url


def android_geo_uri(destination: Coordinate, label: Optional[str] = None) -> str:
    return f"geo:{_latlng(destination)}?q={_encode(label or _latlng(destination))}&z=16"


def android_navigation_uri(destination: Coordinate) -> str:
    return f"google.navigation:q={_latlng(destination)}"


def openstreetmap_url(destination: Coordinate, origin: Optional[Coordinate] = None) -> str:
    if origin is not None:
        route = _encode(f"{_latlng(origin)};{_latlng(destination)}")
        return f"https://www.openstreetmap.org/directions?engine=fossgis_osrm_car&route={route}"
    lat, lng = destination.latitude, destination.longitude
    return f"https://www.openstreetmap.org/?mlat={lat}&mlon={lng}#map=16/{lat}/{lng}"


PlanBuilder = Callable[[Coordinate, Optional[str], Optional[Coordinate]], List[MapsLaunchStep]]


def _ios_plan(destination, label, origin) -> List[MapsLaunchStep]:
    return [
        MapsLaunchStep(0.0, LaunchAction.OPEN_TAB, apple_maps_url(destination, label)),
        MapsLaunchStep(0.8, LaunchAction.OPEN_TAB, google_maps_url(destination, label, origin)),
    ]


def _android_plan(destination, label, origin) -> List[MapsLaunchStep]:
    return [
        MapsLaunchStep(0.0, LaunchAction.NAVIGATE, android_geo_uri(destination, label)),
        MapsLaunchStep(0.4, LaunchAction.NAVIGATE, android_navigation_uri(destination)),
        MapsLaunchStep(0.8, LaunchAction.OPEN_TAB, openstreetmap_url(destination, origin)),
    ]


def _web_plan(destination, label, origin) -> List[MapsLaunchStep]:
    return [
        MapsLaunchStep(0.0, LaunchAction.OPEN_TAB, openstreetmap_url(destination, origin)),
        MapsLaunchStep(0.5, LaunchAction.OPEN_TAB, google_maps_url(destination, label, origin)),
    ]


MAPS_STRATEGIES: Dict[Platform, PlanBuilder] = {
    Platform.IOS: _ios_plan,
    Platform.ANDROID: _android_plan,
    Platform.OTHER: _web_plan,
}


def plan_external_maps_launch(
    destination: Coordinate,
    label: Optional[str] = None,
    origin: Optional[Coordinate] = None,
    platform: Platform = Platform.OTHER,
) -> List[MapsLaunchStep]:
    return MAPS_STRATEGIES[platform](destination, label, origin)


class MapsLauncher(Protocol):
    def launch(self, plan: Sequence[MapsLaunchStep]) -> None:
        ...


class BrowserLauncher:
    """Opens launch steps with the ``webbrowser`` module; delayed steps run on timers."""

    def launch(self, plan: Sequence[MapsLaunchStep]) -> None:
        for step in plan:
            if step.delay_seconds <= 0:
                self._open(step)
            else:
                threading.Timer(step.delay_seconds, self._open, args=(step,)).start()

    @staticmethod
    def _open(step: MapsLaunchStep) -> None:
        try:
            if step.action is LaunchAction.NAVIGATE:
                webbrowser.open(step.url)
            else:
                webbrowser.open_new_tab(step.url)
        except (webbrowser.Error, OSError) as exc:
            logger.warning("Could not open maps URL", url=step.url, error=str(exc))


def open_in_external_maps(
    destination: Coordinate,
    label: Optional[str] = None,
    origin: Optional[Coordinate] = None,
    platform: Optional[Platform] = None,
    launcher: Optional[MapsLauncher] = None,
    user_agent: Optional[str] = None,
) -> None:
    """Hand the destination to a maps app. Best effort; never raises."""
    platform = platform or detect_platform(user_agent)
    plan = plan_external_maps_launch(destination, label, origin, platform)
    logger.info("Opening external maps", platform=platform.value, steps=len(plan))
    try:
        (launcher or BrowserLauncher()).launch(plan)
    except Exception as exc:
        logger.warning("External maps launch failed", platform=platform.value, error=str(exc))
