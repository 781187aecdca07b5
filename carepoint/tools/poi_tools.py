"""Nearby pharmacy and hospital search against the OpenStreetMap Overpass API."""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import requests
import structlog
from pydantic import BaseModel, Field, ValidationError

from carepoint.config import CarePointSettings, get_settings
from carepoint.errors import NetworkFailure, NoNearbyFacilities
from carepoint.utils.geo import Coordinate, distance_km
from carepoint.utils.http import default_headers, get_session

logger = structlog.get_logger(__name__)


class POICategory(str, Enum):
    PHARMACY = "pharmacy"
    HOSPITAL_OR_CLINIC = "hospital_or_clinic"


_AMENITY_TAGS: Dict[POICategory, Sequence[str]] = {
    POICategory.PHARMACY: ("pharmacy",),
    POICategory.HOSPITAL_OR_CLINIC: ("hospital", "clinic"),
}

_UNKNOWN_NAMES = {
    POICategory.PHARMACY: "Unknown Pharmacy",
    POICategory.HOSPITAL_OR_CLINIC: "Unknown Hospital",
}

FAILURE_MESSAGES = {
    POICategory.PHARMACY: "Failed to find nearby pharmacies. Please try again.",
    POICategory.HOSPITAL_OR_CLINIC: "Failed to find nearby hospitals. Please try again.",
}

ADDRESS_NOT_AVAILABLE = "Address not available"


class OverpassCenter(BaseModel):
    lat: float
    lon: float


class OverpassElement(BaseModel):
    """One element of an Overpass ``out center`` response."""

    type: str
    id: int
    lat: Optional[float] = None
    lon: Optional[float] = None
    center: Optional[OverpassCenter] = None
    tags: Dict[str, Any] = Field(default_factory=dict)

    def coordinate(self) -> Optional[Coordinate]:
        if self.type == "node":
            if self.lat is None or self.lon is None:
                return None
            return Coordinate(latitude=self.lat, longitude=self.lon)
        if self.center is not None:
            return Coordinate(latitude=self.center.lat, longitude=self.center.lon)
        return None

    def tag(self, key: str) -> Optional[str]:
        value = self.tags.get(key)
        if value is None or value == "":
            return None
        return str(value)


class PointOfInterest(BaseModel):
    id: str
    name: str
    address: str
    coords: Coordinate
    category: POICategory
    distance_km: Optional[float] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    opening_hours: Optional[str] = None
    emergency: Optional[bool] = None
    specialties: Optional[List[str]] = None


def build_overpass_query(center: Coordinate, radius_km: float, category: POICategory) -> str:
    """Overpass QL selecting nodes, ways and relations for the category's amenity tags."""
    radius_m = int(round(radius_km * 1000))
    around = f"(around:{radius_m},{center.latitude},{center.longitude})"
    selectors = [
        f'  {kind}["amenity"="{amenity}"]{around};'
        for amenity in _AMENITY_TAGS[category]
        for kind in ("node", "way", "relation")
    ]
    return "[out:json][timeout:25];\n(\n" + "\n".join(selectors) + "\n);\nout center meta;"


def build_address(element: OverpassElement) -> str:
    house = element.tag("addr:housenumber")
    street = element.tag("addr:street")
    suburb = element.tag("addr:suburb")
    city = element.tag("addr:city")

    if street:
        address = f"{house} {street}" if house else street
        if city:
            address += f", {city}"
        return address

    parts = [p for p in (house, street, suburb, city) if p]
    return ", ".join(parts) or ADDRESS_NOT_AVAILABLE


def _specialties(element: OverpassElement) -> Optional[List[str]]:
    specialties: List[str] = []
    speciality = element.tag("healthcare:speciality")
    if speciality:
        specialties.extend(s.strip() for s in speciality.split(";") if s.strip())
    medical_system = element.tag("medical_system")
    if medical_system:
        specialties.append(medical_system)
    return specialties or None


def normalize_element(
    raw: Any,
    center: Coordinate,
    category: POICategory,
) -> Optional[PointOfInterest]:
    """Turn a raw Overpass element into a PointOfInterest, or None if it has no position."""
    if not isinstance(raw, dict):
        return None
    try:
        element = OverpassElement.model_validate({**raw, "tags": raw.get("tags") or {}})
        coords = element.coordinate()
    except ValidationError as exc:
        logger.debug("Skipping malformed Overpass element", element_id=raw.get("id"), error=str(exc))
        return None
    if coords is None:
        return None

    poi = PointOfInterest(
        id=f"{element.type}_{element.id}",
        name=element.tag("name") or element.tag("brand") or _UNKNOWN_NAMES[category],
        address=build_address(element),
        coords=coords,
        category=category,
        distance_km=distance_km(center, coords),
        phone=element.tag("phone"),
        website=element.tag("website"),
        opening_hours=element.tag("opening_hours"),
    )
    if category is POICategory.HOSPITAL_OR_CLINIC:
        poi.emergency = element.tag("emergency") == "yes" or element.tag("emergency:medical") == "yes"
        poi.specialties = _specialties(element)
    return poi


def _post_overpass(session: requests.Session, settings: CarePointSettings, query: str) -> Dict[str, Any]:
    try:
        resp = session.post(
            settings.overpass_url,
            data={"data": query},
            headers=default_headers(settings),
            timeout=settings.http_timeout,
        )
        resp.raise_for_status()
        payload = resp.json()
    except requests.RequestException as exc:
        raise NetworkFailure(f"Overpass request failed: {exc}") from exc
    except ValueError as exc:
        raise NetworkFailure(f"Overpass returned invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise NetworkFailure("Overpass returned an unexpected payload")
    return payload


def result_limit(category: POICategory, settings: CarePointSettings) -> int:
    if category is POICategory.PHARMACY:
        return settings.pharmacy_limit
    return settings.hospital_limit


def default_radius_km(category: POICategory, settings: CarePointSettings) -> float:
    if category is POICategory.PHARMACY:
        return settings.pharmacy_radius_km
    return settings.hospital_radius_km


async def search_nearby(
    center: Coordinate,
    radius_km: float,
    category: POICategory,
    session: Optional[requests.Session] = None,
    settings: Optional[CarePointSettings] = None,
) -> List[PointOfInterest]:
    """Find facilities of ``category`` within ``radius_km`` of ``center``, nearest first.

    Raises NetworkFailure when the Overpass request fails.
    """
    settings = settings or get_settings()
    session = session or get_session()
    query = build_overpass_query(center, radius_km, category)
    logger.info(
        "Searching nearby facilities",
        category=category.value,
        lat=center.latitude,
        lon=center.longitude,
        radius_km=radius_km,
    )

    payload = await asyncio.to_thread(_post_overpass, session, settings, query)
    elements = payload.get("elements") or []

    pois = [poi for poi in (normalize_element(e, center, category) for e in elements) if poi is not None]
    pois.sort(key=lambda poi: poi.distance_km)
    limit = result_limit(category, settings)

    logger.info(
        "Nearby facility search completed",
        category=category.value,
        elements=len(elements),
        kept=len(pois),
        returned=min(len(pois), limit),
    )
    return pois[:limit]


def nearest_facility(pois: Sequence[PointOfInterest]) -> PointOfInterest:
    if not pois:
        raise NoNearbyFacilities("No facilities found nearby")
    return min(pois, key=lambda poi: poi.distance_km if poi.distance_km is not None else float("inf"))


class POIFetcher:
    """Holds the latest nearby-search result for one screen or session."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        settings: Optional[CarePointSettings] = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.results: List[PointOfInterest] = []
        self.error: Optional[str] = None
        self.is_loading = False

    async def search_nearby(
        self,
        center: Coordinate,
        radius_km: Optional[float] = None,
        category: POICategory = POICategory.PHARMACY,
    ) -> List[PointOfInterest]:
        """Run a search and replace ``results``. A failure leaves an empty list and sets ``error``."""
        if radius_km is None:
            radius_km = default_radius_km(category, self.settings)
        self.is_loading = True
        self.error = None
        try:
            self.results = await search_nearby(
                center,
                radius_km,
                category,
                session=self.session,
                settings=self.settings,
            )
        except NetworkFailure as exc:
            logger.warning("Nearby facility search failed", category=category.value, error=str(exc))
            self.results = []
            self.error = FAILURE_MESSAGES[category]
        finally:
            self.is_loading = False
        return self.results
