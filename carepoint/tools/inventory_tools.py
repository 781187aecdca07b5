"""Medicine availability search across the pharmacy directory and stock tables.

Two stores are provided: CSV files (the bundled sample dataset) and the
managed Postgres backend through its REST interface.
"""
from __future__ import annotations

import asyncio
import csv
import os
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set, Tuple

import requests
import structlog
from pydantic import BaseModel

from carepoint.config import CarePointSettings, as_bool, get_settings
from carepoint.errors import QueryFailed
from carepoint.utils.geo import Coordinate, distance_km
from carepoint.utils.http import get_session

logger = structlog.get_logger(__name__)

SEARCH_FAILED_MESSAGE = "Search failed. Please try again."
ALL_CATEGORIES = "All"


class SortKey(str, Enum):
    PRICE_LOW = "price-low"
    PRICE_HIGH = "price-high"
    RATING = "rating"
    DELIVERY = "delivery"
    DISTANCE = "distance"


class Facility(BaseModel):
    id: str
    name: str
    address: str = ""
    coords: Coordinate
    rating: Optional[float] = None
    total_reviews: Optional[int] = None
    delivery_time: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True


class InventoryListing(BaseModel):
    id: str
    medicine_id: str
    name: str
    brand: Optional[str] = None
    category: str
    strength: Optional[str] = None
    form: Optional[str] = None
    manufacturer: Optional[str] = None
    requires_prescription: bool = False
    pharmacy_id: str
    pharmacy_name: str
    pharmacy_address: str = ""
    pharmacy_rating: Optional[float] = None
    pharmacy_reviews: Optional[int] = None
    pharmacy_delivery_time: Optional[str] = None
    pharmacy_phone: Optional[str] = None
    price: float
    original_price: Optional[float] = None
    stock_quantity: int = 0
    is_available: bool = True
    distance_km: Optional[float] = None


class SearchFilter(BaseModel):
    text: Optional[str] = None
    category: Optional[str] = None
    sort_key: SortKey = SortKey.DISTANCE
    user_location: Optional[Coordinate] = None
    max_distance_km: float = 10.0


class InventoryStore(Protocol):
    def list_facilities(self) -> List[Facility]:
        ...

    def query_listings(self, facility_ids: Optional[Set[str]] = None) -> List[InventoryListing]:
        """Available stock rows joined with their medicine and pharmacy."""
        ...

    def list_categories(self) -> List[str]:
        ...


def _blank_to_none(value: Any) -> Any:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    return value


def _flag(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    return as_bool(value, default)


def facility_from_row(row: Dict[str, Any]) -> Facility:
    return Facility(
        id=str(row["id"]),
        name=row["name"],
        address=row.get("address") or "",
        coords=Coordinate(latitude=float(row["latitude"]), longitude=float(row["longitude"])),
        rating=_blank_to_none(row.get("rating")),
        total_reviews=_blank_to_none(row.get("total_reviews")),
        delivery_time=_blank_to_none(row.get("delivery_time")),
        phone=_blank_to_none(row.get("phone")),
        is_active=_flag(row.get("is_active"), True),
    )


def listing_from_rows(
    stock: Dict[str, Any],
    medicine: Dict[str, Any],
    pharmacy: Dict[str, Any],
) -> InventoryListing:
    return InventoryListing(
        id=str(stock["id"]),
        medicine_id=str(medicine["id"]),
        name=medicine["name"],
        brand=_blank_to_none(medicine.get("brand")),
        category=medicine.get("category") or "",
        strength=_blank_to_none(medicine.get("strength")),
        form=_blank_to_none(medicine.get("form")),
        manufacturer=_blank_to_none(medicine.get("manufacturer")),
        requires_prescription=_flag(medicine.get("requires_prescription"), False),
        pharmacy_id=str(pharmacy["id"]),
        pharmacy_name=pharmacy["name"],
        pharmacy_address=pharmacy.get("address") or "",
        pharmacy_rating=_blank_to_none(pharmacy.get("rating")),
        pharmacy_reviews=_blank_to_none(pharmacy.get("total_reviews")),
        pharmacy_delivery_time=_blank_to_none(pharmacy.get("delivery_time")),
        pharmacy_phone=_blank_to_none(pharmacy.get("phone")),
        price=float(stock["price"]),
        original_price=_blank_to_none(stock.get("original_price")),
        stock_quantity=_blank_to_none(stock.get("stock_quantity")) or 0,
        is_available=_flag(stock.get("is_available"), True),
    )


class CsvInventoryStore:
    """Reads ``pharmacies.csv``, ``medicines.csv`` and ``pharmacy_inventory.csv`` from a directory."""

    def __init__(self, directory: str) -> None:
        self.directory = directory

    def _read_rows(self, filename: str) -> List[Dict[str, str]]:
        path = os.path.join(self.directory, filename)
        try:
            with open(path, newline="", encoding="utf-8") as fh:
                return list(csv.DictReader(fh))
        except OSError as exc:
            raise QueryFailed(f"Could not read {path}: {exc}") from exc

    def list_facilities(self) -> List[Facility]:
        facilities = []
        for row in self._read_rows("pharmacies.csv"):
            try:
                facility = facility_from_row(row)
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed pharmacy row", row_id=row.get("id"))
                continue
            if facility.is_active:
                facilities.append(facility)
        return facilities

    def query_listings(self, facility_ids: Optional[Set[str]] = None) -> List[InventoryListing]:
        medicines = {row["id"]: row for row in self._read_rows("medicines.csv")}
        pharmacies = {row["id"]: row for row in self._read_rows("pharmacies.csv")}

        listings = []
        for stock in self._read_rows("pharmacy_inventory.csv"):
            pharmacy_id = stock.get("pharmacy_id")
            if facility_ids is not None and pharmacy_id not in facility_ids:
                continue
            medicine = medicines.get(stock.get("medicine_id"))
            pharmacy = pharmacies.get(pharmacy_id)
            if medicine is None or pharmacy is None:
                continue
            if not _flag(pharmacy.get("is_active"), True):
                continue
            try:
                listing = listing_from_rows(stock, medicine, pharmacy)
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed inventory row", row_id=stock.get("id"))
                continue
            if listing.is_available:
                listings.append(listing)
        return listings

    def list_categories(self) -> List[str]:
        return sorted({row["category"] for row in self._read_rows("medicines.csv") if row.get("category")})


class RestInventoryStore:
    """Reads the ``pharmacies``, ``medicines`` and ``pharmacy_inventory`` tables over PostgREST."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Optional[requests.Session] = None,
        timeout: float = 25.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session or get_session()
        self.timeout = timeout

    def _get(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        try:
            resp = self.session.get(
                f"{self.base_url}/rest/v1/{table}",
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
            resp.raise_for_status()
            rows = resp.json()
        except requests.RequestException as exc:
            raise QueryFailed(f"Query on {table} failed: {exc}") from exc
        except ValueError as exc:
            raise QueryFailed(f"Query on {table} returned invalid JSON: {exc}") from exc
        if not isinstance(rows, list):
            raise QueryFailed(f"Query on {table} returned an unexpected payload")
        return rows

    def list_facilities(self) -> List[Facility]:
        facilities = []
        for row in self._get("pharmacies", {"select": "*", "is_active": "eq.true"}):
            try:
                facilities.append(facility_from_row(row))
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed pharmacy row", row_id=row.get("id"))
        return facilities

    def query_listings(self, facility_ids: Optional[Set[str]] = None) -> List[InventoryListing]:
        params = {
            "select": "*,medicines(*),pharmacies(*)",
            "is_available": "eq.true",
            "pharmacies.is_active": "eq.true",
        }
        if facility_ids is not None:
            params["pharmacy_id"] = f"in.({','.join(sorted(facility_ids))})"

        listings = []
        for row in self._get("pharmacy_inventory", params):
            medicine = row.get("medicines")
            pharmacy = row.get("pharmacies")
            if not medicine or not pharmacy:
                continue
            try:
                listings.append(listing_from_rows(row, medicine, pharmacy))
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed inventory row", row_id=row.get("id"))
        return listings

    def list_categories(self) -> List[str]:
        rows = self._get("medicines", {"select": "category"})
        return sorted({row["category"] for row in rows if row.get("category")})


def get_inventory_store(settings: Optional[CarePointSettings] = None) -> InventoryStore:
    settings = settings or get_settings()
    if settings.inventory_backend == "rest":
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required for the rest inventory backend")
        return RestInventoryStore(settings.supabase_url, settings.supabase_key, timeout=settings.http_timeout)
    return CsvInventoryStore(settings.inventory_dir)


def matches_text(listing: InventoryListing, text: Optional[str]) -> bool:
    if not text or not text.strip():
        return True
    needle = text.strip().lower()
    return any(needle in (field or "").lower() for field in (listing.name, listing.brand, listing.category))


def matches_category(listing: InventoryListing, category: Optional[str]) -> bool:
    if not category or category.lower() == ALL_CATEGORIES.lower():
        return True
    return listing.category.lower() == category.lower()


def facilities_within(
    facilities: Iterable[Facility],
    origin: Coordinate,
    max_distance_km: float,
) -> List[Tuple[Facility, float]]:
    """Facilities no further than ``max_distance_km`` from ``origin``, nearest first."""
    ranked = [(facility, distance_km(origin, facility.coords)) for facility in facilities]
    nearby = [(facility, d) for facility, d in ranked if d <= max_distance_km]
    nearby.sort(key=lambda pair: pair[1])
    return nearby


def sort_listings(listings: Iterable[InventoryListing], sort_key: SortKey) -> List[InventoryListing]:
    if sort_key is SortKey.PRICE_LOW:
        return sorted(listings, key=lambda l: l.price)
    if sort_key is SortKey.PRICE_HIGH:
        return sorted(listings, key=lambda l: l.price, reverse=True)
    if sort_key is SortKey.RATING:
        return sorted(listings, key=lambda l: l.pharmacy_rating or 0.0, reverse=True)
    if sort_key is SortKey.DELIVERY:
        return sorted(listings, key=lambda l: l.pharmacy_delivery_time or "")
    # listings without a distance keep their order after those with one
    return sorted(listings, key=lambda l: (l.distance_km is None, l.distance_km or 0.0))


class InventoryMatcher:
    """Searches medicine stock and keeps the last good result set."""

    def __init__(self, store: InventoryStore) -> None:
        self.store = store
        self.results: List[InventoryListing] = []
        self.error: Optional[str] = None
        self.is_loading = False

    def _run_search(self, search_filter: SearchFilter) -> List[InventoryListing]:
        distances: Optional[Dict[str, float]] = None
        if search_filter.user_location is not None:
            nearby = facilities_within(
                self.store.list_facilities(),
                search_filter.user_location,
                search_filter.max_distance_km,
            )
            if not nearby:
                logger.info("No pharmacies within range", max_distance_km=search_filter.max_distance_km)
                return []
            distances = {facility.id: d for facility, d in nearby}
            listings = self.store.query_listings(set(distances))
        else:
            listings = self.store.query_listings(None)

        matched = [
            listing
            for listing in listings
            if listing.is_available
            and matches_text(listing, search_filter.text)
            and matches_category(listing, search_filter.category)
        ]
        if distances is not None:
            matched = [
                listing.model_copy(update={"distance_km": distances.get(listing.pharmacy_id)})
                for listing in matched
            ]
        return sort_listings(matched, search_filter.sort_key)

    async def search(self, search_filter: SearchFilter) -> List[InventoryListing]:
        """Run a search. On failure ``error`` is set and the previous results are kept."""
        self.is_loading = True
        self.error = None
        try:
            results = await asyncio.to_thread(self._run_search, search_filter)
        except QueryFailed as exc:
            logger.warning("Medicine search failed", error=str(exc))
            self.error = SEARCH_FAILED_MESSAGE
            return self.results
        finally:
            self.is_loading = False

        logger.info(
            "Medicine search completed",
            text=search_filter.text,
            category=search_filter.category,
            sort_key=search_filter.sort_key.value,
            results=len(results),
        )
        self.results = results
        return results

    async def categories(self) -> List[str]:
        try:
            categories = await asyncio.to_thread(self.store.list_categories)
        except QueryFailed as exc:
            logger.warning("Could not load medicine categories", error=str(exc))
            categories = []
        return [ALL_CATEGORIES] + categories
