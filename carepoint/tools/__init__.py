from .location_tools import (
    LocationResolver,
    LocationState,
    Permission,
    ResolvedLocation,
    StaticPositionProvider,
    reverse_geocode,
)
from .poi_tools import POICategory, POIFetcher, PointOfInterest, nearest_facility, search_nearby
from .routing_tools import Platform, Route, RouteStep, RoutingResolver, open_in_external_maps
from .inventory_tools import (
    InventoryListing,
    InventoryMatcher,
    SearchFilter,
    SortKey,
    get_inventory_store,
)

__all__ = [
    "LocationResolver",
    "LocationState",
    "Permission",
    "ResolvedLocation",
    "StaticPositionProvider",
    "reverse_geocode",
    "POICategory",
    "POIFetcher",
    "PointOfInterest",
    "nearest_facility",
    "search_nearby",
    "Platform",
    "Route",
    "RouteStep",
    "RoutingResolver",
    "open_in_external_maps",
    "InventoryListing",
    "InventoryMatcher",
    "SearchFilter",
    "SortKey",
    "get_inventory_store",
]
