"""State definitions for the CarePoint workflow."""

import operator
from typing import Annotated, List, Optional

from typing_extensions import TypedDict

from carepoint.tools.inventory_tools import InventoryListing
from carepoint.tools.poi_tools import PointOfInterest
from carepoint.tools.routing_tools import Route
from carepoint.utils.geo import Coordinate


class CareState(TypedDict):
    """State shared across all nodes in the CarePoint workflow."""

    user_query: str
    user_intent: str
    radius_km: Optional[float]

    user_location: Optional[Coordinate]
    formatted_address: Optional[str]

    facilities: List[PointOfInterest]
    listings: List[InventoryListing]
    selected_facility: Optional[PointOfInterest]
    route: Optional[Route]

    # operator.add concatenates what each node appends
    messages: Annotated[List[str], operator.add]
    error: Annotated[List[str], operator.add]


def get_initial_state(query: str = "", radius_km: Optional[float] = None) -> CareState:
    """Get a blank CarePoint state for one query."""
    return CareState(
        user_query=query,
        user_intent="unknown",
        radius_km=radius_km,
        user_location=None,
        formatted_address=None,
        facilities=[],
        listings=[],
        selected_facility=None,
        route=None,
        messages=[],
        error=[],
    )
