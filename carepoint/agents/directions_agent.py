"""Directions agent: routes the user to the nearest facility found."""

from typing import Any, Dict, Optional

import structlog

from carepoint.agents.agent_types import DIRECTIONS_AGENT_NAME
from carepoint.agents.base_agent import BaseAgent
from carepoint.errors import NoNearbyFacilities
from carepoint.tools.poi_tools import nearest_facility
from carepoint.tools.routing_tools import RoutingResolver
from carepoint.utils.geo import format_duration

logger = structlog.get_logger(__name__)


class DirectionsAgent(BaseAgent):
    def __init__(self, resolver: Optional[RoutingResolver] = None) -> None:
        super().__init__(agent_name=DIRECTIONS_AGENT_NAME)
        self.resolver = resolver or RoutingResolver()

    async def process_query(self, query: str, state: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        state = state or {}
        origin = state.get("user_location")
        try:
            facility = nearest_facility(state.get("facilities") or [])
        except NoNearbyFacilities as exc:
            return {
                "success": False,
                self.get_result_key(): "There is no nearby facility to route to.",
                "route": None,
                "selected_facility": None,
                "error": [str(exc)],
            }
        if origin is None:
            return {
                "success": False,
                self.get_result_key(): "I need your location to plan a route.",
                "route": None,
                "selected_facility": facility,
                "error": ["Location not available"],
            }

        route = await self.resolver.get_route(origin, facility.coords)
        message = (
            f"Route to **{facility.name}**: {route.distance_meters / 1000:.1f}km, "
            f"about {format_duration(route.duration_seconds)}."
        )
        if self.resolver.error:
            message += f"\n{self.resolver.error}"

        logger.info("Directions ready", facility=facility.name, estimated=route.is_estimated)
        return {
            "success": True,
            self.get_result_key(): message,
            "route": route,
            "selected_facility": facility,
            "error": [],
        }
