"""Agent that resolves the user's current location."""

from typing import Any, Dict, Optional

import structlog

from carepoint.agents.agent_types import LOCATION_AGENT_NAME
from carepoint.agents.base_agent import BaseAgent
from carepoint.errors import LocationError
from carepoint.tools.location_tools import LocationResolver

logger = structlog.get_logger(__name__)


class LocationAgent(BaseAgent):
    """Resolves device coordinates into a place description."""

    def __init__(self, resolver: LocationResolver) -> None:
        super().__init__(agent_name=LOCATION_AGENT_NAME)
        self.resolver = resolver

    async def process_query(self, query: str, state: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            location = await self.resolver.resolve_current_location()
        except LocationError as exc:
            logger.warning("LocationAgent could not resolve location", error=exc.user_message)
            return {
                "success": False,
                self.get_result_key(): exc.user_message,
                "user_location": None,
                "formatted_address": None,
                "error": [exc.user_message],
            }

        return {
            "success": True,
            self.get_result_key(): f"Using your location: {location.formatted_address}",
            "user_location": location.coords,
            "formatted_address": location.formatted_address,
            "error": [],
        }
