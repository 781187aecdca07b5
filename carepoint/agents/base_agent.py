from typing import Any, Dict, List, Optional

import structlog

from carepoint.tools.poi_tools import POICategory, POIFetcher, PointOfInterest
from carepoint.utils.geo import format_distance

logger = structlog.get_logger(__name__)


class BaseAgent:
    """Minimal base agent used by CarePoint agents."""

    def __init__(self, agent_name: str = "base_agent") -> None:
        self.agent_name = agent_name

    def get_result_key(self) -> str:
        return f"{self.agent_name}_result"

    async def process_query(self, query: str, state: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        raise NotImplementedError()


class NearbyFacilityAgent(BaseAgent):
    """Shared behaviour for the pharmacy and hospital finders."""

    category: POICategory = POICategory.PHARMACY
    noun_plural: str = "facilities"
    max_listed: int = 3

    def __init__(self, agent_name: str, fetcher: Optional[POIFetcher] = None) -> None:
        super().__init__(agent_name=agent_name)
        self.fetcher = fetcher or POIFetcher()

    def describe(self, poi: PointOfInterest) -> List[str]:
        lines = [f"- Address: {poi.address}"]
        if poi.phone:
            lines.append(f"- Phone: {poi.phone}")
        if poi.opening_hours:
            lines.append(f"- Hours: {poi.opening_hours}")
        return lines

    def format_results(self, pois: List[PointOfInterest]) -> str:
        parts = [f"I found {len(pois)} {self.noun_plural} near you!\n"]
        for index, poi in enumerate(pois[: self.max_listed], start=1):
            distance = format_distance(poi.distance_km) if poi.distance_km is not None else "?"
            parts.append(f"{index}. **{poi.name}** ({distance} away)")
            parts.extend(f"   {line}" for line in self.describe(poi))
        return "\n".join(parts)

    async def process_query(self, query: str, state: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        center = state.get("user_location") if state else None
        radius_km = state.get("radius_km") if state else None
        logger.info(
            f"{type(self).__name__}.process_query called",
            query=query,
            has_location=center is not None,
            radius_km=radius_km,
        )

        if center is None:
            return {
                "success": False,
                self.get_result_key(): f"I need your location to find nearby {self.noun_plural}.",
                "facilities": [],
                "error": ["Location not available"],
            }

        pois = await self.fetcher.search_nearby(center, radius_km, self.category)
        if self.fetcher.error:
            return {
                "success": False,
                self.get_result_key(): self.fetcher.error,
                "facilities": [],
                "error": [self.fetcher.error],
            }

        if not pois:
            logger.info("No facilities returned", category=self.category.value)
            return {
                "success": True,
                self.get_result_key(): f"No {self.noun_plural} found nearby. Try a larger search radius.",
                "facilities": [],
                "error": [],
            }

        logger.info("Nearby search succeeded", category=self.category.value, count=len(pois), nearest=pois[0].name)
        return {
            "success": True,
            self.get_result_key(): self.format_results(pois),
            "facilities": pois,
            "error": [],
        }
