"""Hospital and clinic finder agent."""

from typing import List, Optional

from carepoint.agents.agent_types import HOSPITAL_AGENT_NAME
from carepoint.agents.base_agent import NearbyFacilityAgent
from carepoint.tools.poi_tools import POICategory, POIFetcher, PointOfInterest


class HospitalFinderAgent(NearbyFacilityAgent):
    """Agent for finding nearby hospitals and clinics."""

    category = POICategory.HOSPITAL_OR_CLINIC
    noun_plural = "hospitals and clinics"

    def __init__(self, fetcher: Optional[POIFetcher] = None) -> None:
        super().__init__(agent_name=HOSPITAL_AGENT_NAME, fetcher=fetcher)

    def describe(self, poi: PointOfInterest) -> List[str]:
        lines = super().describe(poi)
        if poi.emergency:
            lines.append("- Emergency department: yes")
        if poi.specialties:
            lines.append(f"- Specialties: {', '.join(poi.specialties)}")
        return lines
