"""Pharmacy finder agent."""

from typing import Optional

from carepoint.agents.agent_types import PHARMACY_AGENT_NAME
from carepoint.agents.base_agent import NearbyFacilityAgent
from carepoint.tools.poi_tools import POICategory, POIFetcher


class PharmacyFinderAgent(NearbyFacilityAgent):
    """Agent for finding nearby pharmacies and medical shops."""

    category = POICategory.PHARMACY
    noun_plural = "pharmacies"

    def __init__(self, fetcher: Optional[POIFetcher] = None) -> None:
        super().__init__(agent_name=PHARMACY_AGENT_NAME, fetcher=fetcher)
