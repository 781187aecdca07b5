"""Medicine availability search agent."""

import re
from typing import Any, Dict, List, Optional

import structlog

from carepoint.agents.agent_types import MEDICINE_AGENT_NAME
from carepoint.agents.base_agent import BaseAgent
from carepoint.tools.inventory_tools import InventoryListing, InventoryMatcher, SearchFilter, SortKey
from carepoint.utils.geo import format_distance

logger = structlog.get_logger(__name__)

_FILLER_WORDS = {
    "find", "search", "buy", "order", "need", "want", "get", "show", "me", "i",
    "a", "an", "the", "for", "of", "some", "medicine", "medicines", "tablet",
    "tablets", "near", "nearby", "around", "price", "prices", "cheapest", "available",
}


def extract_search_text(query: str) -> str:
    """Drop filler words from a free-text request, keeping the medicine terms."""
    words = re.findall(r"[\w&+-]+", query.lower())
    return " ".join(w for w in words if w not in _FILLER_WORDS)


class MedicineSearchAgent(BaseAgent):
    """Finds which nearby pharmacies stock a medicine and at what price."""

    max_listed = 5

    def __init__(self, matcher: InventoryMatcher, max_distance_km: float = 10.0) -> None:
        super().__init__(agent_name=MEDICINE_AGENT_NAME)
        self.matcher = matcher
        self.max_distance_km = max_distance_km

    def format_results(self, listings: List[InventoryListing]) -> str:
        parts = [f"{len(listings)} matching listings:\n"]
        for listing in listings[: self.max_listed]:
            line = f"- **{listing.name}**"
            if listing.brand:
                line += f" ({listing.brand})"
            line += f" at {listing.pharmacy_name}: ₹{listing.price:.2f}"
            if listing.distance_km is not None:
                line += f", {format_distance(listing.distance_km)} away"
            if listing.requires_prescription:
                line += " [prescription required]"
            parts.append(line)
        return "\n".join(parts)

    async def process_query(self, query: str, state: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        state = state or {}
        search_filter = SearchFilter(
            text=state.get("search_text") or extract_search_text(query),
            category=state.get("category"),
            sort_key=state.get("sort_key") or SortKey.DISTANCE,
            user_location=state.get("user_location"),
            max_distance_km=state.get("max_distance_km") or self.max_distance_km,
        )
        logger.info("MedicineSearchAgent.process_query called", text=search_filter.text)

        listings = await self.matcher.search(search_filter)
        if self.matcher.error:
            return {
                "success": False,
                self.get_result_key(): self.matcher.error,
                "listings": listings,
                "error": [self.matcher.error],
            }
        if not listings:
            return {
                "success": True,
                self.get_result_key(): "No pharmacies nearby have that medicine in stock.",
                "listings": [],
                "error": [],
            }
        return {
            "success": True,
            self.get_result_key(): self.format_results(listings),
            "listings": listings,
            "error": [],
        }
