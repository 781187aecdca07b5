"""Nodes for the CarePoint LangGraph workflow.

  1. locate : LocationAgent resolves the device position
  2. pharmacies / hospitals / medicines : chosen by keyword intent
  3. directions : routes to the nearest facility found in step 2
"""

import time
from typing import Any, Dict

import structlog

from carepoint.agents import (
    DirectionsAgent,
    HospitalFinderAgent,
    LocationAgent,
    MedicineSearchAgent,
    PharmacyFinderAgent,
)

logger = structlog.get_logger(__name__)

INTENT_PHARMACY = "pharmacy"
INTENT_HOSPITAL = "hospital"
INTENT_MEDICINE = "medicine"


def detect_intent(message: str) -> str:
    """Simple keyword-based intent detection for fast routing."""
    q = message.lower()
    if any(k in q for k in ["hospital", "clinic", "icu", "emergency", "doctor", "admission"]):
        return INTENT_HOSPITAL
    if any(k in q for k in ["pharmacy", "pharmacies", "medical shop", "medical store", "chemist", "drugstore"]):
        return INTENT_PHARMACY
    if any(k in q for k in ["medicine", "tablet", "syrup", "capsule", "price", "in stock", "buy"]):
        return INTENT_MEDICINE
    return INTENT_PHARMACY


class CareNodes:
    """Node callables bound to one session's agents.

    Each node takes the current ``CareState`` and returns a partial update.
    """

    def __init__(
        self,
        location_agent: LocationAgent,
        pharmacy_agent: PharmacyFinderAgent,
        hospital_agent: HospitalFinderAgent,
        medicine_agent: MedicineSearchAgent,
        directions_agent: DirectionsAgent,
    ) -> None:
        self.location_agent = location_agent
        self.pharmacy_agent = pharmacy_agent
        self.hospital_agent = hospital_agent
        self.medicine_agent = medicine_agent
        self.directions_agent = directions_agent

    async def locate(self, state: Dict[str, Any]) -> Dict[str, Any]:
        intent = state.get("user_intent", "unknown")
        if intent == "unknown":
            intent = detect_intent(state.get("user_query", ""))
        logger.info("Locate node started", intent=intent)

        result = await self.location_agent.process_query(state.get("user_query", ""), dict(state))
        return {
            "user_intent": intent,
            "user_location": result.get("user_location"),
            "formatted_address": result.get("formatted_address"),
            "messages": [result[self.location_agent.get_result_key()]],
            "error": result.get("error", []),
        }

    async def _find(self, agent, state: Dict[str, Any]) -> Dict[str, Any]:
        t0 = time.time()
        result = await agent.process_query(state.get("user_query", ""), dict(state))
        logger.info(
            "Facility node completed",
            agent=agent.agent_name,
            success=result.get("success"),
            count=len(result.get("facilities", [])),
            elapsed_s=round(time.time() - t0, 2),
        )
        return {
            "facilities": result.get("facilities", []),
            "messages": [result[agent.get_result_key()]],
            "error": result.get("error", []),
        }

    async def find_pharmacies(self, state: Dict[str, Any]) -> Dict[str, Any]:
        return await self._find(self.pharmacy_agent, state)

    async def find_hospitals(self, state: Dict[str, Any]) -> Dict[str, Any]:
        return await self._find(self.hospital_agent, state)

    async def search_medicines(self, state: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.medicine_agent.process_query(state.get("user_query", ""), dict(state))
        return {
            "listings": result.get("listings", []),
            "messages": [result[self.medicine_agent.get_result_key()]],
            "error": result.get("error", []),
        }

    async def directions(self, state: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.directions_agent.process_query(state.get("user_query", ""), dict(state))
        return {
            "route": result.get("route"),
            "selected_facility": result.get("selected_facility"),
            "messages": [result[self.directions_agent.get_result_key()]],
            "error": result.get("error", []),
        }


def route_after_locate(state: Dict[str, Any]) -> str:
    intent = state.get("user_intent") or INTENT_PHARMACY
    # medicine search can still run over the whole catalog without a position
    if state.get("user_location") is None and intent != INTENT_MEDICINE:
        return "end"
    return intent


def route_after_search(state: Dict[str, Any]) -> str:
    return "directions" if state.get("facilities") else "end"
