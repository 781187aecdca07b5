"""CarePoint workflow: locate the user, search nearby, route to the nearest.

                    ┌──────────┐
                    │  START   │
                    └────┬─────┘
                         │
                    ┌────▼─────┐
                    │  locate  │── no location (except medicines) ──▶ END
                    └────┬─────┘
          ┌──────────────┼───────────────┐
          │              │               │
   ┌──────▼─────┐ ┌──────▼─────┐ ┌───────▼──────┐
   │ pharmacies │ │ hospitals  │ │  medicines   │──▶ END
   └──────┬─────┘ └──────┬─────┘ └──────────────┘
          └──────┬───────┘
          ┌──────▼─────┐
          │ directions │── nothing found ──▶ END
          └──────┬─────┘
                 ▼
                END
"""

import asyncio
from typing import Optional

import structlog
from langgraph.graph import END, START, StateGraph
from langgraph.graph.state import CompiledStateGraph

from carepoint.nodes.care_nodes import (
    INTENT_HOSPITAL,
    INTENT_MEDICINE,
    INTENT_PHARMACY,
    CareNodes,
    route_after_locate,
    route_after_search,
)
from carepoint.workflows.state import CareState, get_initial_state

logger = structlog.get_logger(__name__)


class CareFinderWorkflow:
    """LangGraph workflow wiring the location, search and directions agents."""

    def __init__(self, nodes: CareNodes) -> None:
        self.nodes = nodes
        self.workflow = self._create_workflow()
        logger.info("CareFinderWorkflow initialized")

    def _create_workflow(self) -> CompiledStateGraph:
        graph = StateGraph(CareState)

        graph.add_node("locate", self.nodes.locate)
        graph.add_node("pharmacies", self.nodes.find_pharmacies)
        graph.add_node("hospitals", self.nodes.find_hospitals)
        graph.add_node("medicines", self.nodes.search_medicines)
        graph.add_node("directions", self.nodes.directions)

        graph.add_edge(START, "locate")
        graph.add_conditional_edges(
            "locate",
            route_after_locate,
            {
                INTENT_PHARMACY: "pharmacies",
                INTENT_HOSPITAL: "hospitals",
                INTENT_MEDICINE: "medicines",
                "end": END,
            },
        )
        for search_node in ("pharmacies", "hospitals"):
            graph.add_conditional_edges(
                search_node,
                route_after_search,
                {"directions": "directions", "end": END},
            )
        graph.add_edge("medicines", END)
        graph.add_edge("directions", END)

        return graph.compile()

    async def arun(self, query: str, radius_km: Optional[float] = None) -> CareState:
        """Run one query through the graph and return the final state."""
        logger.info("CareFinderWorkflow run started", query=query)
        final_state = await self.workflow.ainvoke(get_initial_state(query, radius_km=radius_km))
        logger.info(
            "CareFinderWorkflow run finished",
            intent=final_state.get("user_intent"),
            facilities=len(final_state.get("facilities") or []),
            errors=final_state.get("error"),
        )
        return final_state

    def run(self, query: str, radius_km: Optional[float] = None) -> CareState:
        return asyncio.run(self.arun(query, radius_km=radius_km))

    @staticmethod
    def render(state: CareState) -> str:
        return "\n\n".join(m for m in state.get("messages", []) if m)
