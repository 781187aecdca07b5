from .care_nodes import CareNodes, detect_intent, route_after_locate, route_after_search

__all__ = [
    "CareNodes",
    "detect_intent",
    "route_after_locate",
    "route_after_search",
]
