from .state import CareState, get_initial_state
from .care_workflow import CareFinderWorkflow

__all__ = [
    "CareState",
    "get_initial_state",
    "CareFinderWorkflow",
]
