from .base_agent import BaseAgent, NearbyFacilityAgent
from .location_agent import LocationAgent
from .pharmacy_agent import PharmacyFinderAgent
from .hospital_agent import HospitalFinderAgent
from .medicine_agent import MedicineSearchAgent
from .directions_agent import DirectionsAgent
from .agent_types import (
    LOCATION_AGENT_NAME,
    PHARMACY_AGENT_NAME,
    HOSPITAL_AGENT_NAME,
    MEDICINE_AGENT_NAME,
    DIRECTIONS_AGENT_NAME,
)

__all__ = [
    "BaseAgent",
    "NearbyFacilityAgent",
    "LocationAgent",
    "PharmacyFinderAgent",
    "HospitalFinderAgent",
    "MedicineSearchAgent",
    "DirectionsAgent",
    "LOCATION_AGENT_NAME",
    "PHARMACY_AGENT_NAME",
    "HOSPITAL_AGENT_NAME",
    "MEDICINE_AGENT_NAME",
    "DIRECTIONS_AGENT_NAME",
]
