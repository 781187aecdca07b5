"""Agent type constants for CarePoint."""

from typing import Final

LOCATION_AGENT_NAME: Final[str] = "location"
PHARMACY_AGENT_NAME: Final[str] = "pharmacy_finder"
HOSPITAL_AGENT_NAME: Final[str] = "hospital_finder"
MEDICINE_AGENT_NAME: Final[str] = "medicine_search"
DIRECTIONS_AGENT_NAME: Final[str] = "directions"
