"""Runtime configuration for CarePoint, read from the environment.

Values can come from a ``.env`` file; the CLI calls ``load_dotenv()`` before
building settings.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_INVENTORY_DIR = os.path.normpath(os.path.join(os.path.dirname(__file__), "data"))


def as_bool(val: Optional[str], default: bool = False) -> bool:
    if val is None or val == "":
        return default
    return str(val).strip().lower() in ("1", "true", "yes", "on", "t")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class CarePointSettings(BaseModel):
    """Endpoints, credentials and policy values used by the lookup tools."""

    nominatim_url: str = "https://nominatim.openstreetmap.org/reverse"
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    ors_directions_url: str = "https://api.openrouteservice.org/v2/directions/driving-car"
    ors_api_key: Optional[str] = None
    user_agent: str = "carepoint/0.1 (+https://github.com/carepoint)"
    http_timeout: float = Field(default=25.0, gt=0)

    # Geolocation policy
    geolocation_timeout: float = Field(default=10.0, gt=0)
    geolocation_max_age: float = Field(default=300.0, ge=0)

    # Assumed average speed for straight-line route estimates
    fallback_speed_kmh: float = Field(default=50.0, gt=0)

    pharmacy_limit: int = Field(default=20, ge=1)
    hospital_limit: int = Field(default=15, ge=1)
    pharmacy_radius_km: float = Field(default=5.0, gt=0)
    hospital_radius_km: float = Field(default=10.0, gt=0)
    max_distance_km: float = Field(default=10.0, gt=0)

    inventory_backend: str = "csv"
    inventory_dir: str = DEFAULT_INVENTORY_DIR
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None


def get_settings() -> CarePointSettings:
    """Build settings from environment variables, falling back to defaults."""
    defaults = CarePointSettings()
    return CarePointSettings(
        nominatim_url=os.environ.get("CAREPOINT_NOMINATIM_URL", defaults.nominatim_url),
        overpass_url=os.environ.get("CAREPOINT_OVERPASS_URL", defaults.overpass_url),
        ors_directions_url=os.environ.get("CAREPOINT_ORS_URL", defaults.ors_directions_url),
        ors_api_key=os.environ.get("ORS_API_KEY") or None,
        user_agent=os.environ.get("CAREPOINT_USER_AGENT", defaults.user_agent),
        http_timeout=_env_float("CAREPOINT_HTTP_TIMEOUT", defaults.http_timeout),
        geolocation_timeout=_env_float("CAREPOINT_GEOLOCATION_TIMEOUT", defaults.geolocation_timeout),
        geolocation_max_age=_env_float("CAREPOINT_GEOLOCATION_MAX_AGE", defaults.geolocation_max_age),
        fallback_speed_kmh=_env_float("CAREPOINT_FALLBACK_SPEED_KMH", defaults.fallback_speed_kmh),
        pharmacy_limit=_env_int("CAREPOINT_PHARMACY_LIMIT", defaults.pharmacy_limit),
        hospital_limit=_env_int("CAREPOINT_HOSPITAL_LIMIT", defaults.hospital_limit),
        pharmacy_radius_km=_env_float("CAREPOINT_PHARMACY_RADIUS_KM", defaults.pharmacy_radius_km),
        hospital_radius_km=_env_float("CAREPOINT_HOSPITAL_RADIUS_KM", defaults.hospital_radius_km),
        max_distance_km=_env_float("CAREPOINT_MAX_DISTANCE_KM", defaults.max_distance_km),
        inventory_backend=os.environ.get("CAREPOINT_INVENTORY_BACKEND", defaults.inventory_backend).lower(),
        inventory_dir=os.environ.get("CAREPOINT_INVENTORY_DIR", defaults.inventory_dir),
        supabase_url=os.environ.get("SUPABASE_URL") or None,
        supabase_key=os.environ.get("SUPABASE_ANON_KEY") or None,
    )
