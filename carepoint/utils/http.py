"""Shared HTTP session for the lookup tools."""

from typing import Dict

import requests

from carepoint.config import CarePointSettings

_session = requests.Session()


def get_session() -> requests.Session:
    return _session


def default_headers(settings: CarePointSettings) -> Dict[str, str]:
    # Nominatim and Overpass both ask clients to identify themselves.
    return {"User-Agent": settings.user_agent}
