import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

# Ensure the project root is on sys.path for direct pytest runs
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from carepoint.config import CarePointSettings  # noqa: E402
from carepoint.utils.geo import Coordinate  # noqa: E402


def make_response(payload=None, status_code=200):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Server Error")
    else:
        resp.raise_for_status.return_value = None
    return resp


@pytest.fixture
def settings():
    return CarePointSettings(geolocation_timeout=1.0)


@pytest.fixture
def t_nagar():
    return Coordinate(latitude=13.0418, longitude=80.2341)


@pytest.fixture
def adyar():
    return Coordinate(latitude=13.0012, longitude=80.2565)
