import asyncio
from unittest.mock import MagicMock

import pytest
import requests

from carepoint.errors import NetworkFailure, NoNearbyFacilities
from carepoint.tools.poi_tools import (
    POICategory,
    POIFetcher,
    build_address,
    build_overpass_query,
    nearest_facility,
    normalize_element,
    search_nearby,
    OverpassElement,
)
from carepoint.utils.geo import Coordinate
from conftest import make_response

NEW_YORK = Coordinate(latitude=40.7128, longitude=-74.0060)


def _node(element_id, lat, lon, **tags):
    return {"type": "node", "id": element_id, "lat": lat, "lon": lon, "tags": tags}


def test_build_overpass_query_for_pharmacies():
    query = build_overpass_query(NEW_YORK, 5, POICategory.PHARMACY)
    assert query.startswith("[out:json][timeout:25];")
    assert query.endswith("out center meta;")
    assert 'node["amenity"="pharmacy"](around:5000,40.7128,-74.006);' in query
    assert 'way["amenity"="pharmacy"]' in query
    assert 'relation["amenity"="pharmacy"]' in query
    assert "hospital" not in query


def test_build_overpass_query_for_hospitals_includes_clinics():
    query = build_overpass_query(NEW_YORK, 10, POICategory.HOSPITAL_OR_CLINIC)
    assert "(around:10000," in query
    assert '["amenity"="hospital"]' in query
    assert '["amenity"="clinic"]' in query


def test_node_without_coordinates_is_dropped():
    raw = {"type": "node", "id": 1, "tags": {"name": "Ghost Pharmacy"}}
    assert normalize_element(raw, NEW_YORK, POICategory.PHARMACY) is None


def test_way_with_center_is_kept():
    raw = {
        "type": "way",
        "id": 42,
        "center": {"lat": 40.7130, "lon": -74.0050},
        "tags": {"name": "Corner Drugs"},
    }
    poi = normalize_element(raw, NEW_YORK, POICategory.PHARMACY)
    assert poi is not None
    assert poi.id == "way_42"
    assert poi.coords == Coordinate(latitude=40.7130, longitude=-74.0050)
    assert poi.distance_km is not None and poi.distance_km < 0.2


def test_way_without_center_is_dropped():
    raw = {"type": "way", "id": 43, "tags": {"name": "No Center"}}
    assert normalize_element(raw, NEW_YORK, POICategory.PHARMACY) is None


def test_name_falls_back_to_brand_then_unknown():
    branded = normalize_element(_node(1, 40.71, -74.0, brand="Duane Reade"), NEW_YORK, POICategory.PHARMACY)
    unnamed = normalize_element(_node(2, 40.71, -74.0), NEW_YORK, POICategory.PHARMACY)
    hospital = normalize_element(_node(3, 40.71, -74.0), NEW_YORK, POICategory.HOSPITAL_OR_CLINIC)
    assert branded.name == "Duane Reade"
    assert unnamed.name == "Unknown Pharmacy"
    assert hospital.name == "Unknown Hospital"


def test_missing_tags_are_tolerated():
    raw = {"type": "node", "id": 9, "lat": 40.71, "lon": -74.0, "tags": None}
    poi = normalize_element(raw, NEW_YORK, POICategory.PHARMACY)
    assert poi.name == "Unknown Pharmacy"
    assert poi.address == "Address not available"


@pytest.mark.parametrize(
    "tags,expected",
    [
        ({"addr:housenumber": "12", "addr:street": "Broadway", "addr:city": "New York"}, "12 Broadway, New York"),
        ({"addr:street": "Broadway"}, "Broadway"),
        ({"addr:suburb": "SoHo", "addr:city": "New York"}, "SoHo, New York"),
        ({}, "Address not available"),
    ],
)
def test_build_address(tags, expected):
    element = OverpassElement(type="node", id=1, lat=0.0, lon=0.0, tags=tags)
    assert build_address(element) == expected


def test_hospital_fields():
    raw = _node(
        7,
        40.72,
        -74.0,
        name="City Hospital",
        emergency="yes",
        **{"healthcare:speciality": "cardiology; orthopaedics", "medical_system": "western"},
    )
    poi = normalize_element(raw, NEW_YORK, POICategory.HOSPITAL_OR_CLINIC)
    assert poi.emergency is True
    assert poi.specialties == ["cardiology", "orthopaedics", "western"]


def test_pharmacy_has_no_hospital_fields():
    poi = normalize_element(_node(8, 40.72, -74.0, emergency="yes"), NEW_YORK, POICategory.PHARMACY)
    assert poi.emergency is None
    assert poi.specialties is None


def test_search_nearby_sorts_by_distance(settings):
    session = MagicMock()
    session.post.return_value = make_response(
        {
            "elements": [
                _node(1, 40.7128 + 0.045, -74.0060, name="Five"),
                _node(2, 40.7128 + 0.009, -74.0060, name="One"),
                _node(3, 40.7128 + 0.027, -74.0060, name="Three"),
            ]
        }
    )

    pois = asyncio.run(search_nearby(NEW_YORK, 5, POICategory.PHARMACY, session=session, settings=settings))

    assert [p.name for p in pois] == ["One", "Three", "Five"]
    args, kwargs = session.post.call_args
    assert args[0] == settings.overpass_url
    assert kwargs["data"]["data"].startswith("[out:json]")


def test_search_nearby_caps_pharmacy_results(settings):
    elements = [_node(i, 40.7128 + (25 - i) * 0.001, -74.0060, name=f"P{i}") for i in range(25)]
    session = MagicMock()
    session.post.return_value = make_response({"elements": elements})

    pois = asyncio.run(search_nearby(NEW_YORK, 5, POICategory.PHARMACY, session=session, settings=settings))

    assert len(pois) == 20
    distances = [p.distance_km for p in pois]
    assert distances == sorted(distances)


def test_search_nearby_caps_hospital_results(settings):
    elements = [_node(i, 40.7128 + i * 0.001, -74.0060) for i in range(25)]
    session = MagicMock()
    session.post.return_value = make_response({"elements": elements})

    pois = asyncio.run(
        search_nearby(NEW_YORK, 10, POICategory.HOSPITAL_OR_CLINIC, session=session, settings=settings)
    )

    assert len(pois) == 15


def test_search_nearby_raises_on_http_error(settings):
    session = MagicMock()
    session.post.return_value = make_response(status_code=429)

    with pytest.raises(NetworkFailure):
        asyncio.run(search_nearby(NEW_YORK, 5, POICategory.PHARMACY, session=session, settings=settings))


def test_fetcher_uses_default_radius(settings):
    session = MagicMock()
    session.post.return_value = make_response({"elements": []})
    fetcher = POIFetcher(session=session, settings=settings)

    asyncio.run(fetcher.search_nearby(NEW_YORK, category=POICategory.HOSPITAL_OR_CLINIC))

    query = session.post.call_args.kwargs["data"]["data"]
    assert "(around:10000," in query


def test_fetcher_failure_clears_results(settings):
    session = MagicMock()
    session.post.return_value = make_response({"elements": [_node(1, 40.713, -74.006, name="Kept")]})
    fetcher = POIFetcher(session=session, settings=settings)
    asyncio.run(fetcher.search_nearby(NEW_YORK, 5))
    assert len(fetcher.results) == 1

    session.post.side_effect = requests.ConnectionError("offline")
    results = asyncio.run(fetcher.search_nearby(NEW_YORK, 5))

    assert results == []
    assert fetcher.results == []
    assert fetcher.error == "Failed to find nearby pharmacies. Please try again."
    assert fetcher.is_loading is False


def test_fetcher_failure_message_for_hospitals(settings):
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("offline")
    fetcher = POIFetcher(session=session, settings=settings)

    asyncio.run(fetcher.search_nearby(NEW_YORK, category=POICategory.HOSPITAL_OR_CLINIC))

    assert fetcher.error == "Failed to find nearby hospitals. Please try again."


def test_nearest_facility():
    pois = [
        normalize_element(_node(1, 40.74, -74.006, name="Far"), NEW_YORK, POICategory.PHARMACY),
        normalize_element(_node(2, 40.713, -74.006, name="Near"), NEW_YORK, POICategory.PHARMACY),
    ]
    assert nearest_facility(pois).name == "Near"


def test_nearest_facility_requires_results():
    with pytest.raises(NoNearbyFacilities):
        nearest_facility([])
