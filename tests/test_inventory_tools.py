import asyncio
from unittest.mock import MagicMock

import pytest

from carepoint.config import DEFAULT_INVENTORY_DIR, CarePointSettings
from carepoint.errors import QueryFailed
from carepoint.tools.inventory_tools import (
    CsvInventoryStore,
    Facility,
    InventoryListing,
    InventoryMatcher,
    RestInventoryStore,
    SearchFilter,
    SortKey,
    facilities_within,
    get_inventory_store,
    sort_listings,
)
from carepoint.utils.geo import Coordinate
from conftest import make_response

FAR_AWAY = Coordinate(latitude=28.6139, longitude=77.2090)


def _listing(listing_id, price, rating=None, delivery=None, distance=None):
    return InventoryListing(
        id=listing_id,
        medicine_id="m",
        name="Paracetamol",
        category="Pain Relief",
        pharmacy_id=f"p-{listing_id}",
        pharmacy_name=f"Pharmacy {listing_id}",
        pharmacy_rating=rating,
        pharmacy_delivery_time=delivery,
        price=price,
        distance_km=distance,
    )


@pytest.fixture
def csv_matcher():
    return InventoryMatcher(CsvInventoryStore(DEFAULT_INVENTORY_DIR))


def test_csv_store_skips_inactive_pharmacies():
    facilities = CsvInventoryStore(DEFAULT_INVENTORY_DIR).list_facilities()
    ids = {f.id for f in facilities}
    assert ids == {"ph-001", "ph-002", "ph-003", "ph-004"}


def test_csv_store_lists_only_available_stock():
    listings = CsvInventoryStore(DEFAULT_INVENTORY_DIR).query_listings({"ph-002"})
    assert {l.id for l in listings} == {"inv-005", "inv-006", "inv-008"}
    assert all(l.is_available for l in listings)


def test_csv_store_categories():
    assert CsvInventoryStore(DEFAULT_INVENTORY_DIR).list_categories() == [
        "Antibiotics",
        "Cold & Flu",
        "Pain Relief",
        "Vitamins",
    ]


def test_csv_store_missing_directory_raises(tmp_path):
    store = CsvInventoryStore(str(tmp_path / "missing"))
    with pytest.raises(QueryFailed):
        store.list_facilities()


def test_facilities_within_sorts_and_filters(t_nagar):
    facilities = CsvInventoryStore(DEFAULT_INVENTORY_DIR).list_facilities()
    nearby = facilities_within(facilities, t_nagar, 6.0)
    assert [f.id for f, _ in nearby] == ["ph-002", "ph-001", "ph-004"]
    distances = [d for _, d in nearby]
    assert distances == sorted(distances)


def test_search_by_text_sorted_by_distance(csv_matcher, t_nagar):
    results = asyncio.run(csv_matcher.search(SearchFilter(text="paracetamol", user_location=t_nagar)))
    assert [r.pharmacy_id for r in results] == ["ph-002", "ph-001", "ph-003"]
    assert results[0].distance_km == pytest.approx(0.0)
    assert csv_matcher.error is None


def test_search_sorted_by_price(csv_matcher, t_nagar):
    results = asyncio.run(
        csv_matcher.search(SearchFilter(text="Crocin", sort_key=SortKey.PRICE_LOW, user_location=t_nagar))
    )
    assert [r.price for r in results] == [29.0, 30.0, 32.5]

    results = asyncio.run(
        csv_matcher.search(SearchFilter(text="Crocin", sort_key=SortKey.PRICE_HIGH, user_location=t_nagar))
    )
    assert [r.price for r in results] == [32.5, 30.0, 29.0]


def test_search_respects_max_distance(csv_matcher, t_nagar):
    results = asyncio.run(
        csv_matcher.search(SearchFilter(text="paracetamol", user_location=t_nagar, max_distance_km=3.0))
    )
    assert [r.id for r in results] == ["inv-005"]


def test_search_skips_unavailable_stock(csv_matcher, t_nagar):
    results = asyncio.run(csv_matcher.search(SearchFilter(text="cetirizine", user_location=t_nagar)))
    assert [r.id for r in results] == ["inv-011"]


def test_search_by_category(csv_matcher, t_nagar):
    results = asyncio.run(csv_matcher.search(SearchFilter(category="Vitamins", user_location=t_nagar)))
    assert {r.id for r in results} == {"inv-003", "inv-010", "inv-013"}

    everything = asyncio.run(csv_matcher.search(SearchFilter(category="All", user_location=t_nagar)))
    assert len(everything) == 13


def test_search_without_location_has_no_distances(csv_matcher):
    results = asyncio.run(csv_matcher.search(SearchFilter(text="ibuprofen")))
    assert {r.id for r in results} == {"inv-006", "inv-012"}
    assert all(r.distance_km is None for r in results)


def test_no_facility_in_range_skips_listing_query():
    store = MagicMock()
    store.list_facilities.return_value = [
        Facility(id="ph-1", name="Delhi Chemist", coords=FAR_AWAY),
    ]
    matcher = InventoryMatcher(store)

    results = asyncio.run(
        matcher.search(SearchFilter(text="paracetamol", user_location=Coordinate(latitude=13.0, longitude=80.2)))
    )

    assert results == []
    store.query_listings.assert_not_called()


def test_failed_search_keeps_previous_results(csv_matcher, t_nagar):
    good = asyncio.run(csv_matcher.search(SearchFilter(text="paracetamol", user_location=t_nagar)))
    assert good

    csv_matcher.store = MagicMock()
    csv_matcher.store.list_facilities.side_effect = QueryFailed("database down")
    results = asyncio.run(csv_matcher.search(SearchFilter(text="ibuprofen", user_location=t_nagar)))

    assert results == good
    assert csv_matcher.results == good
    assert csv_matcher.error == "Search failed. Please try again."
    assert csv_matcher.is_loading is False


def test_categories_start_with_all(csv_matcher):
    categories = asyncio.run(csv_matcher.categories())
    assert categories[0] == "All"
    assert "Pain Relief" in categories


def test_categories_on_failure():
    store = MagicMock()
    store.list_categories.side_effect = QueryFailed("down")
    assert asyncio.run(InventoryMatcher(store).categories()) == ["All"]


def test_sort_listings_by_rating_and_delivery():
    listings = [
        _listing("a", 10.0, rating=4.1, delivery="45-60 min"),
        _listing("b", 12.0, rating=4.6, delivery="20-30 min"),
        _listing("c", 11.0, rating=None, delivery="30-45 min"),
    ]
    assert [l.id for l in sort_listings(listings, SortKey.RATING)] == ["b", "a", "c"]
    assert [l.id for l in sort_listings(listings, SortKey.DELIVERY)] == ["b", "c", "a"]


def test_sort_listings_by_distance_puts_unknown_last():
    listings = [
        _listing("a", 10.0, distance=None),
        _listing("b", 10.0, distance=3.0),
        _listing("c", 10.0, distance=1.0),
    ]
    assert [l.id for l in sort_listings(listings, SortKey.DISTANCE)] == ["c", "b", "a"]


def test_rest_store_queries_inventory_with_embedded_rows():
    session = MagicMock()
    session.get.return_value = make_response(
        [
            {
                "id": "inv-1",
                "pharmacy_id": "ph-1",
                "medicine_id": "med-1",
                "price": 30,
                "stock_quantity": 5,
                "is_available": True,
                "medicines": {"id": "med-1", "name": "Paracetamol", "category": "Pain Relief"},
                "pharmacies": {"id": "ph-1", "name": "Apollo", "latitude": 13.0, "longitude": 80.2, "rating": 4.5},
            },
            {"id": "inv-2", "pharmacy_id": "ph-2", "medicine_id": "med-9", "price": 10, "medicines": None},
        ]
    )
    store = RestInventoryStore("https://example.supabase.co/", "anon-key", session=session)

    listings = store.query_listings({"ph-2", "ph-1"})

    assert [l.id for l in listings] == ["inv-1"]
    assert listings[0].pharmacy_rating == 4.5
    args, kwargs = session.get.call_args
    assert args[0] == "https://example.supabase.co/rest/v1/pharmacy_inventory"
    assert kwargs["params"]["pharmacy_id"] == "in.(ph-1,ph-2)"
    assert kwargs["params"]["is_available"] == "eq.true"
    assert kwargs["headers"]["apikey"] == "anon-key"


def test_rest_store_error_becomes_query_failed():
    session = MagicMock()
    session.get.return_value = make_response(status_code=500)
    store = RestInventoryStore("https://example.supabase.co", "anon-key", session=session)

    with pytest.raises(QueryFailed):
        store.list_facilities()


def test_get_inventory_store_selects_backend():
    assert isinstance(get_inventory_store(CarePointSettings()), CsvInventoryStore)
    rest = get_inventory_store(
        CarePointSettings(inventory_backend="rest", supabase_url="https://x.supabase.co", supabase_key="k")
    )
    assert isinstance(rest, RestInventoryStore)
    with pytest.raises(ValueError):
        get_inventory_store(CarePointSettings(inventory_backend="rest"))
