"""Main entry point for CarePoint, the nearby care finder.

Resolves the user's position, finds nearby pharmacies or hospitals (or
medicine stock at nearby pharmacies) and plans a route to the nearest one.
"""

import os
from typing import Optional

import structlog
from dotenv import load_dotenv

from carepoint.agents import (
    DirectionsAgent,
    HospitalFinderAgent,
    LocationAgent,
    MedicineSearchAgent,
    PharmacyFinderAgent,
)
from carepoint.config import CarePointSettings, get_settings
from carepoint.nodes import CareNodes
from carepoint.tools.inventory_tools import InventoryMatcher, get_inventory_store
from carepoint.tools.location_tools import LocationResolver, StaticPositionProvider
from carepoint.tools.poi_tools import POIFetcher
from carepoint.tools.routing_tools import RoutingResolver, open_in_external_maps
from carepoint.workflows import CareFinderWorkflow

logger = structlog.get_logger(__name__)


def configure_logging() -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            int(os.environ.get("CAREPOINT_LOG_LEVEL_NUM", "20"))  # INFO=20
        ),
    )


def _position_provider(latitude: Optional[float], longitude: Optional[float]) -> Optional[StaticPositionProvider]:
    """Device position from CLI flags, else CAREPOINT_DEVICE_LAT/LON, else none."""
    if latitude is None or longitude is None:
        env_lat = os.environ.get("CAREPOINT_DEVICE_LAT")
        env_lon = os.environ.get("CAREPOINT_DEVICE_LON")
        if not env_lat or not env_lon:
            return None
        latitude, longitude = float(env_lat), float(env_lon)
    return StaticPositionProvider(latitude, longitude)


def create_app(
    settings: Optional[CarePointSettings] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
) -> CareFinderWorkflow:
    """Create the workflow with one session's agents."""
    settings = settings or get_settings()
    nodes = CareNodes(
        location_agent=LocationAgent(LocationResolver(_position_provider(latitude, longitude), settings)),
        pharmacy_agent=PharmacyFinderAgent(POIFetcher(settings=settings)),
        hospital_agent=HospitalFinderAgent(POIFetcher(settings=settings)),
        medicine_agent=MedicineSearchAgent(
            InventoryMatcher(get_inventory_store(settings)),
            max_distance_km=settings.max_distance_km,
        ),
        directions_agent=DirectionsAgent(RoutingResolver(settings)),
    )
    return CareFinderWorkflow(nodes)


def run(
    query: str,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    radius_km: Optional[float] = None,
    open_maps: bool = False,
) -> str:
    """Run a single query through the workflow."""
    workflow = create_app(latitude=latitude, longitude=longitude)
    state = workflow.run(query, radius_km=radius_km)
    facility = state.get("selected_facility")
    if open_maps and facility is not None:
        open_in_external_maps(facility.coords, label=facility.name, origin=state.get("user_location"))
    return CareFinderWorkflow.render(state)


def run_interactive(
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    radius_km: Optional[float] = None,
) -> None:
    """Run an interactive session."""
    print("\n" + "=" * 70)
    print("CarePoint: Nearby Care Finder")
    print("=" * 70)
    print("Ask for pharmacies, hospitals or a medicine near you")
    print("Type 'quit', 'exit', or 'bye' to end the session")
    print("-" * 70 + "\n")

    workflow = create_app(latitude=latitude, longitude=longitude)

    while True:
        try:
            user_input = input("You: ").strip()

            if not user_input:
                continue

            if user_input.lower() in ["quit", "exit", "bye", "goodbye"]:
                print("\nCarePoint: Take care. Goodbye.\n")
                break

            state = workflow.run(user_input, radius_km=radius_km)
            print(f"CarePoint: {CareFinderWorkflow.render(state)}\n")

        except KeyboardInterrupt:
            print("\n\nCarePoint: Session interrupted. Goodbye.\n")
            break
        except EOFError:
            print("\n\nCarePoint: End of input. Goodbye.\n")
            break


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(
        description="CarePoint: find nearby pharmacies, hospitals and medicines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  carepoint --lat 13.0827 --lon 80.2707
    Start an interactive session at the given position

  carepoint "nearest hospital" --lat 13.0827 --lon 80.2707
    Find hospitals and clinics nearby and route to the nearest

  carepoint "paracetamol price" --lat 13.0827 --lon 80.2707
    Find pharmacies in range stocking paracetamol, nearest first
        """,
    )
    parser.add_argument("query", nargs="?", help="Single query to process (if omitted, starts interactive session)")
    parser.add_argument("--lat", type=float, help="Device latitude (defaults to CAREPOINT_DEVICE_LAT)")
    parser.add_argument("--lon", type=float, help="Device longitude (defaults to CAREPOINT_DEVICE_LON)")
    parser.add_argument("--radius", type=float, help="Search radius in km (default 5 for pharmacies, 10 for hospitals)")
    parser.add_argument("--open-maps", action="store_true", help="Open the route to the nearest facility in a maps app")

    args = parser.parse_args()

    load_dotenv()
    configure_logging()

    try:
        _position_provider(args.lat, args.lon)
    except ValueError as exc:
        parser.error(f"invalid device position: {exc}")

    if args.query:
        result = run(args.query, args.lat, args.lon, radius_km=args.radius, open_maps=args.open_maps)
        print(f"\nCarePoint: {result}\n")
    else:
        run_interactive(args.lat, args.lon, radius_km=args.radius)


if __name__ == "__main__":
    main()
