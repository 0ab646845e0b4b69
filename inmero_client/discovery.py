"""
Home screen data: restaurant listing, catalogs, distances and ratings.

The listing and both catalogs are fetched in parallel, then every location's
rating summary is fetched in parallel. A failed rating lookup leaves that
location at rating 0 instead of failing the whole load.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, NamedTuple, Optional

from .api_access import InmeroApiAccess
from .constants import NEARBY_LIMIT, NEARBY_MAX_DISTANCE_KM
from .errors import InmeroError, SessionExpired
from .models import CatalogEntry, Coordinates, Location

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371
RATING_MAX_WORKERS = 10


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_distance(distance_km: float) -> str:
    """Metres under a kilometre (850 m), one decimal of km above (2.3 km)."""
    if distance_km < 1:
        return f"{round(distance_km * 1000)} m"
    return f"{distance_km:.1f} km"


def with_distances(locations: List[Location], origin: Optional[Coordinates]) -> List[Location]:
    """Annotate locations with their distance from origin, nearest first."""
    if origin is None:
        return list(locations)

    enriched = []
    for location in locations:
        if location.latitude is None or location.longitude is None:
            enriched.append(location)
            continue
        distance = haversine_km(origin.latitude, origin.longitude, location.latitude, location.longitude)
        enriched.append(
            location.model_copy(update={"distance_km": distance, "distance_label": format_distance(distance)})
        )
    # Locations without coordinates go last
    return sorted(enriched, key=lambda loc: (loc.distance_km is None, loc.distance_km or 0))


def nearby(
    locations: List[Location],
    max_km: float = NEARBY_MAX_DISTANCE_KM,
    limit: int = NEARBY_LIMIT,
) -> List[Location]:
    """
    Closest locations within max_km. Without distances (no origin) the first
    `limit` locations are returned as listed.
    """
    if not any(loc.distance_km is not None for loc in locations):
        return list(locations[:limit])
    within = [loc for loc in locations if loc.distance_km is not None and loc.distance_km <= max_km]
    return within[:limit]


def search_locations(locations: List[Location], query: str) -> List[Location]:
    """Case-insensitive match on name, address, city or location type name."""
    query = (query or "").strip().lower()
    if not query:
        return list(locations)

    def matches(location: Location) -> bool:
        fields = [location.name, location.address, location.city_name]
        fields.extend(entry.get("name") for entry in location.location_types)
        return any(query in field.lower() for field in fields if field)

    return [loc for loc in locations if matches(loc)]


class HomeData(NamedTuple):
    locations: List[Location]
    location_types: List[CatalogEntry]
    ambiences: List[CatalogEntry]


class DiscoveryManager:
    def __init__(self, api_access: InmeroApiAccess):
        self.api_access = api_access

    def load_home(
        self,
        city_id: Optional[int] = None,
        ambience_id: Optional[int] = None,
        origin: Optional[Coordinates] = None,
    ) -> HomeData:
        if city_id is None and origin is not None:
            city_id = origin.city_id

        with ThreadPoolExecutor(max_workers=3) as executor:
            locations_future = executor.submit(
                self.api_access.list_locations, city_id=city_id, ambience_id=ambience_id
            )
            types_future = executor.submit(self.api_access.list_location_types)
            ambiences_future = executor.submit(self.api_access.list_ambiences)

            locations = locations_future.result().data
            location_types = types_future.result()
            ambiences = ambiences_future.result()

        locations = self.with_ratings(with_distances(locations, origin))
        logger.info(
            "Loaded home: %s locations, %s types, %s ambiences (city_id=%s ambience_id=%s)",
            len(locations),
            len(location_types),
            len(ambiences),
            city_id,
            ambience_id,
        )
        return HomeData(locations, location_types, ambiences)

    def with_ratings(self, locations: List[Location]) -> List[Location]:
        """Attach average rating and review count from each location's summary."""
        if not locations:
            return []

        ratings = {}
        with ThreadPoolExecutor(max_workers=RATING_MAX_WORKERS) as executor:
            future_to_location = {
                executor.submit(self.api_access.get_rating_summary, loc.id): loc.id for loc in locations
            }
            for future in as_completed(future_to_location):
                location_id = future_to_location[future]
                try:
                    ratings[location_id] = future.result()
                except SessionExpired:
                    raise
                except InmeroError as e:
                    logger.warning("Rating summary failed for location_id=%s: %s", location_id, e)

        enriched = []
        for location in locations:
            summary = ratings.get(location.id)
            if summary is None:
                enriched.append(location)
                continue
            enriched.append(
                location.model_copy(
                    update={
                        "rating": summary.average_rating or 0,
                        "total_reviews": summary.total_reviews_count or 0,
                    }
                )
            )
        return enriched
