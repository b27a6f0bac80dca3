"""
Find candidate drivers for a pickup point.

Candidates are free, document-verified drivers with a registered vehicle,
within the search radius of the pickup. Inside the radius they are ranked by
rating (best first); distance only breaks ties.
"""

import logging
import random
from dataclasses import dataclass
from typing import List, Optional

from django.conf import settings

from common.utils import calculate_distance, random_point_near
from drivers.models import DRIVER_FREE_STATUSES
from services.exceptions import RideValidationError, StoreError
from services.store import DataStore, get_default_store

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_RADIUS_KM = 10.0
DEFAULT_SYNTHETIC_RADIUS_KM = 2.0
DEFAULT_MAP_RADIUS_KM = 5.0


@dataclass
class DriverCandidate:
    """Driver data needed to pick and display an assignment."""
    driver_id: int
    name: str
    rating: float
    vehicle_type: str
    latitude: float
    longitude: float
    distance_km: float
    status: str = "available"
    location_synthesized: bool = False


class DriverLocator:
    """
    Driver search over the ``drivers`` collection.

    Drivers that have never reported a location get a synthesized one near
    the pickup instead of being dropped. This stands in for a real
    location-reporting channel.
    """

    def __init__(
        self,
        store: Optional[DataStore] = None,
        rng: Optional[random.Random] = None,
        synthetic_radius_km: Optional[float] = None,
    ):
        self._store = store or get_default_store()
        self._rng = rng or random.Random()
        if synthetic_radius_km is None:
            synthetic_radius_km = getattr(
                settings, "RIDE_SYNTHETIC_DRIVER_RADIUS_KM", DEFAULT_SYNTHETIC_RADIUS_KM
            )
        self._synthetic_radius_km = float(synthetic_radius_km)

    def find_nearby(self, pickup, max_distance_km: Optional[float] = None) -> List[DriverCandidate]:
        """
        Return candidate drivers for ``pickup`` sorted by rating, best first.

        Args:
            pickup: Location (anything with latitude/longitude)
            max_distance_km: Search radius, defaults to RIDE_DRIVER_SEARCH_RADIUS_KM

        Returns:
            List of DriverCandidate, empty when nobody qualifies or the store is down
        """
        if max_distance_km is None:
            max_distance_km = getattr(settings, "RIDE_DRIVER_SEARCH_RADIUS_KM", DEFAULT_SEARCH_RADIUS_KM)

        try:
            drivers = self._store.select(
                "drivers",
                {"status__in": list(DRIVER_FREE_STATUSES), "documents_verified": True},
            )
        except StoreError:
            logger.exception("Driver lookup failed")
            return []

        candidates: List[DriverCandidate] = []
        for driver in drivers:
            # No vehicle registered, cannot take rides
            if not driver.get("vehicle_type"):
                continue

            synthesized = False
            lat = driver.get("current_latitude")
            lon = driver.get("current_longitude")
            if lat is None or lon is None:
                lat, lon = random_point_near(
                    pickup.latitude, pickup.longitude, self._synthetic_radius_km, self._rng
                )
                synthesized = True

            distance = calculate_distance(pickup.latitude, pickup.longitude, lat, lon)
            if distance > max_distance_km:
                continue

            candidates.append(DriverCandidate(
                driver_id=driver["id"],
                name=driver.get("name") or "",
                rating=float(driver.get("rating") or 0.0),
                vehicle_type=driver["vehicle_type"],
                latitude=float(lat),
                longitude=float(lon),
                distance_km=distance,
                status=driver.get("status") or "",
                location_synthesized=synthesized,
            ))

        candidates.sort(key=lambda c: (-c.rating, c.distance_km))

        logger.info(
            "Found %d candidate drivers near (%.5f, %.5f) within %skm",
            len(candidates), pickup.latitude, pickup.longitude, max_distance_km,
        )
        return candidates

    def list_available_near(self, latitude, longitude, radius_km: float = DEFAULT_MAP_RADIUS_KM) -> List[DriverCandidate]:
        """
        Free drivers with a reported location within ``radius_km``, for a map view.

        Nothing is synthesized or ranked here; rows come back in store order.
        Store errors propagate.
        """
        if radius_km is None or radius_km < 0:
            raise RideValidationError("radius_km must be >= 0")

        drivers = self._store.select("drivers", {"status__in": list(DRIVER_FREE_STATUSES)})

        nearby: List[DriverCandidate] = []
        for driver in drivers:
            lat = driver.get("current_latitude")
            lon = driver.get("current_longitude")
            if lat is None or lon is None:
                continue

            distance = calculate_distance(latitude, longitude, lat, lon)
            if distance > radius_km:
                continue

            nearby.append(DriverCandidate(
                driver_id=driver["id"],
                name=driver.get("name") or "",
                rating=float(driver.get("rating") or 0.0),
                vehicle_type=driver.get("vehicle_type") or "",
                latitude=float(lat),
                longitude=float(lon),
                distance_km=distance,
                status=driver.get("status") or "",
            ))
        return nearby
