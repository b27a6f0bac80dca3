"""
Core ride lifecycle operations.

Ride state machine as persisted:

    active --(cancel)--> cancelled
    active --(complete)--> completed

New rides are stored as ``active`` straight away; ``active`` covers searching
for a driver, driver en route and in progress. ``completed`` and ``cancelled``
are terminal.

Every mutation is a read-modify-write against the data store. Store failures
on the primary path surface as ``StoreError``; the best-effort steps (driver
assignment during a request, trip stats on completion, realtime broadcast)
are logged and never fail the parent operation.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, List, Optional

from django.utils import timezone

from common.utils import calculate_distance, estimated_duration_minutes, eta_minutes
from drivers.models import DRIVER_FREE_STATUSES, DRIVER_STATUS_AVAILABLE, DRIVER_STATUS_BUSY
from rides.models import (
    RIDE_OPEN_STATUSES,
    RIDE_STATUS_ACTIVE,
    RIDE_STATUS_CANCELLED,
    RIDE_STATUS_COMPLETED,
    RIDE_TERMINAL_STATUSES,
)
from services.exceptions import (
    RideAlreadyTerminalError,
    RideNotFoundError,
    RideServiceError,
    RideValidationError,
)
from services.matching import DEFAULT_MAP_RADIUS_KM, DriverCandidate, DriverLocator
from services.pricing import FareCalculator, normalize_ride_type
from services.store import DataStore, Row, get_default_store
from .types import Location, RideRequest, RideSnapshot, RouteEstimate, SessionUser

logger = logging.getLogger(__name__)

FALLBACK_PASSENGER_NAME = "User"
FALLBACK_PASSENGER_EMAIL = "user@example.com"


def _default_notifier(ride: RideSnapshot, event: str) -> None:
    from realtime.notifications import notify_ride_update
    notify_ride_update(ride, event)


def _validate_location(location: Optional[Location], label: str) -> None:
    if location is None:
        raise RideValidationError(f"{label} location is required")
    try:
        lat = float(location.latitude)
        lon = float(location.longitude)
    except (TypeError, ValueError, AttributeError):
        raise RideValidationError(f"{label} location needs numeric latitude and longitude")
    if not -90 <= lat <= 90 or not -180 <= lon <= 180:
        raise RideValidationError(f"{label} location is out of range")


def validate_ride_request(request: RideRequest) -> None:
    """Raise RideValidationError for a malformed ride request."""
    if request is None:
        raise RideValidationError("Ride request is required")
    _validate_location(request.pickup, "Pickup")
    _validate_location(request.destination, "Destination")
    count = request.passenger_count
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise RideValidationError("passenger_count must be a positive integer")


def _parse_fare(value) -> Decimal:
    """Final fare as a Decimal rounded to cents; must be a finite amount >= 0."""
    try:
        fare = Decimal(str(value))
    except InvalidOperation:
        raise RideValidationError(f"actual_fare is not a number: {value!r}")
    if not fare.is_finite() or fare < 0:
        raise RideValidationError("actual_fare must be a finite amount >= 0")
    return fare.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class RideLifecycleService:
    """
    Owns the ride state machine: request, assign, cancel, complete, estimate.

    Collaborators are injected so tests can run against an in-memory store.
    """

    def __init__(
        self,
        store: Optional[DataStore] = None,
        fare_calculator: Optional[FareCalculator] = None,
        driver_locator: Optional[DriverLocator] = None,
        notifier: Optional[Callable[[RideSnapshot, str], None]] = None,
    ):
        self._store = store or get_default_store()
        self._fares = fare_calculator or FareCalculator(self._store)
        self._locator = driver_locator or DriverLocator(self._store)
        self._notifier = notifier or _default_notifier

    # ===================== Estimates =====================

    def get_route_estimate(
        self,
        pickup: Location,
        destination: Location,
        ride_type: Optional[str] = None,
    ) -> RouteEstimate:
        """Distance, duration and fare for a route, exactly as request_ride computes them."""
        _validate_location(pickup, "Pickup")
        _validate_location(destination, "Destination")

        distance = calculate_distance(
            pickup.latitude, pickup.longitude,
            destination.latitude, destination.longitude,
        )
        duration = estimated_duration_minutes(distance)
        fare = self._fares.calculate_fare(distance, duration, ride_type)
        return RouteEstimate(distance_km=distance, duration_minutes=duration, fare=fare)

    def get_nearby_drivers(self, latitude, longitude, radius_km: float = DEFAULT_MAP_RADIUS_KM) -> List[DriverCandidate]:
        """Free drivers with a reported location near a point, for the passenger map."""
        _validate_location(Location(latitude, longitude), "Search")
        return self._locator.list_available_near(float(latitude), float(longitude), radius_km)

    # ===================== Passenger Operations =====================

    def ensure_passenger(self, user_id: str, profile: Optional[SessionUser] = None) -> int:
        """
        Return the passenger id for ``user_id``, creating the record on first use.

        Existing records are left untouched.
        """
        if not user_id:
            raise RideValidationError("user_id is required")

        existing = self._store.select_one("passengers", {"user_id": user_id})
        if existing:
            return existing["id"]

        email = profile.email if profile else ""
        name = (profile.display_name if profile else "") or email.split("@")[0] or FALLBACK_PASSENGER_NAME
        passenger = self._store.upsert(
            "passengers",
            {
                "user_id": user_id,
                "name": name,
                "email": email or FALLBACK_PASSENGER_EMAIL,
                "phone": "",
                "status": "active",
            },
            on_conflict=["user_id"],
        )
        logger.info("Created passenger %s for user %s", passenger["id"], user_id)
        return passenger["id"]

    def request_ride(
        self,
        user_id: str,
        request: RideRequest,
        profile: Optional[SessionUser] = None,
    ) -> RideSnapshot:
        """
        Create a ride and try to assign a driver.

        Args:
            user_id: Identity-provider user id of the passenger
            request: Pickup, destination, tier and passenger count
            profile: Optional name/email used when the passenger record is created

        Returns:
            The persisted ride, with a driver if one could be assigned

        Raises:
            RideValidationError: If the request is malformed
            StoreError: If the passenger or ride could not be written
        """
        validate_ride_request(request)
        ride_type = normalize_ride_type(request.ride_type)

        passenger_id = self.ensure_passenger(user_id, profile)
        estimate = self.get_route_estimate(request.pickup, request.destination, ride_type)

        row = self._store.insert("rides", {
            "passenger_id": passenger_id,
            "driver_id": None,
            "pickup_location": request.pickup.address,
            "pickup_latitude": round(float(request.pickup.latitude), 6),
            "pickup_longitude": round(float(request.pickup.longitude), 6),
            "dropoff_location": request.destination.address,
            "dropoff_latitude": round(float(request.destination.latitude), 6),
            "dropoff_longitude": round(float(request.destination.longitude), 6),
            "ride_type": ride_type,
            "passenger_count": request.passenger_count,
            "scheduled_time": request.scheduled_time,
            "status": RIDE_STATUS_ACTIVE,
            "fare": estimate.fare,
            "distance_km": estimate.distance_km,
            "duration_minutes": estimate.duration_minutes,
            "eta": f"{eta_minutes(estimate.distance_km)} min",
            "completed_at": None,
            "cancellation_reason": "",
        })
        ride = RideSnapshot.from_row(row)
        logger.info(
            "Ride %s requested by passenger %s (%s, %.2fkm, fare %s)",
            ride.id, passenger_id, ride_type, estimate.distance_km, estimate.fare,
        )

        try:
            assigned = self.assign_driver(ride.id)
        except Exception:
            logger.exception("Driver assignment failed for ride %s", ride.id)
            assigned = None

        if assigned is not None:
            return assigned

        try:
            ride = self.get_ride(ride.id)
        except RideServiceError:
            logger.exception("Could not re-read ride %s after assignment", ride.id)

        self._notify(ride, "created")
        return ride

    def get_user_rides(self, user_id: str) -> List[RideSnapshot]:
        """All rides of a user, newest first. Users without a passenger record have none."""
        passenger = self._store.select_one("passengers", {"user_id": user_id})
        if passenger is None:
            return []

        rows = self._store.select(
            "rides",
            {"passenger_id": passenger["id"]},
            order_by=["-created_at", "-id"],
        )
        return [RideSnapshot.from_row(row) for row in rows]

    def get_ride(self, ride_id) -> RideSnapshot:
        return RideSnapshot.from_row(self._get_ride_row(ride_id))

    def list_waiting_rides(self) -> List[RideSnapshot]:
        """Active rides still without a driver, oldest first."""
        rows = self._store.select(
            "rides",
            {"status": RIDE_STATUS_ACTIVE, "driver_id__isnull": True},
            order_by=["created_at", "id"],
        )
        return [RideSnapshot.from_row(row) for row in rows]

    # ===================== Driver Assignment =====================

    def assign_driver(self, ride_id) -> Optional[RideSnapshot]:
        """
        Assign the best nearby driver to a waiting ride.

        Does not retry: when nobody is available the ride stays driver-less
        and None is returned, so a caller can try again later.

        Returns:
            The updated ride, or None if no driver was assigned
        """
        ride = self.get_ride(ride_id)

        if ride.is_terminal:
            raise RideAlreadyTerminalError(
                f"Cannot assign a driver - ride is already {ride.status}", ride.status
            )
        if ride.has_driver:
            return ride

        pickup = ride.pickup
        if pickup is None:
            logger.warning("Ride %s has no pickup coordinates, cannot search for drivers", ride_id)
            return None

        candidates = self._locator.find_nearby(pickup)
        if not candidates:
            logger.info("No drivers available for ride %s", ride_id)
            return None

        chosen = next((c for c in candidates if self._claim_driver(c.driver_id)), None)
        if chosen is None:
            logger.info("All nearby drivers were taken before ride %s could claim one", ride_id)
            return None

        try:
            rows = self._store.update(
                "rides",
                {"id": ride_id, "status": RIDE_STATUS_ACTIVE, "driver_id__isnull": True},
                {"driver_id": chosen.driver_id, "status": RIDE_STATUS_ACTIVE},
            )
        except Exception:
            self._release_driver(chosen.driver_id)
            raise
        if not rows:
            # Cancelled or assigned elsewhere since we read it
            logger.info("Ride %s changed during assignment, skipping", ride_id)
            self._release_driver(chosen.driver_id)
            return None

        assigned = RideSnapshot.from_row(rows[0])
        logger.info(
            "Assigned driver %s (rating %.1f, %.2fkm) to ride %s",
            chosen.driver_id, chosen.rating, chosen.distance_km, ride_id,
        )
        self._notify(assigned, "assigned")
        return assigned

    # ===================== Cancel / Complete =====================

    def cancel_ride(self, ride_id, reason: Optional[str] = None, user_id: Optional[str] = None) -> RideSnapshot:
        """
        Cancel an open ride and free its driver.

        When ``user_id`` is given the ride must belong to that user's passenger
        record; other people's rides are reported as missing.

        Raises:
            RideNotFoundError: If the ride does not exist (or is not the user's)
            RideAlreadyTerminalError: If the ride is already completed or cancelled
        """
        row = self._close_ride(ride_id, {
            "status": RIDE_STATUS_CANCELLED,
            "completed_at": timezone.now(),
            "cancellation_reason": reason or "",
        }, action="cancel", user_id=user_id)

        ride = RideSnapshot.from_row(row)
        if ride.has_driver:
            self._release_driver(ride.driver_id)

        logger.info("Ride %s cancelled (driver=%s)", ride.id, ride.driver_id)
        self._notify(ride, "cancelled")
        return ride

    def complete_ride(
        self,
        ride_id,
        actual_fare: Optional[Decimal] = None,
        user_id: Optional[str] = None,
    ) -> RideSnapshot:
        """
        Complete an open ride, optionally overriding the estimated fare.

        ``user_id`` restricts the call to the ride's own passenger, as for cancel_ride.

        Raises:
            RideValidationError: If actual_fare is not a finite amount >= 0
            RideNotFoundError: If the ride does not exist (or is not the user's)
            RideAlreadyTerminalError: If the ride is already completed or cancelled
        """
        values: Row = {
            "status": RIDE_STATUS_COMPLETED,
            "completed_at": timezone.now(),
        }
        if actual_fare is not None:
            values["fare"] = _parse_fare(actual_fare)

        row = self._close_ride(ride_id, values, action="complete", user_id=user_id)

        ride = RideSnapshot.from_row(row)
        if ride.has_driver:
            self._release_driver(ride.driver_id)

        try:
            self._record_trip_stats(ride)
        except Exception:
            logger.exception("Stats update skipped for ride %s", ride.id)

        logger.info("Ride %s completed (fare %s)", ride.id, ride.fare)
        self._notify(ride, "completed")
        return ride

    # ===================== Helper Functions =====================

    def _get_ride_row(self, ride_id) -> Row:
        row = self._store.select_one("rides", {"id": ride_id})
        if row is None:
            raise RideNotFoundError(f"Ride {ride_id} not found")
        return row

    def _check_owner(self, row: Row, user_id: str) -> None:
        passenger = self._store.select_one("passengers", {"user_id": user_id})
        if passenger is None or passenger["id"] != row["passenger_id"]:
            logger.warning("User %s tried to change ride %s they do not own", user_id, row["id"])
            raise RideNotFoundError(f"Ride {row['id']} not found")

    def _close_ride(self, ride_id, values: Row, action: str, user_id: Optional[str] = None) -> Row:
        """Move an open ride into a terminal state, refusing terminal rides."""
        current = self._get_ride_row(ride_id)
        if user_id is not None:
            self._check_owner(current, user_id)
        if current["status"] in RIDE_TERMINAL_STATUSES:
            raise RideAlreadyTerminalError(
                f"Cannot {action} - ride is already {current['status']}", current["status"]
            )

        rows = self._store.update(
            "rides",
            {"id": ride_id, "status__in": list(RIDE_OPEN_STATUSES)},
            values,
        )
        if not rows:
            latest = self._get_ride_row(ride_id)
            raise RideAlreadyTerminalError(
                f"Cannot {action} - ride is already {latest['status']}", latest["status"]
            )
        return rows[0]

    def _claim_driver(self, driver_id) -> bool:
        """Flip a free driver to busy. False if someone else got there first."""
        rows = self._store.update(
            "drivers",
            {"id": driver_id, "status__in": list(DRIVER_FREE_STATUSES)},
            {"status": DRIVER_STATUS_BUSY},
        )
        return bool(rows)

    def _release_driver(self, driver_id) -> None:
        """Flip a busy driver back to available; other statuses are left alone."""
        self._store.update(
            "drivers",
            {"id": driver_id, "status": DRIVER_STATUS_BUSY},
            {"status": DRIVER_STATUS_AVAILABLE},
        )

    def _record_trip_stats(self, ride: RideSnapshot) -> None:
        """Bump cumulative trip and money counters on driver and passenger."""
        if ride.has_driver:
            driver = self._store.select_one("drivers", {"id": ride.driver_id})
            if driver is not None:
                self._store.update("drivers", {"id": ride.driver_id}, {
                    "total_trips": (driver.get("total_trips") or 0) + 1,
                    "total_earnings": Decimal(str(driver.get("total_earnings") or 0)) + ride.fare,
                })

        passenger = self._store.select_one("passengers", {"id": ride.passenger_id})
        if passenger is not None:
            self._store.update("passengers", {"id": ride.passenger_id}, {
                "total_trips": (passenger.get("total_trips") or 0) + 1,
                "total_spent": Decimal(str(passenger.get("total_spent") or 0)) + ride.fare,
            })

    def _notify(self, ride: RideSnapshot, event: str) -> None:
        try:
            self._notifier(ride, event)
        except Exception:
            logger.exception("Failed to broadcast %s for ride %s", event, ride.id)


# ---------------------- Singleton Instance ----------------------

_ride_lifecycle_service: Optional[RideLifecycleService] = None


def get_ride_lifecycle_service() -> RideLifecycleService:
    """Get singleton RideLifecycleService instance."""
    global _ride_lifecycle_service
    if _ride_lifecycle_service is None:
        _ride_lifecycle_service = RideLifecycleService()
    return _ride_lifecycle_service
