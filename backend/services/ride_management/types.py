"""Value types passed in and out of the ride lifecycle service."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from rides.models import RIDE_STATUS_ACTIVE, RIDE_TERMINAL_STATUSES, RIDE_TYPE_ECONOMY


@dataclass
class Location:
    """A geocoded point as supplied by the map/geocoding layer."""
    latitude: float
    longitude: float
    address: str = ""


@dataclass
class RideRequest:
    """Transient booking input; not persisted as-is."""
    pickup: Optional[Location]
    destination: Optional[Location]
    ride_type: str = RIDE_TYPE_ECONOMY
    passenger_count: int = 1
    scheduled_time: Optional[datetime] = None


@dataclass
class RouteEstimate:
    distance_km: float
    duration_minutes: int
    fare: Decimal


@dataclass
class SessionUser:
    """Identity of the signed-in user, as handed over by the identity provider."""
    user_id: str
    email: str = ""
    display_name: str = ""

    @classmethod
    def from_user(cls, user) -> "SessionUser":
        """Build from a Django auth user."""
        display_name = ""
        if hasattr(user, "get_full_name"):
            display_name = user.get_full_name()
        return cls(
            user_id=str(user.pk),
            email=getattr(user, "email", "") or "",
            display_name=display_name or getattr(user, "username", "") or "",
        )


@dataclass
class RideSnapshot:
    """
    Read-only copy of a ride row at the time it was fetched.

    The store stays authoritative; a snapshot may be stale as soon as it is
    returned.
    """
    id: Any
    passenger_id: Any
    driver_id: Any = None
    pickup_location: str = ""
    dropoff_location: str = ""
    pickup_latitude: Optional[float] = None
    pickup_longitude: Optional[float] = None
    dropoff_latitude: Optional[float] = None
    dropoff_longitude: Optional[float] = None
    ride_type: str = RIDE_TYPE_ECONOMY
    passenger_count: int = 1
    scheduled_time: Optional[datetime] = None
    status: str = RIDE_STATUS_ACTIVE
    fare: Decimal = field(default_factory=lambda: Decimal("0.00"))
    distance_km: float = 0.0
    duration_minutes: int = 0
    eta: str = ""
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancellation_reason: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RideSnapshot":
        values = {f.name: row[f.name] for f in fields(cls) if row.get(f.name) is not None}
        snapshot = cls(**values)
        snapshot.fare = Decimal(str(snapshot.fare))
        for name in ("pickup_latitude", "pickup_longitude", "dropoff_latitude", "dropoff_longitude"):
            value = getattr(snapshot, name)
            if value is not None:
                setattr(snapshot, name, float(value))
        return snapshot

    @property
    def is_terminal(self) -> bool:
        return self.status in RIDE_TERMINAL_STATUSES

    @property
    def has_driver(self) -> bool:
        return self.driver_id is not None

    @property
    def pickup(self) -> Optional[Location]:
        if self.pickup_latitude is None or self.pickup_longitude is None:
            return None
        return Location(self.pickup_latitude, self.pickup_longitude, self.pickup_location)
