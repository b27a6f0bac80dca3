"""
Ride management service - Core ride lifecycle operations.

This module handles:
    - Estimating route distance, duration and fare
    - Creating ride requests and assigning drivers
    - Completing rides
    - Cancelling rides
    - Querying a user's rides
"""

from .ride_lifecycle import (
    RideLifecycleService,
    get_ride_lifecycle_service,
    validate_ride_request,
)
from .session import RideSessionController
from .types import (
    Location,
    RideRequest,
    RideSnapshot,
    RouteEstimate,
    SessionUser,
)

__all__ = [
    # Lifecycle operations
    "RideLifecycleService",
    "get_ride_lifecycle_service",
    "validate_ride_request",
    "RideSessionController",
    # Value types
    "Location",
    "RideRequest",
    "RideSnapshot",
    "RouteEstimate",
    "SessionUser",
]
