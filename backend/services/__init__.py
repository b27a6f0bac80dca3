"""
Services package - Business logic layer.

This package contains all business logic services that operate on the data
store but are decoupled from the HTTP/WebSocket layer.

Modules:
    - store: Data store abstraction (Django ORM or in-memory)
    - pricing: Fare calculation
    - matching: Driver search and ranking
    - ride_management: Core ride lifecycle operations
"""

# Expose commonly used names at package level
from .exceptions import (
    NotAuthenticatedError,
    NotFoundError,
    RideAlreadyTerminalError,
    RideNotFoundError,
    RideServiceError,
    RideValidationError,
    StoreError,
)
from .ride_management import (
    Location,
    RideLifecycleService,
    RideRequest,
    RideSessionController,
    RideSnapshot,
    RouteEstimate,
    SessionUser,
    get_ride_lifecycle_service,
)

__all__ = [
    # Ride management
    "RideLifecycleService",
    "RideSessionController",
    "get_ride_lifecycle_service",
    "Location",
    "RideRequest",
    "RideSnapshot",
    "RouteEstimate",
    "SessionUser",
    # Exceptions
    "RideServiceError",
    "RideValidationError",
    "NotFoundError",
    "RideNotFoundError",
    "RideAlreadyTerminalError",
    "NotAuthenticatedError",
    "StoreError",
]
