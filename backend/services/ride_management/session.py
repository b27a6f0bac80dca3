"""
Per-session ride state for a signed-in user.

Wraps the synchronous RideLifecycleService for async callers (WebSocket
consumers) and keeps a local, possibly stale, copy of the user's rides.
Every mutation is followed by a reload, which is the only way the local copy
catches up with changes made elsewhere.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from asgiref.sync import sync_to_async

from rides.models import RIDE_STATUS_ACTIVE
from services.exceptions import NotAuthenticatedError, RideServiceError
from .ride_lifecycle import RideLifecycleService, get_ride_lifecycle_service
from .types import Location, RideRequest, RideSnapshot, RouteEstimate, SessionUser

logger = logging.getLogger(__name__)


class RideSessionController:
    """
    Session-scoped view of a user's rides.

    ``rides`` is newest first. ``active_ride`` is the newest ride whose status
    is active. ``is_busy`` is true while any call is in flight.
    """

    def __init__(self, user: Optional[SessionUser], service: Optional[RideLifecycleService] = None):
        self.user = user
        self._service = service
        self.rides: List[RideSnapshot] = []
        self.active_ride: Optional[RideSnapshot] = None
        self._in_flight = 0

    @property
    def service(self) -> RideLifecycleService:
        if self._service is None:
            self._service = get_ride_lifecycle_service()
        return self._service

    @property
    def is_busy(self) -> bool:
        return self._in_flight > 0

    @asynccontextmanager
    async def _busy(self):
        self._in_flight += 1
        try:
            yield
        finally:
            self._in_flight -= 1

    def _require_user(self) -> SessionUser:
        if self.user is None:
            raise NotAuthenticatedError("Sign in to manage rides")
        return self.user

    async def load_rides(self) -> Optional[List[RideSnapshot]]:
        """Refresh ``rides`` and ``active_ride`` from the store. Returns None without a signed-in user."""
        if self.user is None:
            return None

        async with self._busy():
            rides = await sync_to_async(self.service.get_user_rides)(self.user.user_id)
        self._set_rides(rides)
        return rides

    async def request_ride(self, request: RideRequest) -> RideSnapshot:
        user = self._require_user()

        async with self._busy():
            ride = await sync_to_async(self.service.request_ride)(user.user_id, request, user)
            self.active_ride = ride
            await self._reload_after(ride)
        return ride

    async def cancel_ride(self, ride_id, reason: Optional[str] = None) -> RideSnapshot:
        user = self._require_user()

        async with self._busy():
            ride = await sync_to_async(self.service.cancel_ride)(ride_id, reason, user.user_id)
            self.active_ride = None
            await self._reload_after(ride)
        return ride

    async def complete_ride(self, ride_id, actual_fare=None) -> RideSnapshot:
        user = self._require_user()

        async with self._busy():
            ride = await sync_to_async(self.service.complete_ride)(ride_id, actual_fare, user.user_id)
            self.active_ride = None
            await self._reload_after(ride)
        return ride

    async def get_route_estimate(
        self,
        pickup: Location,
        destination: Location,
        ride_type: Optional[str] = None,
    ) -> RouteEstimate:
        # Pricing a trip does not need a signed-in user
        async with self._busy():
            return await sync_to_async(self.service.get_route_estimate)(pickup, destination, ride_type)

    def _set_rides(self, rides: List[RideSnapshot]) -> None:
        self.rides = rides
        self.active_ride = next((r for r in rides if r.status == RIDE_STATUS_ACTIVE), None)

    async def _reload_after(self, ride: RideSnapshot) -> None:
        """
        Reload after a mutation. The mutation already succeeded, so a failed
        reload only patches the local copy with ``ride``.
        """
        try:
            rides = await sync_to_async(self.service.get_user_rides)(self.user.user_id)
        except RideServiceError:
            logger.exception("Reload after ride %s update failed", ride.id)
            if any(r.id == ride.id for r in self.rides):
                rides = [ride if r.id == ride.id else r for r in self.rides]
            else:
                rides = [ride] + self.rides
            self._set_rides(rides)
            return
        self._set_rides(rides)
