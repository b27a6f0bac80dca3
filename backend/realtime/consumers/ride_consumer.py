"""Ride session WebSocket consumer for booking and real-time ride updates."""

import logging
from typing import Dict, Any, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from rides.serializers import (
    RideCancelSerializer,
    RideCompleteSerializer,
    RideRequestCreateSerializer,
    RideSerializer,
    RouteEstimateRequestSerializer,
    RouteEstimateSerializer,
)
from services.exceptions import (
    NotAuthenticatedError,
    NotFoundError,
    RideAlreadyTerminalError,
    RideServiceError,
    RideValidationError,
    StoreError,
)
from services.ride_management import (
    RideSessionController,
    SessionUser,
    get_ride_lifecycle_service,
)
from realtime.notifications import ride_group_name

logger = logging.getLogger(__name__)

ERROR_CODES = (
    (RideValidationError, "validation_error"),
    (NotFoundError, "not_found"),
    (RideAlreadyTerminalError, "already_terminal"),
    (NotAuthenticatedError, "not_authenticated"),
    (StoreError, "store_unavailable"),
)


def _ride_id(data: Dict[str, Any]):
    """Integer ride id from a message, or None when missing or malformed."""
    try:
        return int(data.get("ride_id"))
    except (TypeError, ValueError):
        return None


class RideConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer hosting one RideSessionController per connection.

    Client -> server messages:
        - load_rides
        - estimate {pickup, destination, ride_type}
        - request_ride {pickup, destination, ride_type, passenger_count, scheduled_time}
        - cancel_ride {ride_id, reason}
        - complete_ride {ride_id, actual_fare}
        - track_ride / untrack_ride {ride_id}

    Server -> client messages:
        - session_state after every session operation
        - route_estimate for estimate
        - ride_update for rides being tracked
        - error {message, code}
    """

    async def connect(self):
        self.user = self.scope.get("user")

        if self.user is None or self.user.is_anonymous:
            await self.close()
            return

        self.user_id = self.user.pk
        self.tracked_rides: Set[int] = set()
        self.session = RideSessionController(
            SessionUser.from_user(self.user),
            get_ride_lifecycle_service(),
        )

        await self.accept()
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "message": "Ride session connection established",
        })

    async def disconnect(self, close_code):
        """Stop tracking every ride on disconnect."""
        for ride_id in list(getattr(self, "tracked_rides", ())):
            try:
                await self._untrack(ride_id)
            except Exception:
                logger.exception("Failed to leave ride %s group for user %s", ride_id, self.user_id)

    async def receive_json(self, data: Dict[str, Any]):
        """Route incoming messages to their handlers."""
        msg_type = data.get("type") if isinstance(data, dict) else None
        if not msg_type:
            await self._send_error("Message type is required")
            return

        handlers = {
            "load_rides": self._handle_load_rides,
            "estimate": self._handle_estimate,
            "request_ride": self._handle_request_ride,
            "cancel_ride": self._handle_cancel_ride,
            "complete_ride": self._handle_complete_ride,
            "track_ride": self._handle_track_ride,
            "untrack_ride": self._handle_untrack_ride,
        }
        handler = handlers.get(msg_type)
        if handler is None:
            await self._send_error(f"Unknown message type: {msg_type}")
            return

        try:
            await handler(data)
        except RideServiceError as exc:
            await self._send_service_error(exc)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self._send_error(f"Error processing {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_load_rides(self, data: Dict[str, Any]):
        await self.session.load_rides()
        await self._send_session_state()

    async def _handle_estimate(self, data: Dict[str, Any]):
        serializer = RouteEstimateRequestSerializer(data=data)
        if not serializer.is_valid():
            await self._send_error("Invalid estimate request", code="validation_error", errors=serializer.errors)
            return

        pickup, destination = serializer.get_locations()
        estimate = await self.session.get_route_estimate(
            pickup, destination, serializer.validated_data["ride_type"]
        )
        await self.send_json({
            "type": "route_estimate",
            "estimate": RouteEstimateSerializer(estimate).data,
        })

    async def _handle_request_ride(self, data: Dict[str, Any]):
        serializer = RideRequestCreateSerializer(data=data)
        if not serializer.is_valid():
            await self._send_error("Invalid ride request", code="validation_error", errors=serializer.errors)
            return

        ride = await self.session.request_ride(serializer.to_ride_request())
        await self._track(ride.id)
        await self._send_session_state()

    async def _handle_cancel_ride(self, data: Dict[str, Any]):
        ride_id = _ride_id(data)
        if ride_id is None:
            await self._send_error("cancel_ride requires ride_id", code="validation_error")
            return

        serializer = RideCancelSerializer(data=data)
        if not serializer.is_valid():
            await self._send_error("Invalid cancellation", code="validation_error", errors=serializer.errors)
            return

        await self.session.cancel_ride(ride_id, serializer.validated_data["reason"])
        await self._send_session_state()

    async def _handle_complete_ride(self, data: Dict[str, Any]):
        ride_id = _ride_id(data)
        if ride_id is None:
            await self._send_error("complete_ride requires ride_id", code="validation_error")
            return

        serializer = RideCompleteSerializer(data=data)
        if not serializer.is_valid():
            await self._send_error("Invalid actual_fare", code="validation_error", errors=serializer.errors)
            return

        await self.session.complete_ride(ride_id, serializer.validated_data["actual_fare"])
        await self._send_session_state()

    async def _handle_track_ride(self, data: Dict[str, Any]):
        """Join ride_<ride_id> to receive ride_update events for one of the user's rides."""
        ride_id = _ride_id(data)
        if ride_id is None:
            await self._send_error("track_ride requires ride_id", code="validation_error")
            return

        if not self._owns(ride_id):
            # Local copy may be stale, refresh once
            await self.session.load_rides()
        if not self._owns(ride_id):
            await self._send_error("You are not authorized to track this ride", code="not_found")
            return

        await self._track(ride_id)
        await self.send_json({"type": "tracking_started", "ride_id": ride_id})

    async def _handle_untrack_ride(self, data: Dict[str, Any]):
        ride_id = _ride_id(data)
        if ride_id is None:
            await self._send_error("untrack_ride requires ride_id", code="validation_error")
            return

        await self._untrack(ride_id)
        await self.send_json({"type": "tracking_stopped", "ride_id": ride_id})

    # ---------------------- Group Event Handlers ----------------------

    async def ride_update(self, event):
        """Sent by the lifecycle service after every ride mutation."""
        await self.send_json({
            "type": "ride_update",
            "event": event.get("event"),
            "ride_id": event.get("ride_id"),
            "status": event.get("status"),
            "ride": event.get("ride", {}),
        })

    # ---------------------- Helper Functions ----------------------

    def _owns(self, ride_id) -> bool:
        return any(str(r.id) == str(ride_id) for r in self.session.rides)

    async def _track(self, ride_id: int):
        await self.channel_layer.group_add(ride_group_name(ride_id), self.channel_name)
        self.tracked_rides.add(ride_id)

    async def _untrack(self, ride_id: int):
        await self.channel_layer.group_discard(ride_group_name(ride_id), self.channel_name)
        self.tracked_rides.discard(ride_id)

    async def _send_session_state(self):
        active = self.session.active_ride
        await self.send_json({
            "type": "session_state",
            "rides": RideSerializer(self.session.rides, many=True).data,
            "active_ride": RideSerializer(active).data if active else None,
            "is_busy": self.session.is_busy,
        })

    async def _send_error(self, message: str, code: str = "error", **extra):
        await self.send_json({
            "type": "error",
            "message": message,
            "code": code,
            **extra,
        })

    async def _send_service_error(self, exc: RideServiceError):
        code = "error"
        for exc_type, name in ERROR_CODES:
            if isinstance(exc, exc_type):
                code = name
                break
        if isinstance(exc, StoreError):
            logger.error("Store unavailable for user %s: %s", self.user_id, exc)
        await self._send_error(str(exc), code=code)
