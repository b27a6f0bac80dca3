"""
Notification helpers for sending WebSocket messages to connected clients.

Every ride lifecycle change is pushed to the ``ride_<ride_id>`` group, which
clients join through the ride consumer's ``track_ride`` message.
"""

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def ride_group_name(ride_id) -> str:
    return f"ride_{ride_id}"


def notify_ride_update(ride, event: str = "") -> bool:
    """
    Broadcast the latest state of a ride to its tracking group.

    Best-effort: failures are logged and reported as False, never raised.

    Args:
        ride: RideSnapshot to broadcast
        event: What happened (created, assigned, cancelled, completed)

    Returns:
        True if sent successfully, False otherwise
    """
    try:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            logger.warning("No channel layer available for ride updates")
            return False

        from rides.serializers import RideSerializer

        payload = {
            "type": "ride_update",
            "event": event or ride.status,
            "ride_id": ride.id,
            "status": ride.status,
            "ride": dict(RideSerializer(ride).data),
        }

        logger.debug("WS -> %s: %s", ride_group_name(ride.id), payload["event"])
        async_to_sync(channel_layer.group_send)(ride_group_name(ride.id), payload)
        return True
    except Exception:
        logger.exception("Failed to notify ride group for ride %s", getattr(ride, "id", None))
        return False
