"""Realtime consumers for WebSocket communication."""

from .ride_consumer import RideConsumer

__all__ = [
    "RideConsumer",
]
