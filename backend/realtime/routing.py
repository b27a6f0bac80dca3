"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.ride_consumer import RideConsumer

websocket_urlpatterns = [
    # Ride session endpoint: booking, cancelling and live ride updates
    # URL: ws://localhost:8000/ws/rides/?token=<access>
    re_path(
        r"ws/rides/$",
        RideConsumer.as_asgi(),
        name="rides-ws"
    ),
]
