"""
Realtime app for WebSocket communication.

This app provides:
- A ride WebSocket consumer hosting one ride session per connection
- Best-effort ride update broadcasts to ``ride_<id>`` groups
- JWT authentication middleware for WebSocket connections

Key Components:
    - consumers/: WebSocket consumers (base, ride)
    - notifications.py: Ride update broadcast helper
    - middleware.py: JWT querystring authentication

Usage:
    from realtime.consumers import RideConsumer
    from realtime.notifications import notify_ride_update
"""
