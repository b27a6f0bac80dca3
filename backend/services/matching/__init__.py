"""
Driver matching service.

This module handles:
    - Finding verified, free drivers near a pickup point
    - Ranking them for assignment (rating first, distance as tie-break)
    - Listing free drivers with a known location for the passenger map
"""

from .driver_locator import DEFAULT_MAP_RADIUS_KM, DriverCandidate, DriverLocator

__all__ = [
    "DEFAULT_MAP_RADIUS_KM",
    "DriverCandidate",
    "DriverLocator",
]
