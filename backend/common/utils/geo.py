"""
Geographic utility functions.

This module provides core geospatial calculations used throughout the application.
All distances are in kilometers.
"""

import math
import random
from math import radians, degrees, cos, sin, asin, atan2, sqrt, ceil
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0

# City-traffic speed proxy (~24 km/h). Every duration estimate goes through it.
MINUTES_PER_KM = 2.5

# Display ETA proxy used for the ride "eta" string.
ETA_MINUTES_PER_KM = 2


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in kilometers using Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in kilometers
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(sqrt(min(1.0, a)))
    return c * EARTH_RADIUS_KM


def distance_km(a, b) -> float:
    """Haversine distance between two objects exposing ``latitude``/``longitude``."""
    return calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def estimated_duration_minutes(distance: float) -> int:
    """
    Estimate trip duration from distance.

    Example:
        >>> estimated_duration_minutes(4)
        10
    """
    return int(ceil(distance * MINUTES_PER_KM))


def eta_minutes(distance: float) -> int:
    """Whole minutes shown to the passenger as the ride ETA."""
    return int(ceil(distance * ETA_MINUTES_PER_KM))


def random_point_near(
    lat: float,
    lon: float,
    max_distance_km: float,
    rng: Optional[random.Random] = None,
) -> Tuple[float, float]:
    """
    Pick a random point at most ``max_distance_km`` away from (lat, lon).

    Walks a great-circle arc with a random bearing, so the Haversine distance
    back to the origin equals the sampled arc length.
    """
    rng = rng or random
    bearing = radians(rng.uniform(0.0, 360.0))
    angular = rng.uniform(0.0, max(0.0, float(max_distance_km))) / EARTH_RADIUS_KM

    lat1 = radians(float(lat))
    lon1 = radians(float(lon))

    lat2 = asin(sin(lat1) * cos(angular) + cos(lat1) * sin(angular) * cos(bearing))
    lon2 = lon1 + atan2(
        sin(bearing) * sin(angular) * cos(lat1),
        cos(angular) - sin(lat1) * sin(lat2),
    )
    # normalise to [-180, 180)
    lon2 = (lon2 + 3 * math.pi) % (2 * math.pi) - math.pi

    return degrees(lat2), degrees(lon2)
