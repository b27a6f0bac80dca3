"""Common utility functions."""

from .geo import (
    calculate_distance,
    distance_km,
    estimated_duration_minutes,
    eta_minutes,
    random_point_near,
)

__all__ = [
    "calculate_distance",
    "distance_km",
    "estimated_duration_minutes",
    "eta_minutes",
    "random_point_near",
]
