"""Fare pricing service."""

from .fare_calculator import (
    DEFAULT_PRICING,
    TIER_MULTIPLIERS,
    FareCalculator,
    PricingRates,
    normalize_ride_type,
)

__all__ = [
    "DEFAULT_PRICING",
    "TIER_MULTIPLIERS",
    "FareCalculator",
    "PricingRates",
    "normalize_ride_type",
]
