"""
Fare calculation.

fare = base + distance_km * per_km + duration_minutes * per_minute
with a floor of 1.5x the tier's base fare, rounded half-up to cents.

Economy uses the stored pricing config as-is; comfort and luxury scale it by
fixed multipliers.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Tuple

from django.conf import settings
from django.core.cache import cache

from rides.models import RIDE_TYPE_COMFORT, RIDE_TYPE_ECONOMY, RIDE_TYPE_LUXURY, RIDE_TYPES
from services.exceptions import RideValidationError, StoreError
from services.store import DataStore, get_default_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingRates:
    base_fare: Decimal
    per_km_rate: Decimal
    per_minute_rate: Decimal


DEFAULT_PRICING = PricingRates(
    base_fare=Decimal("3.50"),
    per_km_rate=Decimal("1.20"),
    per_minute_rate=Decimal("0.25"),
)

# (base fare, per km, per minute) multipliers over economy
TIER_MULTIPLIERS: Dict[str, Tuple[Decimal, Decimal, Decimal]] = {
    RIDE_TYPE_ECONOMY: (Decimal("1"), Decimal("1"), Decimal("1")),
    RIDE_TYPE_COMFORT: (Decimal("1.5"), Decimal("1.4"), Decimal("1.3")),
    RIDE_TYPE_LUXURY: (Decimal("2.2"), Decimal("2.0"), Decimal("1.8")),
}

MINIMUM_FARE_MULTIPLIER = Decimal("1.5")
CENT = Decimal("0.01")

PRICING_CACHE_KEY = "rides:pricing_config"


def normalize_ride_type(ride_type: Optional[str]) -> str:
    """Unknown or missing tiers are priced as economy."""
    if ride_type in RIDE_TYPES:
        return ride_type
    return RIDE_TYPE_ECONOMY


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class FareCalculator:
    """Deterministic price quotes from distance, duration and ride tier."""

    def __init__(self, store: Optional[DataStore] = None, cache_timeout: Optional[int] = None):
        self._store = store or get_default_store()
        if cache_timeout is None:
            cache_timeout = getattr(settings, "RIDE_PRICING_CACHE_SECONDS", 60)
        self._cache_timeout = cache_timeout

    def get_pricing(self) -> PricingRates:
        """
        Current economy pricing.

        Missing or zero config values fall back to the defaults field by field.
        A failing store lookup falls back entirely instead of failing the quote.
        """
        if self._cache_timeout:
            cached = cache.get(PRICING_CACHE_KEY)
            if cached is not None:
                return cached

        try:
            rows = self._store.select("pricing_config", order_by=["-created_at", "-id"], limit=1)
        except StoreError:
            logger.warning("Pricing config unavailable, using default rates")
            return DEFAULT_PRICING

        row = rows[0] if rows else {}
        pricing = PricingRates(
            base_fare=_to_decimal(row.get("base_fare") or DEFAULT_PRICING.base_fare),
            per_km_rate=_to_decimal(row.get("per_km_rate") or DEFAULT_PRICING.per_km_rate),
            per_minute_rate=_to_decimal(row.get("per_minute_rate") or DEFAULT_PRICING.per_minute_rate),
        )

        if self._cache_timeout:
            cache.set(PRICING_CACHE_KEY, pricing, self._cache_timeout)
        return pricing

    def rates_for(self, ride_type: Optional[str]) -> PricingRates:
        pricing = self.get_pricing()
        base_mult, km_mult, minute_mult = TIER_MULTIPLIERS[normalize_ride_type(ride_type)]
        return PricingRates(
            base_fare=pricing.base_fare * base_mult,
            per_km_rate=pricing.per_km_rate * km_mult,
            per_minute_rate=pricing.per_minute_rate * minute_mult,
        )

    def calculate_fare(self, distance_km: float, duration_minutes: int, ride_type: Optional[str]) -> Decimal:
        if distance_km is None or distance_km < 0:
            raise RideValidationError("distance_km must be >= 0")
        if duration_minutes is None or duration_minutes < 0:
            raise RideValidationError("duration_minutes must be >= 0")

        rates = self.rates_for(ride_type)
        total = (
            rates.base_fare
            + _to_decimal(distance_km) * rates.per_km_rate
            + _to_decimal(duration_minutes) * rates.per_minute_rate
        )
        minimum = rates.base_fare * MINIMUM_FARE_MULTIPLIER
        return max(total, minimum).quantize(CENT, rounding=ROUND_HALF_UP)
