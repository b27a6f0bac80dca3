from decimal import Decimal

from django.db import models

from drivers.models import Driver
from passengers.models import Passenger

# Ride status values. 'active' covers searching, driver en route and in progress.
RIDE_STATUS_REQUESTED = 'requested'
RIDE_STATUS_ACTIVE = 'active'
RIDE_STATUS_COMPLETED = 'completed'
RIDE_STATUS_CANCELLED = 'cancelled'

RIDE_OPEN_STATUSES = (RIDE_STATUS_REQUESTED, RIDE_STATUS_ACTIVE)
RIDE_TERMINAL_STATUSES = (RIDE_STATUS_COMPLETED, RIDE_STATUS_CANCELLED)

# Ride tiers
RIDE_TYPE_ECONOMY = 'economy'
RIDE_TYPE_COMFORT = 'comfort'
RIDE_TYPE_LUXURY = 'luxury'

RIDE_TYPES = (RIDE_TYPE_ECONOMY, RIDE_TYPE_COMFORT, RIDE_TYPE_LUXURY)


class Ride(models.Model):
    """A passenger's trip from request to completion or cancellation"""

    STATUS_CHOICES = [
        (RIDE_STATUS_REQUESTED, 'Requested'),
        (RIDE_STATUS_ACTIVE, 'Active'),
        (RIDE_STATUS_COMPLETED, 'Completed'),
        (RIDE_STATUS_CANCELLED, 'Cancelled'),
    ]

    RIDE_TYPE_CHOICES = [
        (RIDE_TYPE_ECONOMY, 'Economy'),
        (RIDE_TYPE_COMFORT, 'Comfort'),
        (RIDE_TYPE_LUXURY, 'Luxury'),
    ]

    # Foreign keys
    passenger = models.ForeignKey(
        Passenger,
        on_delete=models.PROTECT,
        related_name='rides'
    )

    driver = models.ForeignKey(
        Driver,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='rides'
    )

    # Pickup location
    pickup_location = models.TextField(blank=True)
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)

    # Dropoff location
    dropoff_location = models.TextField(blank=True)
    dropoff_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    dropoff_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)

    # Booking details
    ride_type = models.CharField(max_length=20, choices=RIDE_TYPE_CHOICES, default=RIDE_TYPE_ECONOMY)
    passenger_count = models.PositiveSmallIntegerField(default=1)
    scheduled_time = models.DateTimeField(null=True, blank=True)

    # Status & estimate
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=RIDE_STATUS_REQUESTED)
    fare = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    distance_km = models.FloatField(default=0)
    duration_minutes = models.PositiveIntegerField(default=0)
    eta = models.CharField(max_length=32, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True)

    class Meta:
        db_table = 'rides'
        ordering = ['-created_at']

    def __str__(self):
        return f"Ride #{self.id} - {self.passenger} - {self.status}"


class PricingConfig(models.Model):
    """Economy-tier pricing. The newest row is the one in effect."""

    base_fare = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('3.50'))
    per_km_rate = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('1.20'))
    per_minute_rate = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('0.25'))

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'pricing_config'
        ordering = ['-created_at']

    def __str__(self):
        return f"Pricing {self.base_fare} + {self.per_km_rate}/km + {self.per_minute_rate}/min"
