from django.db import models

# Canonical availability values written by the ride services.
DRIVER_STATUS_AVAILABLE = 'available'
DRIVER_STATUS_BUSY = 'busy'
DRIVER_STATUS_OFFLINE = 'offline'

# Older rows marked free drivers as 'active'; they are read as available but never written.
DRIVER_STATUS_LEGACY_ACTIVE = 'active'
DRIVER_FREE_STATUSES = (DRIVER_STATUS_AVAILABLE, DRIVER_STATUS_LEGACY_ACTIVE)


class Driver(models.Model):
    """Driver record with verification, availability status and last known location"""
    STATUS_CHOICES = [
        (DRIVER_STATUS_AVAILABLE, 'Available'),
        (DRIVER_STATUS_BUSY, 'Busy'),
        (DRIVER_STATUS_OFFLINE, 'Offline'),
    ]

    name = models.CharField(max_length=150)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    rating = models.FloatField(default=5.0)

    # Vehicle details
    vehicle_type = models.CharField(max_length=30, blank=True)
    license_plate = models.CharField(max_length=20, blank=True)

    # Status & location
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=DRIVER_STATUS_OFFLINE)
    documents_verified = models.BooleanField(default=False)
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(null=True, blank=True)

    # Cumulative stats
    total_trips = models.PositiveIntegerField(default=0)
    total_earnings = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'drivers'

    def __str__(self):
        return f"{self.name} - {self.license_plate or 'no plate'} ({self.status})"
