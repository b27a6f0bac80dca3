from django.db import models


class Passenger(models.Model):
    """Passenger record, one per identity-provider user, created on first ride request"""

    user_id = models.CharField(max_length=128, unique=True)
    name = models.CharField(max_length=150, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, default='active')

    # Cumulative stats
    total_trips = models.PositiveIntegerField(default=0)
    total_spent = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'passengers'

    def __str__(self):
        return f"{self.name or self.email or self.user_id} ({self.status})"
