"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import PricingConfig, Ride


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    """Ride admin"""
    list_display = ['id', 'passenger', 'driver', 'ride_type', 'status', 'fare', 'created_at', 'completed_at']
    list_filter = ['status', 'ride_type', 'created_at']
    search_fields = ['passenger__name', 'passenger__user_id', 'driver__name', 'pickup_location', 'dropoff_location']
    readonly_fields = ['created_at', 'completed_at']
    date_hierarchy = 'created_at'


@admin.register(PricingConfig)
class PricingConfigAdmin(admin.ModelAdmin):
    list_display = ("id", "base_fare", "per_km_rate", "per_minute_rate", "created_at")
    ordering = ("-created_at",)
