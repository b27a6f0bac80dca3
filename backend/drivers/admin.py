from django.contrib import admin
from drivers.models import Driver


@admin.register(Driver)
class DriverAdmin(admin.ModelAdmin):
    """Admin panel for managing drivers"""

    list_display = [
        "name",
        "vehicle_type",
        "license_plate",
        "status",
        "documents_verified",
        "rating",
        "total_trips",
        "last_location_update",
    ]

    list_filter = [
        "status",
        "documents_verified",
        "vehicle_type",
    ]

    search_fields = [
        "name",
        "email",
        "license_plate",
    ]

    readonly_fields = [
        "last_location_update",
        "total_trips",
        "total_earnings",
    ]

    ordering = ("name",)
