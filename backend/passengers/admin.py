from django.contrib import admin
from passengers.models import Passenger


@admin.register(Passenger)
class PassengerAdmin(admin.ModelAdmin):
    """Admin panel for passengers created on first ride request"""

    list_display = ["user_id", "name", "email", "status", "total_trips", "total_spent", "created_at"]
    list_filter = ["status"]
    search_fields = ["user_id", "name", "email"]
    readonly_fields = ["created_at", "total_trips", "total_spent"]
