from rest_framework import serializers

from services.ride_management.types import Location, RideRequest
from .models import RIDE_TYPE_ECONOMY


class LocationSerializer(serializers.Serializer):
    """
    Validates a geocoded point sent by the client.

    Expected body:
    {
        "latitude": <float>,
        "longitude": <float>,
        "address": "<string>"
    }
    """
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    address = serializers.CharField(required=False, allow_blank=True, default="")


class RouteEstimateRequestSerializer(serializers.Serializer):
    """Serializer for pre-booking price previews"""
    pickup = LocationSerializer()
    destination = LocationSerializer()
    # Unknown tiers are priced as economy, so no ChoiceField here
    ride_type = serializers.CharField(required=False, default=RIDE_TYPE_ECONOMY)

    def get_locations(self):
        data = self.validated_data
        return Location(**data["pickup"]), Location(**data["destination"])


class RideRequestCreateSerializer(RouteEstimateRequestSerializer):
    """Serializer for creating ride requests"""
    passenger_count = serializers.IntegerField(min_value=1, required=False, default=1)
    scheduled_time = serializers.DateTimeField(required=False, allow_null=True, default=None)

    def to_ride_request(self) -> RideRequest:
        pickup, destination = self.get_locations()
        data = self.validated_data
        return RideRequest(
            pickup=pickup,
            destination=destination,
            ride_type=data["ride_type"],
            passenger_count=data["passenger_count"],
            scheduled_time=data["scheduled_time"],
        )


class RideCancelSerializer(serializers.Serializer):
    """Serializer for ride cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class RideCompleteSerializer(serializers.Serializer):
    """Serializer for ride completion with an optional final fare"""
    actual_fare = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True, default=None
    )


class RideSerializer(serializers.Serializer):
    """Read-only representation of a RideSnapshot"""
    id = serializers.IntegerField()
    passenger_id = serializers.IntegerField()
    driver_id = serializers.IntegerField(allow_null=True)
    pickup_location = serializers.CharField()
    dropoff_location = serializers.CharField()
    pickup_latitude = serializers.FloatField(allow_null=True)
    pickup_longitude = serializers.FloatField(allow_null=True)
    dropoff_latitude = serializers.FloatField(allow_null=True)
    dropoff_longitude = serializers.FloatField(allow_null=True)
    ride_type = serializers.CharField()
    passenger_count = serializers.IntegerField()
    scheduled_time = serializers.DateTimeField(allow_null=True)
    status = serializers.CharField()
    fare = serializers.DecimalField(max_digits=10, decimal_places=2)
    distance_km = serializers.FloatField()
    duration_minutes = serializers.IntegerField()
    eta = serializers.CharField()
    created_at = serializers.DateTimeField(allow_null=True)
    completed_at = serializers.DateTimeField(allow_null=True)
    cancellation_reason = serializers.CharField()


class RouteEstimateSerializer(serializers.Serializer):
    distance_km = serializers.FloatField()
    duration_minutes = serializers.IntegerField()
    fare = serializers.DecimalField(max_digits=10, decimal_places=2)


class NearbyDriversQuerySerializer(serializers.Serializer):
    """Query string for the passenger map: ?latitude=..&longitude=..&radius_km=.."""
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    radius_km = serializers.FloatField(min_value=0, required=False, default=5.0)


class NearbyDriverSerializer(serializers.Serializer):
    driver_id = serializers.IntegerField()
    name = serializers.CharField()
    rating = serializers.FloatField()
    vehicle_type = serializers.CharField()
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    distance_km = serializers.FloatField()
