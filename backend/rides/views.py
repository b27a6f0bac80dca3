import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from services.exceptions import (
    NotFoundError,
    RideAlreadyTerminalError,
    RideServiceError,
    RideValidationError,
    StoreError,
)
from services.ride_management import SessionUser, get_ride_lifecycle_service
from .models import RIDE_STATUS_ACTIVE
from .serializers import (
    NearbyDriverSerializer,
    NearbyDriversQuerySerializer,
    RideCancelSerializer,
    RideCompleteSerializer,
    RideRequestCreateSerializer,
    RideSerializer,
    RouteEstimateRequestSerializer,
    RouteEstimateSerializer,
)

logger = logging.getLogger(__name__)


def _error_response(exc: RideServiceError) -> Response:
    """Map a service error onto an HTTP response."""
    if isinstance(exc, RideValidationError):
        return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, NotFoundError):
        return Response({'error': str(exc)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, RideAlreadyTerminalError):
        return Response(
            {'error': str(exc), 'status': exc.status},
            status=status.HTTP_409_CONFLICT
        )
    if isinstance(exc, StoreError):
        logger.error("Store unavailable: %s", exc)
        return Response(
            {'error': 'Ride service temporarily unavailable'},
            status=status.HTTP_503_SERVICE_UNAVAILABLE
        )
    logger.exception("Unhandled ride service error")
    return Response({'error': str(exc)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _owner_id(request):
    """User id the ride must belong to; None lets staff act on any ride."""
    if request.user.is_staff:
        return None
    return SessionUser.from_user(request.user).user_id


# ==================== Estimates ====================

@api_view(['POST'])
@permission_classes([AllowAny])
def estimate_route(request):
    """Price preview for a route before booking"""
    serializer = RouteEstimateRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    pickup, destination = serializer.get_locations()
    try:
        estimate = get_ride_lifecycle_service().get_route_estimate(
            pickup, destination, serializer.validated_data['ride_type']
        )
    except RideServiceError as exc:
        return _error_response(exc)

    return Response(RouteEstimateSerializer(estimate).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def nearby_drivers(request):
    """Free drivers with a known location around a point, for the booking map"""
    serializer = NearbyDriversQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        drivers = get_ride_lifecycle_service().get_nearby_drivers(
            data['latitude'], data['longitude'], data['radius_km']
        )
    except RideServiceError as exc:
        return _error_response(exc)

    return Response({
        'drivers': NearbyDriverSerializer(drivers, many=True).data,
        'count': len(drivers),
    })


# ==================== Passenger Ride APIs ====================

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def rides(request):
    """List the user's rides (GET) or book a new one (POST)"""
    user = SessionUser.from_user(request.user)
    service = get_ride_lifecycle_service()

    if request.method == 'GET':
        try:
            user_rides = service.get_user_rides(user.user_id)
        except RideServiceError as exc:
            return _error_response(exc)

        active = next((r for r in user_rides if r.status == RIDE_STATUS_ACTIVE), None)
        return Response({
            'rides': RideSerializer(user_rides, many=True).data,
            'active_ride': RideSerializer(active).data if active else None,
        })

    serializer = RideRequestCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        ride = service.request_ride(user.user_id, serializer.to_ride_request(), user)
    except RideServiceError as exc:
        return _error_response(exc)

    return Response(RideSerializer(ride).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cancel_ride(request, ride_id):
    """Cancel one of the caller's rides that has not ended yet (staff may cancel any ride)"""
    serializer = RideCancelSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        ride = get_ride_lifecycle_service().cancel_ride(
            ride_id, serializer.validated_data['reason'], _owner_id(request)
        )
    except RideServiceError as exc:
        return _error_response(exc)

    return Response(RideSerializer(ride).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def complete_ride(request, ride_id):
    """Mark one of the caller's rides as completed, optionally with the final fare (staff: any ride)"""
    serializer = RideCompleteSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        ride = get_ride_lifecycle_service().complete_ride(
            ride_id, serializer.validated_data['actual_fare'], _owner_id(request)
        )
    except RideServiceError as exc:
        return _error_response(exc)

    return Response(RideSerializer(ride).data)
