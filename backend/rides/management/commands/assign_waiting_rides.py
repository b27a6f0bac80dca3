import logging

from django.core.management.base import BaseCommand

from services.exceptions import RideServiceError
from services.ride_management import get_ride_lifecycle_service

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Retry driver assignment for active rides that still have no driver."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=0,
            help="Process at most this many rides, oldest first (default: all).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List waiting rides without assigning drivers.",
        )

    def handle(self, *args, **options):
        service = get_ride_lifecycle_service()
        waiting = service.list_waiting_rides()
        if options["limit"] > 0:
            waiting = waiting[:options["limit"]]

        if options["dry_run"]:
            for ride in waiting:
                self.stdout.write(f"Ride {ride.id} waiting since {ride.created_at}")
            self.stdout.write(
                self.style.WARNING(f"DRY RUN: {len(waiting)} ride(s) waiting for a driver.")
            )
            return

        assigned = 0
        for ride in waiting:
            try:
                if service.assign_driver(ride.id) is not None:
                    assigned += 1
            except RideServiceError as e:
                # Cancelled meanwhile, or the store hiccupped; move on
                logger.warning("Skipping ride %s: %s", ride.id, e)

        self.stdout.write(
            self.style.SUCCESS(
                f"Assigned drivers to {assigned} of {len(waiting)} waiting ride(s)."
            )
        )
