import random
import threading
from decimal import Decimal
from unittest.mock import MagicMock, Mock

from django.core.cache import cache
from django.test import SimpleTestCase

from common.utils import calculate_distance
from services.exceptions import (
	NotAuthenticatedError,
	RideAlreadyTerminalError,
	RideNotFoundError,
	RideValidationError,
	StoreError,
)
from services.matching import DriverLocator
from services.pricing import DEFAULT_PRICING, FareCalculator
from services.ride_management import (
	Location,
	RideLifecycleService,
	RideRequest,
	RideSessionController,
	RideSnapshot,
	RouteEstimate,
	SessionUser,
)
from services.store import InMemoryDataStore

PICKUP = Location(37.7749, -122.4194, '1 Market St')
DESTINATION = Location(37.7849, -122.4094, '500 Howard St')


def make_driver(**overrides):
	driver = {
		'name': 'Driver',
		'email': 'driver@example.com',
		'phone': '5550000',
		'rating': 4.5,
		'vehicle_type': 'sedan',
		'license_plate': 'ABC123',
		'status': 'available',
		'documents_verified': True,
		'current_latitude': 37.7760,
		'current_longitude': -122.4180,
		'total_trips': 0,
		'total_earnings': Decimal('0'),
	}
	driver.update(overrides)
	return driver


class FailingUpdatesStore(InMemoryDataStore):
	"""In-memory store whose updates to the listed collections raise StoreError."""

	def __init__(self, *collections):
		super().__init__()
		self.failing = set(collections)

	def update(self, collection, filters, values):
		if collection in self.failing:
			raise StoreError(f'{collection} unavailable')
		return super().update(collection, filters, values)


class InMemoryDataStoreTests(SimpleTestCase):
	def setUp(self):
		self.store = InMemoryDataStore()

	def test_insert_assigns_ids_and_copies_rows(self):
		values = {'name': 'A'}
		row = self.store.insert('drivers', values)
		self.assertEqual(row['id'], 1)
		self.assertIn('created_at', row)

		row['name'] = 'changed'
		self.assertEqual(self.store.select_one('drivers', {'id': 1})['name'], 'A')
		self.assertNotIn('id', values)

	def test_filters_support_in_and_isnull(self):
		self.store.insert('rides', {'status': 'active', 'driver_id': None})
		self.store.insert('rides', {'status': 'active', 'driver_id': 3})
		self.store.insert('rides', {'status': 'cancelled', 'driver_id': None})

		waiting = self.store.select('rides', {'status__in': ['active'], 'driver_id__isnull': True})
		self.assertEqual([r['id'] for r in waiting], [1])

	def test_select_orders_and_limits(self):
		for rating in (4.0, 4.8, 4.2):
			self.store.insert('drivers', {'rating': rating})
		rows = self.store.select('drivers', order_by=['-rating'], limit=2)
		self.assertEqual([r['rating'] for r in rows], [4.8, 4.2])

	def test_update_returns_only_matched_rows(self):
		self.store.insert('drivers', {'status': 'busy'})
		self.store.insert('drivers', {'status': 'offline'})
		updated = self.store.update('drivers', {'status': 'busy'}, {'status': 'available'})
		self.assertEqual(len(updated), 1)
		self.assertEqual(updated[0]['status'], 'available')
		self.assertEqual(self.store.update('drivers', {'id': 99}, {'status': 'busy'}), [])

	def test_upsert_updates_on_conflict_key(self):
		first = self.store.upsert('passengers', {'user_id': 'u1', 'name': 'A'}, on_conflict=['user_id'])
		second = self.store.upsert('passengers', {'user_id': 'u1', 'name': 'B'}, on_conflict=['user_id'])
		self.assertEqual(first['id'], second['id'])
		self.assertEqual(len(self.store.select('passengers')), 1)
		self.assertEqual(second['name'], 'B')

	def test_concurrent_first_upserts_create_one_row(self):
		start = threading.Barrier(8)

		def upsert():
			start.wait()
			self.store.upsert('passengers', {'user_id': 'u1', 'name': 'A'}, on_conflict=['user_id'])

		threads = [threading.Thread(target=upsert) for _ in range(8)]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join()

		self.assertEqual(len(self.store.select('passengers', {'user_id': 'u1'})), 1)

	def test_unknown_collection_and_lookup_raise_store_error(self):
		with self.assertRaises(StoreError):
			self.store.select('vehicles')
		with self.assertRaises(StoreError):
			self.store.select('rides', {'fare__gte': 1})


class FareCalculatorTests(SimpleTestCase):
	def setUp(self):
		cache.clear()
		self.store = InMemoryDataStore()
		self.calculator = FareCalculator(self.store, cache_timeout=0)

	def test_short_trip_is_floored_at_minimum_fare(self):
		self.assertEqual(self.calculator.calculate_fare(0, 0, 'economy'), Decimal('5.25'))

	def test_economy_fare_for_city_hop(self):
		distance = calculate_distance(PICKUP.latitude, PICKUP.longitude, DESTINATION.latitude, DESTINATION.longitude)
		self.assertEqual(self.calculator.calculate_fare(distance, 4, 'economy'), Decimal('6.20'))

	def test_tier_multipliers(self):
		self.assertEqual(self.calculator.calculate_fare(10, 25, 'economy'), Decimal('21.75'))
		# 5.25 + 16.80 + 8.125, half-up
		self.assertEqual(self.calculator.calculate_fare(10, 25, 'comfort'), Decimal('30.18'))
		self.assertEqual(self.calculator.calculate_fare(10, 25, 'luxury'), Decimal('42.95'))

	def test_tier_minimum_scales_with_base(self):
		self.assertEqual(self.calculator.calculate_fare(0, 0, 'luxury'), Decimal('11.55'))

	def test_unknown_tier_priced_as_economy(self):
		self.assertEqual(
			self.calculator.calculate_fare(3, 8, 'hovercraft'),
			self.calculator.calculate_fare(3, 8, 'economy'),
		)
		self.assertEqual(
			self.calculator.calculate_fare(3, 8, None),
			self.calculator.calculate_fare(3, 8, 'economy'),
		)

	def test_fare_grows_with_distance_above_floor(self):
		fares = [self.calculator.calculate_fare(d, d * 3, 'economy') for d in (2, 4, 8, 16)]
		self.assertEqual(fares, sorted(fares))
		self.assertEqual(len(set(fares)), 4)

	def test_fare_strictly_increases_with_distance_at_fixed_duration(self):
		for tier in ('economy', 'comfort', 'luxury'):
			fares = [self.calculator.calculate_fare(d, 30, tier) for d in (10, 12, 15, 20)]
			for shorter, longer in zip(fares, fares[1:]):
				self.assertLess(shorter, longer, tier)

	def test_fare_strictly_increases_with_duration_at_fixed_distance(self):
		for tier in ('economy', 'comfort', 'luxury'):
			fares = [self.calculator.calculate_fare(10, m, tier) for m in (20, 25, 30, 45)]
			for quicker, slower in zip(fares, fares[1:]):
				self.assertLess(quicker, slower, tier)

	def test_negative_inputs_rejected(self):
		with self.assertRaises(RideValidationError):
			self.calculator.calculate_fare(-1, 0, 'economy')
		with self.assertRaises(RideValidationError):
			self.calculator.calculate_fare(1, -5, 'economy')

	def test_newest_pricing_config_wins(self):
		self.store.insert('pricing_config', {'base_fare': Decimal('9.00'), 'per_km_rate': Decimal('9.00'), 'per_minute_rate': Decimal('9.00')})
		self.store.insert('pricing_config', {'base_fare': Decimal('5.00'), 'per_km_rate': Decimal('2.00'), 'per_minute_rate': Decimal('0.50')})
		self.assertEqual(self.calculator.calculate_fare(10, 25, 'economy'), Decimal('37.50'))

	def test_missing_config_fields_fall_back_individually(self):
		self.store.insert('pricing_config', {'base_fare': Decimal('4.00'), 'per_km_rate': Decimal('0'), 'per_minute_rate': None})
		pricing = self.calculator.get_pricing()
		self.assertEqual(pricing.base_fare, Decimal('4.00'))
		self.assertEqual(pricing.per_km_rate, DEFAULT_PRICING.per_km_rate)
		self.assertEqual(pricing.per_minute_rate, DEFAULT_PRICING.per_minute_rate)

	def test_store_failure_uses_defaults(self):
		store = Mock()
		store.select.side_effect = StoreError('down')
		calculator = FareCalculator(store, cache_timeout=0)
		self.assertEqual(calculator.get_pricing(), DEFAULT_PRICING)

	def test_pricing_is_cached(self):
		calculator = FareCalculator(self.store, cache_timeout=60)
		self.assertEqual(calculator.get_pricing(), DEFAULT_PRICING)

		self.store.insert('pricing_config', {'base_fare': Decimal('8.00'), 'per_km_rate': Decimal('1.00'), 'per_minute_rate': Decimal('1.00')})
		self.assertEqual(calculator.get_pricing(), DEFAULT_PRICING)

		cache.clear()
		self.assertEqual(calculator.get_pricing().base_fare, Decimal('8.00'))


class DriverLocatorTests(SimpleTestCase):
	def setUp(self):
		self.store = InMemoryDataStore()
		self.locator = DriverLocator(self.store, rng=random.Random(7), synthetic_radius_km=2.0)

	def test_only_verified_free_drivers_with_vehicle_are_returned(self):
		self.store.insert('drivers', make_driver(name='ok'))
		self.store.insert('drivers', make_driver(name='legacy', status='active'))
		self.store.insert('drivers', make_driver(name='unverified', documents_verified=False))
		self.store.insert('drivers', make_driver(name='busy', status='busy'))
		self.store.insert('drivers', make_driver(name='offline', status='offline'))
		self.store.insert('drivers', make_driver(name='no-vehicle', vehicle_type=''))

		names = sorted(c.name for c in self.locator.find_nearby(PICKUP, 10))
		self.assertEqual(names, ['legacy', 'ok'])

	def test_drivers_outside_radius_are_excluded(self):
		self.store.insert('drivers', make_driver(name='near'))
		self.store.insert('drivers', make_driver(name='far', current_latitude=38.5, current_longitude=-122.4194))

		candidates = self.locator.find_nearby(PICKUP, 10)
		self.assertEqual([c.name for c in candidates], ['near'])
		self.assertTrue(all(c.distance_km <= 10 for c in candidates))

	def test_sorted_by_rating_then_distance(self):
		self.store.insert('drivers', make_driver(name='close-good', rating=4.5))
		self.store.insert('drivers', make_driver(name='far-best', rating=4.9, current_latitude=37.80, current_longitude=-122.44))
		self.store.insert('drivers', make_driver(name='far-good', rating=4.5, current_latitude=37.79, current_longitude=-122.43))

		names = [c.name for c in self.locator.find_nearby(PICKUP, 10)]
		self.assertEqual(names, ['far-best', 'close-good', 'far-good'])

	def test_missing_location_is_synthesized_near_pickup(self):
		self.store.insert('drivers', make_driver(current_latitude=None, current_longitude=None))

		candidates = self.locator.find_nearby(PICKUP, 10)
		self.assertEqual(len(candidates), 1)
		self.assertTrue(candidates[0].location_synthesized)
		self.assertLessEqual(candidates[0].distance_km, 2.0 + 1e-6)

	def test_store_failure_returns_empty(self):
		store = Mock()
		store.select.side_effect = StoreError('down')
		self.assertEqual(DriverLocator(store).find_nearby(PICKUP, 10), [])

	def test_map_listing_keeps_only_free_drivers_with_known_location(self):
		self.store.insert('drivers', make_driver(name='ok'))
		self.store.insert('drivers', make_driver(name='unverified', documents_verified=False))
		self.store.insert('drivers', make_driver(name='busy', status='busy'))
		self.store.insert('drivers', make_driver(name='unplaced', current_latitude=None, current_longitude=None))
		self.store.insert('drivers', make_driver(name='far', current_latitude=37.90, current_longitude=-122.4194))

		nearby = self.locator.list_available_near(PICKUP.latitude, PICKUP.longitude)

		self.assertEqual([d.name for d in nearby], ['ok', 'unverified'])
		self.assertFalse(any(d.location_synthesized for d in nearby))
		self.assertTrue(all(d.distance_km <= 5 for d in nearby))

	def test_map_listing_is_not_ranked(self):
		self.store.insert('drivers', make_driver(name='first', rating=3.0))
		self.store.insert('drivers', make_driver(name='second', rating=5.0))

		nearby = self.locator.list_available_near(PICKUP.latitude, PICKUP.longitude, radius_km=5)
		self.assertEqual([d.name for d in nearby], ['first', 'second'])

	def test_map_listing_radius_must_not_be_negative(self):
		with self.assertRaises(RideValidationError):
			self.locator.list_available_near(PICKUP.latitude, PICKUP.longitude, radius_km=-1)


class RideLifecycleServiceTests(SimpleTestCase):
	def setUp(self):
		self.store = InMemoryDataStore()
		self.notifier = Mock()
		self.service = RideLifecycleService(
			store=self.store,
			fare_calculator=FareCalculator(self.store, cache_timeout=0),
			driver_locator=DriverLocator(self.store, rng=random.Random(3)),
			notifier=self.notifier,
		)
		self.profile = SessionUser(user_id='user-1', email='rider@example.com', display_name='Rider One')

	def _request(self, **overrides):
		values = {'pickup': PICKUP, 'destination': DESTINATION, 'ride_type': 'economy'}
		values.update(overrides)
		return RideRequest(**values)

	def _driver(self, **overrides):
		return self.store.insert('drivers', make_driver(**overrides))

	# ---------- request ----------

	def test_request_without_drivers_creates_waiting_ride(self):
		ride = self.service.request_ride('user-1', self._request(), self.profile)

		self.assertEqual(ride.status, 'active')
		self.assertIsNone(ride.driver_id)
		self.assertAlmostEqual(ride.distance_km, 1.417, places=2)
		self.assertEqual(ride.duration_minutes, 4)
		self.assertEqual(ride.fare, Decimal('6.20'))
		self.assertEqual(ride.eta, '3 min')
		self.assertEqual(ride.pickup_location, '1 Market St')
		self.assertIsNone(ride.completed_at)
		self.notifier.assert_called_once_with(ride, 'created')

		passenger = self.store.select_one('passengers', {'user_id': 'user-1'})
		self.assertEqual(passenger['id'], ride.passenger_id)
		self.assertEqual(passenger['name'], 'Rider One')
		self.assertEqual(passenger['email'], 'rider@example.com')

	def test_request_assigns_highest_rated_driver(self):
		self._driver(name='ok', rating=4.2)
		best = self._driver(name='best', rating=4.9)

		ride = self.service.request_ride('user-1', self._request())

		self.assertEqual(ride.driver_id, best['id'])
		self.assertEqual(ride.status, 'active')
		self.assertEqual(self.store.select_one('drivers', {'id': best['id']})['status'], 'busy')
		self.notifier.assert_called_once_with(ride, 'assigned')

	def test_estimate_matches_request(self):
		estimate = self.service.get_route_estimate(PICKUP, DESTINATION, 'comfort')
		ride = self.service.request_ride('user-1', self._request(ride_type='comfort'))

		self.assertEqual(estimate, RouteEstimate(ride.distance_km, ride.duration_minutes, ride.fare))

	def test_unknown_tier_is_stored_as_economy(self):
		ride = self.service.request_ride('user-1', self._request(ride_type='rocket'))
		self.assertEqual(ride.ride_type, 'economy')

	def test_invalid_requests_write_nothing(self):
		bad_requests = [
			self._request(pickup=None),
			self._request(destination=None),
			self._request(passenger_count=0),
			self._request(pickup=Location(91, 0)),
		]
		for request in bad_requests:
			with self.assertRaises(RideValidationError):
				self.service.request_ride('user-1', request)

		self.assertEqual(self.store.select('rides'), [])
		self.assertEqual(self.store.select('passengers'), [])

	def test_assignment_failure_does_not_fail_request(self):
		locator = Mock()
		locator.find_nearby.side_effect = RuntimeError('boom')
		service = RideLifecycleService(
			store=self.store,
			fare_calculator=FareCalculator(self.store, cache_timeout=0),
			driver_locator=locator,
			notifier=self.notifier,
		)

		ride = service.request_ride('user-1', self._request())
		self.assertIsNone(ride.driver_id)
		self.assertEqual(len(self.store.select('rides')), 1)

	def _service_on(self, store):
		return RideLifecycleService(
			store=store,
			fare_calculator=FareCalculator(store, cache_timeout=0),
			driver_locator=DriverLocator(store, rng=random.Random(3)),
			notifier=self.notifier,
		)

	def test_failed_driver_write_leaves_ride_unassigned(self):
		store = FailingUpdatesStore('drivers')
		driver = store.insert('drivers', make_driver())
		service = self._service_on(store)

		ride = service.request_ride('user-1', self._request())

		self.assertIsNone(ride.driver_id)
		self.assertIsNone(store.select_one('rides', {'id': ride.id})['driver_id'])
		self.assertEqual(store.select_one('drivers', {'id': driver['id']})['status'], 'available')

		store.failing.clear()
		second = service.request_ride('user-2', self._request())
		self.assertEqual(second.driver_id, driver['id'])
		self.assertEqual([r.id for r in service.list_waiting_rides()], [ride.id])

	def test_failed_ride_write_releases_claimed_driver(self):
		store = FailingUpdatesStore('rides')
		driver = store.insert('drivers', make_driver())

		ride = self._service_on(store).request_ride('user-1', self._request())

		self.assertIsNone(ride.driver_id)
		self.assertEqual(store.select_one('drivers', {'id': driver['id']})['status'], 'available')

	def test_assignment_skips_driver_taken_meanwhile(self):
		taken = self._driver(name='taken', rating=5.0)
		free = self._driver(name='free', rating=4.0)
		locator = DriverLocator(self.store, rng=random.Random(3))
		candidates = locator.find_nearby(PICKUP)
		self.store.update('drivers', {'id': taken['id']}, {'status': 'busy'})
		stale_locator = Mock()
		stale_locator.find_nearby.return_value = candidates
		service = RideLifecycleService(
			store=self.store,
			fare_calculator=FareCalculator(self.store, cache_timeout=0),
			driver_locator=stale_locator,
			notifier=self.notifier,
		)

		ride = service.request_ride('user-1', self._request())

		self.assertEqual(ride.driver_id, free['id'])
		self.assertEqual(self.store.select_one('drivers', {'id': free['id']})['status'], 'busy')

	def test_notifier_errors_are_swallowed(self):
		self.notifier.side_effect = RuntimeError('no channel layer')
		ride = self.service.request_ride('user-1', self._request())
		self.assertEqual(ride.status, 'active')

	# ---------- passengers & queries ----------

	def test_ensure_passenger_reuses_existing_record(self):
		first = self.service.ensure_passenger('user-1', self.profile)
		second = self.service.ensure_passenger('user-1', SessionUser('user-1', 'other@example.com', 'Other'))

		self.assertEqual(first, second)
		passenger = self.store.select_one('passengers', {'user_id': 'user-1'})
		self.assertEqual(passenger['name'], 'Rider One')

	def test_ensure_passenger_without_profile_uses_fallbacks(self):
		passenger_id = self.service.ensure_passenger('user-2')
		passenger = self.store.select_one('passengers', {'id': passenger_id})
		self.assertEqual(passenger['email'], 'user@example.com')
		self.assertEqual(passenger['name'], 'User')
		self.assertEqual(passenger['status'], 'active')

	def test_get_user_rides_for_unknown_user_is_empty_and_read_only(self):
		self.assertEqual(self.service.get_user_rides('nobody'), [])
		self.assertEqual(self.store.select('passengers'), [])

	def test_get_user_rides_newest_first_and_scoped_to_user(self):
		first = self.service.request_ride('user-1', self._request())
		second = self.service.request_ride('user-1', self._request())
		self.service.request_ride('user-2', self._request())

		rides = self.service.get_user_rides('user-1')
		self.assertEqual([r.id for r in rides], [second.id, first.id])
		self.assertEqual(rides, self.service.get_user_rides('user-1'))

	def test_get_ride_missing_raises(self):
		with self.assertRaises(RideNotFoundError):
			self.service.get_ride(404)

	# ---------- assignment ----------

	def test_assign_driver_returns_none_when_nobody_available(self):
		ride = self.service.request_ride('user-1', self._request())
		self.assertIsNone(self.service.assign_driver(ride.id))
		self.assertEqual([r.id for r in self.service.list_waiting_rides()], [ride.id])

	def test_assign_driver_later_picks_up_waiting_ride(self):
		ride = self.service.request_ride('user-1', self._request())
		driver = self._driver()

		assigned = self.service.assign_driver(ride.id)
		self.assertEqual(assigned.driver_id, driver['id'])
		self.assertEqual(self.service.list_waiting_rides(), [])

	def test_assign_driver_keeps_existing_driver(self):
		driver = self._driver()
		ride = self.service.request_ride('user-1', self._request())
		self._driver(name='second', rating=5.0)

		self.assertEqual(self.service.assign_driver(ride.id).driver_id, driver['id'])

	def test_assign_driver_on_terminal_ride_raises(self):
		ride = self.service.request_ride('user-1', self._request())
		self.service.cancel_ride(ride.id)
		self._driver()

		with self.assertRaises(RideAlreadyTerminalError):
			self.service.assign_driver(ride.id)

	# ---------- cancel ----------

	def test_cancel_frees_assigned_driver(self):
		driver = self._driver()
		ride = self.service.request_ride('user-1', self._request())

		cancelled = self.service.cancel_ride(ride.id, 'changed plans')

		self.assertEqual(cancelled.status, 'cancelled')
		self.assertIsNotNone(cancelled.completed_at)
		self.assertEqual(cancelled.cancellation_reason, 'changed plans')
		self.assertEqual(self.store.select_one('drivers', {'id': driver['id']})['status'], 'available')
		self.notifier.assert_called_with(cancelled, 'cancelled')

	def test_cancel_leaves_non_busy_driver_status_alone(self):
		driver = self._driver()
		ride = self.service.request_ride('user-1', self._request())
		self.store.update('drivers', {'id': driver['id']}, {'status': 'offline'})

		self.service.cancel_ride(ride.id)
		self.assertEqual(self.store.select_one('drivers', {'id': driver['id']})['status'], 'offline')

	def test_cancel_twice_raises_already_terminal(self):
		ride = self.service.request_ride('user-1', self._request())
		self.service.cancel_ride(ride.id)

		with self.assertRaises(RideAlreadyTerminalError) as ctx:
			self.service.cancel_ride(ride.id)
		self.assertEqual(ctx.exception.status, 'cancelled')

	def test_cancel_missing_ride_raises_not_found(self):
		with self.assertRaises(RideNotFoundError):
			self.service.cancel_ride(12345)

	# ---------- complete ----------

	def test_complete_with_actual_fare_overrides_estimate(self):
		driver = self._driver()
		ride = self.service.request_ride('user-1', self._request())

		completed = self.service.complete_ride(ride.id, Decimal('25.00'))

		self.assertEqual(completed.status, 'completed')
		self.assertEqual(completed.fare, Decimal('25.00'))
		self.assertIsNotNone(completed.completed_at)

		driver_row = self.store.select_one('drivers', {'id': driver['id']})
		self.assertEqual(driver_row['status'], 'available')
		self.assertEqual(driver_row['total_trips'], 1)
		self.assertEqual(driver_row['total_earnings'], Decimal('25.00'))

		passenger = self.store.select_one('passengers', {'id': ride.passenger_id})
		self.assertEqual(passenger['total_trips'], 1)
		self.assertEqual(passenger['total_spent'], Decimal('25.00'))

	def test_complete_without_fare_keeps_estimate(self):
		ride = self.service.request_ride('user-1', self._request())
		completed = self.service.complete_ride(ride.id)
		self.assertEqual(completed.fare, ride.fare)

	def test_complete_with_zero_fare_is_allowed(self):
		ride = self.service.request_ride('user-1', self._request())
		self.assertEqual(self.service.complete_ride(ride.id, 0).fare, Decimal('0.00'))

	def test_complete_with_negative_fare_is_rejected(self):
		ride = self.service.request_ride('user-1', self._request())
		with self.assertRaises(RideValidationError):
			self.service.complete_ride(ride.id, Decimal('-1'))
		self.assertEqual(self.service.get_ride(ride.id).status, 'active')

	def test_complete_cancelled_ride_raises(self):
		ride = self.service.request_ride('user-1', self._request())
		self.service.cancel_ride(ride.id)
		with self.assertRaises(RideAlreadyTerminalError):
			self.service.complete_ride(ride.id)

	def test_complete_with_non_finite_or_garbage_fare_is_rejected(self):
		ride = self.service.request_ride('user-1', self._request())
		for bad in (float('inf'), float('nan'), 'abc', '-0.01'):
			with self.assertRaises(RideValidationError):
				self.service.complete_ride(ride.id, bad)
		self.assertEqual(self.service.get_ride(ride.id).status, 'active')

	def test_complete_rounds_fare_half_up(self):
		ride = self.service.request_ride('user-1', self._request())
		self.assertEqual(self.service.complete_ride(ride.id, '10.005').fare, Decimal('10.01'))

	# ---------- ownership ----------

	def test_other_user_cannot_cancel_or_complete(self):
		ride = self.service.request_ride('user-1', self._request())
		self.service.ensure_passenger('user-2')

		with self.assertRaises(RideNotFoundError):
			self.service.cancel_ride(ride.id, 'not mine', user_id='user-2')
		with self.assertRaises(RideNotFoundError):
			self.service.complete_ride(ride.id, user_id='user-2')
		with self.assertRaises(RideNotFoundError):
			self.service.cancel_ride(ride.id, user_id='no-passenger-yet')

		self.assertEqual(self.service.get_ride(ride.id).status, 'active')

	def test_owner_can_cancel(self):
		ride = self.service.request_ride('user-1', self._request())
		cancelled = self.service.cancel_ride(ride.id, 'plans changed', user_id='user-1')
		self.assertEqual(cancelled.status, 'cancelled')

	# ---------- map ----------

	def test_nearby_drivers_for_map(self):
		driver = self._driver()
		self._driver(name='unplaced', current_latitude=None, current_longitude=None)

		drivers = self.service.get_nearby_drivers(PICKUP.latitude, PICKUP.longitude)
		self.assertEqual([d.driver_id for d in drivers], [driver['id']])

		with self.assertRaises(RideValidationError):
			self.service.get_nearby_drivers(95, 0)


def snapshot(ride_id, status='active'):
	return RideSnapshot(id=ride_id, passenger_id=1, status=status, fare=Decimal('6.20'))


class RideSessionControllerTests(SimpleTestCase):
	def setUp(self):
		self.service = MagicMock()
		self.service.get_user_rides.return_value = []
		self.user = SessionUser(user_id='user-1', email='rider@example.com')
		self.session = RideSessionController(self.user, self.service)

	async def test_load_rides_without_user_returns_none(self):
		session = RideSessionController(None, self.service)
		self.assertIsNone(await session.load_rides())
		self.service.get_user_rides.assert_not_called()

	async def test_mutations_without_user_raise(self):
		session = RideSessionController(None, self.service)
		with self.assertRaises(NotAuthenticatedError):
			await session.request_ride(RideRequest(PICKUP, DESTINATION))
		with self.assertRaises(NotAuthenticatedError):
			await session.cancel_ride(1)
		with self.assertRaises(NotAuthenticatedError):
			await session.complete_ride(1)
		self.service.request_ride.assert_not_called()

	async def test_load_rides_derives_active_ride(self):
		self.service.get_user_rides.return_value = [snapshot(3, 'completed'), snapshot(2), snapshot(1)]

		rides = await self.session.load_rides()

		self.assertEqual([r.id for r in rides], [3, 2, 1])
		self.assertEqual(self.session.rides, rides)
		self.assertEqual(self.session.active_ride.id, 2)

	async def test_is_busy_while_operation_runs(self):
		seen = []

		def get_user_rides(user_id):
			seen.append(self.session.is_busy)
			return [snapshot(1)]

		self.service.get_user_rides.side_effect = get_user_rides

		await self.session.load_rides()

		self.assertEqual(seen, [True])
		self.assertFalse(self.session.is_busy)

	async def test_busy_flag_resets_after_failure(self):
		self.service.cancel_ride.side_effect = RideNotFoundError('missing')
		with self.assertRaises(RideNotFoundError):
			await self.session.cancel_ride(9)
		self.assertFalse(self.session.is_busy)

	async def test_request_sets_active_ride_and_reloads(self):
		self.service.request_ride.return_value = snapshot(2)
		self.service.get_user_rides.return_value = [snapshot(2), snapshot(1, 'completed')]

		ride = await self.session.request_ride(RideRequest(PICKUP, DESTINATION))

		self.assertEqual(self.service.request_ride.call_args[0][0], 'user-1')
		self.assertEqual(self.session.active_ride, ride)
		self.assertEqual([r.id for r in self.session.rides], [2, 1])
		self.service.get_user_rides.assert_called_once_with('user-1')

	async def test_cancel_clears_active_ride(self):
		self.service.request_ride.return_value = snapshot(2)
		self.service.get_user_rides.return_value = [snapshot(2)]
		await self.session.request_ride(RideRequest(PICKUP, DESTINATION))

		self.service.cancel_ride.return_value = snapshot(2, 'cancelled')
		self.service.get_user_rides.return_value = [snapshot(2, 'cancelled')]
		await self.session.cancel_ride(2, 'late')

		self.service.cancel_ride.assert_called_once_with(2, 'late', 'user-1')
		self.assertIsNone(self.session.active_ride)
		self.assertEqual(self.session.rides[0].status, 'cancelled')

	async def test_completing_other_ride_keeps_remaining_active_ride(self):
		self.service.complete_ride.return_value = snapshot(1, 'completed')
		self.service.get_user_rides.return_value = [snapshot(3), snapshot(1, 'completed')]

		await self.session.complete_ride(1, Decimal('10'))

		self.service.complete_ride.assert_called_once_with(1, Decimal('10'), 'user-1')
		self.assertEqual(self.session.active_ride.id, 3)

	async def test_failed_reload_patches_local_copy(self):
		self.session.rides = [snapshot(2), snapshot(1, 'completed')]
		self.service.cancel_ride.return_value = snapshot(2, 'cancelled')
		self.service.get_user_rides.side_effect = StoreError('down')

		ride = await self.session.cancel_ride(2)

		self.assertEqual(ride.status, 'cancelled')
		self.assertEqual([r.status for r in self.session.rides], ['cancelled', 'completed'])
		self.assertIsNone(self.session.active_ride)

	async def test_estimate_does_not_need_user(self):
		self.service.get_route_estimate.return_value = RouteEstimate(1.4, 4, Decimal('6.20'))
		session = RideSessionController(None, self.service)
		estimate = await session.get_route_estimate(PICKUP, DESTINATION, 'economy')
		self.assertEqual(estimate.fare, Decimal('6.20'))
