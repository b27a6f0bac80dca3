import random
from decimal import Decimal
from io import StringIO
from unittest.mock import Mock, patch

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import DatabaseError
from django.db.models import QuerySet
from django.test import TestCase
from rest_framework.test import APIClient, APIRequestFactory, force_authenticate

from drivers.models import Driver
from passengers.models import Passenger
from services.exceptions import StoreError
from services.matching import DriverLocator
from services.pricing import FareCalculator
from services.ride_management import Location, RideLifecycleService, RideRequest
from services.store import DjangoDataStore
from .models import PricingConfig, Ride
from .views import cancel_ride, complete_ride, estimate_route, nearby_drivers, rides

User = get_user_model()

PICKUP = {'latitude': 37.7749, 'longitude': -122.4194, 'address': '1 Market St'}
DESTINATION = {'latitude': 37.7849, 'longitude': -122.4094, 'address': '500 Howard St'}


def make_service(store=None, notifier=None):
	store = store or DjangoDataStore()
	return RideLifecycleService(
		store=store,
		fare_calculator=FareCalculator(store, cache_timeout=0),
		driver_locator=DriverLocator(store, rng=random.Random(5)),
		notifier=notifier or Mock(),
	)


def make_driver(**overrides):
	values = dict(
		name='Dana Driver',
		vehicle_type='sedan',
		license_plate='7ABC123',
		status='available',
		documents_verified=True,
		rating=4.8,
		current_latitude=Decimal('37.776000'),
		current_longitude=Decimal('-122.418000'),
	)
	values.update(overrides)
	return Driver.objects.create(**values)


class DjangoDataStoreTests(TestCase):
	def setUp(self):
		self.store = DjangoDataStore()

	def test_insert_returns_row_with_column_names(self):
		passenger = self.store.insert('passengers', {'user_id': 'u1', 'name': 'Rider'})
		row = self.store.insert('rides', {
			'passenger_id': passenger['id'],
			'pickup_location': 'A',
			'dropoff_location': 'B',
			'status': 'active',
			'fare': Decimal('6.20'),
		})

		self.assertEqual(row['passenger_id'], passenger['id'])
		self.assertIsNone(row['driver_id'])
		self.assertIsNotNone(row['created_at'])
		self.assertTrue(Ride.objects.filter(pk=row['id']).exists())

	def test_conditional_update_matches_only_open_rides(self):
		passenger = Passenger.objects.create(user_id='u1')
		open_ride = Ride.objects.create(passenger=passenger, status='active')
		Ride.objects.create(passenger=passenger, status='completed')

		updated = self.store.update(
			'rides',
			{'status__in': ['requested', 'active']},
			{'status': 'cancelled'},
		)
		self.assertEqual([r['id'] for r in updated], [open_ride.pk])
		self.assertEqual(updated[0]['status'], 'cancelled')

	def test_conditional_update_skips_row_changed_after_select(self):
		passenger = Passenger.objects.create(user_id='u1')
		ride = Ride.objects.create(passenger=passenger, status='active')
		first = make_driver(name='First')
		second = make_driver(name='Second', license_plate='8XYZ987')
		values_list = QuerySet.values_list

		def assign_first_driver_meanwhile(qs, *args, **kwargs):
			pks = list(values_list(qs, *args, **kwargs))
			Ride.objects.filter(pk=ride.pk).update(driver=first)
			return pks

		with patch.object(QuerySet, 'values_list', assign_first_driver_meanwhile):
			updated = self.store.update(
				'rides',
				{'id': ride.pk, 'driver_id__isnull': True},
				{'driver_id': second.pk},
			)

		self.assertEqual(updated, [])
		ride.refresh_from_db()
		self.assertEqual(ride.driver_id, first.pk)

	def test_select_orders_and_limits(self):
		PricingConfig.objects.create(base_fare=Decimal('4.00'))
		newest = PricingConfig.objects.create(base_fare=Decimal('5.00'))

		rows = self.store.select('pricing_config', order_by=['-created_at', '-id'], limit=1)
		self.assertEqual(rows[0]['id'], newest.pk)

	def test_upsert_is_keyed_on_conflict_columns(self):
		first = self.store.upsert('passengers', {'user_id': 'u1', 'name': 'A'}, on_conflict=['user_id'])
		second = self.store.upsert('passengers', {'user_id': 'u1', 'name': 'B'}, on_conflict=['user_id'])

		self.assertEqual(first['id'], second['id'])
		self.assertEqual(Passenger.objects.get(user_id='u1').name, 'B')

	def test_database_errors_become_store_errors(self):
		with patch('django.db.models.query.QuerySet.values', side_effect=DatabaseError('gone')):
			with self.assertRaises(StoreError):
				self.store.select('drivers')

	def test_unknown_collection_raises_store_error(self):
		with self.assertRaises(StoreError):
			self.store.insert('vehicles', {})


class RideLifecycleWithDatabaseTests(TestCase):
	def setUp(self):
		self.service = make_service()

	def test_full_ride_lifecycle(self):
		driver = make_driver()
		request = RideRequest(Location(**PICKUP), Location(**DESTINATION))

		ride = self.service.request_ride('42', request)
		driver.refresh_from_db()

		self.assertEqual(ride.driver_id, driver.pk)
		self.assertEqual(ride.fare, Decimal('6.20'))
		self.assertEqual(driver.status, 'busy')

		completed = self.service.complete_ride(ride.id, Decimal('25.00'))
		driver.refresh_from_db()
		passenger = Passenger.objects.get(user_id='42')

		self.assertEqual(completed.status, 'completed')
		self.assertEqual(driver.status, 'available')
		self.assertEqual(driver.total_trips, 1)
		self.assertEqual(driver.total_earnings, Decimal('25.00'))
		self.assertEqual(passenger.total_spent, Decimal('25.00'))


class RideApiTests(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.user = User.objects.create_user(
			username='rider',
			password='pass1234',
			email='rider@example.com',
			first_name='Rita',
			last_name='Rider',
		)
		self.service = make_service()
		patcher = patch('rides.views.get_ride_lifecycle_service', return_value=self.service)
		patcher.start()
		self.addCleanup(patcher.stop)

	def _book(self, **extra):
		body = {'pickup': PICKUP, 'destination': DESTINATION, 'ride_type': 'economy'}
		body.update(extra)
		request = self.factory.post('/api/rides/', body, format='json')
		force_authenticate(request, user=self.user)
		return rides(request)

	def test_estimate_is_public(self):
		request = self.factory.post(
			'/api/rides/estimate/',
			{'pickup': PICKUP, 'destination': DESTINATION, 'ride_type': 'economy'},
			format='json'
		)
		response = estimate_route(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['duration_minutes'], 4)
		self.assertEqual(response.data['fare'], '6.20')

	def test_estimate_rejects_out_of_range_coordinates(self):
		request = self.factory.post(
			'/api/rides/estimate/',
			{'pickup': {'latitude': 120, 'longitude': 0}, 'destination': DESTINATION},
			format='json'
		)
		self.assertEqual(estimate_route(request).status_code, 400)

	def test_book_ride_creates_passenger_and_ride(self):
		response = self._book(passenger_count=2)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data['status'], 'active')
		self.assertEqual(response.data['passenger_count'], 2)
		self.assertIsNone(response.data['driver_id'])

		passenger = Passenger.objects.get(user_id=str(self.user.pk))
		self.assertEqual(passenger.name, 'Rita Rider')
		self.assertEqual(passenger.email, 'rider@example.com')

	def test_book_ride_requires_authentication(self):
		request = self.factory.post('/api/rides/', {'pickup': PICKUP, 'destination': DESTINATION}, format='json')
		self.assertEqual(rides(request).status_code, 401)

	def test_book_ride_with_zero_passengers_is_rejected(self):
		self.assertEqual(self._book(passenger_count=0).status_code, 400)
		self.assertFalse(Ride.objects.exists())

	def test_list_rides_includes_active_ride(self):
		first = self._book().data
		self._cancel(first['id'])
		second = self._book().data

		request = self.factory.get('/api/rides/')
		force_authenticate(request, user=self.user)
		response = rides(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual([r['id'] for r in response.data['rides']], [second['id'], first['id']])
		self.assertEqual(response.data['active_ride']['id'], second['id'])

	def test_list_rides_for_new_user_is_empty(self):
		request = self.factory.get('/api/rides/')
		force_authenticate(request, user=self.user)
		response = rides(request)

		self.assertEqual(response.data, {'rides': [], 'active_ride': None})
		self.assertFalse(Passenger.objects.exists())

	def _cancel(self, ride_id, reason='changed plans'):
		request = self.factory.post('/api/rides/%d/cancel/' % ride_id, {'reason': reason}, format='json')
		force_authenticate(request, user=self.user)
		return cancel_ride(request, ride_id=ride_id)

	def test_cancel_then_cancel_again_conflicts(self):
		make_driver()
		ride = self._book().data

		response = self._cancel(ride['id'])
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'cancelled')
		self.assertEqual(Driver.objects.get().status, 'available')

		again = self._cancel(ride['id'])
		self.assertEqual(again.status_code, 409)
		self.assertEqual(again.data['status'], 'cancelled')

	def test_cancel_unknown_ride_is_404(self):
		self.assertEqual(self._cancel(999).status_code, 404)

	def test_cannot_cancel_or_complete_another_users_ride(self):
		ride = self._book().data
		intruder = User.objects.create_user(username='intruder', password='pass1234')

		request = self.factory.post('/api/rides/%d/cancel/' % ride['id'], {}, format='json')
		force_authenticate(request, user=intruder)
		self.assertEqual(cancel_ride(request, ride_id=ride['id']).status_code, 404)

		request = self.factory.post('/api/rides/%d/complete/' % ride['id'], {}, format='json')
		force_authenticate(request, user=intruder)
		self.assertEqual(complete_ride(request, ride_id=ride['id']).status_code, 404)

		self.assertEqual(Ride.objects.get(pk=ride['id']).status, 'active')

	def test_staff_can_complete_any_ride(self):
		ride = self._book().data
		staff = User.objects.create_user(username='ops', password='pass1234', is_staff=True)

		request = self.factory.post('/api/rides/%d/complete/' % ride['id'], {}, format='json')
		force_authenticate(request, user=staff)
		response = complete_ride(request, ride_id=ride['id'])

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'completed')

	def test_nearby_drivers_lists_located_free_drivers(self):
		near = make_driver()
		make_driver(name='Unplaced', current_latitude=None, current_longitude=None)
		make_driver(name='Busy', status='busy')

		request = self.factory.get('/api/rides/drivers-nearby/', {
			'latitude': PICKUP['latitude'],
			'longitude': PICKUP['longitude'],
		})
		response = nearby_drivers(request)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['count'], 1)
		self.assertEqual(response.data['drivers'][0]['driver_id'], near.pk)
		self.assertEqual(response.data['drivers'][0]['name'], 'Dana Driver')

	def test_nearby_drivers_requires_coordinates(self):
		request = self.factory.get('/api/rides/drivers-nearby/', {'latitude': 37.77})
		self.assertEqual(nearby_drivers(request).status_code, 400)

	def test_complete_with_actual_fare(self):
		ride = self._book().data

		request = self.factory.post('/api/rides/%d/complete/' % ride['id'], {'actual_fare': '25.00'}, format='json')
		force_authenticate(request, user=self.user)
		response = complete_ride(request, ride_id=ride['id'])

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['status'], 'completed')
		self.assertEqual(response.data['fare'], '25.00')

	def test_complete_with_negative_fare_is_rejected(self):
		ride = self._book().data

		request = self.factory.post('/api/rides/%d/complete/' % ride['id'], {'actual_fare': '-3'}, format='json')
		force_authenticate(request, user=self.user)
		response = complete_ride(request, ride_id=ride['id'])

		self.assertEqual(response.status_code, 400)
		self.assertEqual(Ride.objects.get(pk=ride['id']).status, 'active')

	def test_store_outage_maps_to_503(self):
		store = Mock()
		store.select_one.side_effect = StoreError('down')
		with patch('rides.views.get_ride_lifecycle_service', return_value=make_service(store=store)):
			request = self.factory.get('/api/rides/')
			force_authenticate(request, user=self.user)
			response = rides(request)

		self.assertEqual(response.status_code, 503)


class AuthAndHealthTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		User.objects.create_user(username='rider', password='pass1234')

	def test_health_check(self):
		response = self.client.get('/health/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['services']['database'], 'healthy')
		self.assertEqual(response.data['services']['channels'], 'healthy')

	@patch('rides.views.get_ride_lifecycle_service')
	def test_jwt_token_grants_access_to_rides(self, mock_service):
		mock_service.return_value.get_user_rides.return_value = []

		token = self.client.post('/api/auth/token/', {'username': 'rider', 'password': 'pass1234'}, format='json')
		self.assertEqual(token.status_code, 200)

		self.client.credentials(HTTP_AUTHORIZATION='Bearer ' + token.data['access'])
		response = self.client.get('/api/rides/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['rides'], [])


class AssignWaitingRidesCommandTests(TestCase):
	def setUp(self):
		self.service = make_service()
		patcher = patch(
			'rides.management.commands.assign_waiting_rides.get_ride_lifecycle_service',
			return_value=self.service,
		)
		patcher.start()
		self.addCleanup(patcher.stop)

		passenger = Passenger.objects.create(user_id='u1')
		self.ride = Ride.objects.create(
			passenger=passenger,
			status='active',
			pickup_latitude=Decimal('37.774900'),
			pickup_longitude=Decimal('-122.419400'),
			fare=Decimal('6.20'),
		)

	def test_assigns_driver_once_one_is_available(self):
		out = StringIO()
		call_command('assign_waiting_rides', stdout=out)
		self.assertIn('Assigned drivers to 0 of 1', out.getvalue())

		driver = make_driver()
		call_command('assign_waiting_rides', stdout=out)

		self.ride.refresh_from_db()
		self.assertEqual(self.ride.driver_id, driver.pk)
		self.assertIn('Assigned drivers to 1 of 1', out.getvalue())

	def test_dry_run_does_not_assign(self):
		make_driver()
		out = StringIO()
		call_command('assign_waiting_rides', '--dry-run', stdout=out)

		self.ride.refresh_from_db()
		self.assertIsNone(self.ride.driver_id)
		self.assertIn('DRY RUN: 1 ride(s)', out.getvalue())
