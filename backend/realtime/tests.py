import random
from decimal import Decimal
from unittest.mock import patch

from asgiref.sync import sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import SimpleTestCase, TransactionTestCase
from rest_framework_simplejwt.tokens import AccessToken

from services.matching import DriverLocator
from services.pricing import FareCalculator
from services.ride_management import Location, RideLifecycleService, RideRequest, RideSnapshot
from services.store import InMemoryDataStore
from .consumers.ride_consumer import RideConsumer
from .middleware import JWTAuthMiddleware
from .notifications import notify_ride_update, ride_group_name

User = get_user_model()

PICKUP = {'latitude': 37.7749, 'longitude': -122.4194, 'address': '1 Market St'}
DESTINATION = {'latitude': 37.7849, 'longitude': -122.4094, 'address': '500 Howard St'}


def make_service(store):
	return RideLifecycleService(
		store=store,
		fare_calculator=FareCalculator(store, cache_timeout=0),
		driver_locator=DriverLocator(store, rng=random.Random(11)),
		notifier=notify_ride_update,
	)


class NotifyRideUpdateTests(SimpleTestCase):
	async def test_update_reaches_ride_group(self):
		layer = get_channel_layer()
		channel = await layer.new_channel()
		await layer.group_add(ride_group_name(8), channel)

		ride = RideSnapshot(id=8, passenger_id=1, status='cancelled', fare=Decimal('6.20'))
		sent = await sync_to_async(notify_ride_update)(ride, 'cancelled')
		message = await layer.receive(channel)
		await layer.group_discard(ride_group_name(8), channel)

		self.assertTrue(sent)
		self.assertEqual(message['type'], 'ride_update')
		self.assertEqual(message['event'], 'cancelled')
		self.assertEqual(message['ride']['fare'], '6.20')

	def test_missing_channel_layer_is_reported_not_raised(self):
		ride = RideSnapshot(id=1, passenger_id=1)
		with patch('realtime.notifications.get_channel_layer', return_value=None):
			self.assertFalse(notify_ride_update(ride))

	def test_layer_errors_are_reported_not_raised(self):
		ride = RideSnapshot(id=1, passenger_id=1)
		with patch('realtime.notifications.get_channel_layer', side_effect=RuntimeError('redis down')):
			self.assertFalse(notify_ride_update(ride, 'created'))


class RideConsumerTests(TransactionTestCase):
	def setUp(self):
		self.store = InMemoryDataStore()
		self.user = User(pk=7, username='rider', email='rider@example.com')
		patcher = patch(
			'realtime.consumers.ride_consumer.get_ride_lifecycle_service',
			return_value=make_service(self.store),
		)
		patcher.start()
		self.addCleanup(patcher.stop)

	async def _connect(self, user=None):
		communicator = WebsocketCommunicator(RideConsumer.as_asgi(), '/ws/rides/')
		communicator.scope['user'] = user or self.user
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		hello = await communicator.receive_json_from()
		self.assertEqual(hello['type'], 'connection_established')
		return communicator

	async def test_anonymous_connection_is_closed(self):
		communicator = WebsocketCommunicator(RideConsumer.as_asgi(), '/ws/rides/')
		communicator.scope['user'] = AnonymousUser()
		connected, _ = await communicator.connect()
		self.assertFalse(connected)

	async def test_load_rides_for_new_user(self):
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'load_rides'})
		state = await communicator.receive_json_from()

		self.assertEqual(state, {'type': 'session_state', 'rides': [], 'active_ride': None, 'is_busy': False})
		await communicator.disconnect()

	async def test_estimate(self):
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'estimate', 'pickup': PICKUP, 'destination': DESTINATION})
		response = await communicator.receive_json_from()

		self.assertEqual(response['type'], 'route_estimate')
		self.assertEqual(response['estimate']['fare'], '6.20')
		self.assertEqual(response['estimate']['duration_minutes'], 4)
		await communicator.disconnect()

	async def test_request_then_cancel_pushes_ride_update(self):
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'request_ride', 'pickup': PICKUP, 'destination': DESTINATION})
		state = await communicator.receive_json_from()
		self.assertEqual(state['type'], 'session_state')
		self.assertEqual(state['active_ride']['status'], 'active')
		ride_id = state['active_ride']['id']

		await communicator.send_json_to({'type': 'cancel_ride', 'ride_id': ride_id, 'reason': 'too slow'})
		messages = [await communicator.receive_json_from(), await communicator.receive_json_from()]
		by_type = {m['type']: m for m in messages}

		self.assertIsNone(by_type['session_state']['active_ride'])
		self.assertEqual(by_type['session_state']['rides'][0]['status'], 'cancelled')
		self.assertEqual(by_type['ride_update']['event'], 'cancelled')
		self.assertEqual(by_type['ride_update']['ride_id'], ride_id)
		await communicator.disconnect()

	async def test_cancel_twice_reports_already_terminal(self):
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'request_ride', 'pickup': PICKUP, 'destination': DESTINATION})
		ride_id = (await communicator.receive_json_from())['active_ride']['id']
		await communicator.send_json_to({'type': 'untrack_ride', 'ride_id': ride_id})
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'cancel_ride', 'ride_id': ride_id})
		await communicator.receive_json_from()
		await communicator.send_json_to({'type': 'cancel_ride', 'ride_id': ride_id})
		error = await communicator.receive_json_from()

		self.assertEqual(error['type'], 'error')
		self.assertEqual(error['code'], 'already_terminal')
		await communicator.disconnect()

	async def test_complete_with_actual_fare(self):
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'request_ride', 'pickup': PICKUP, 'destination': DESTINATION})
		ride_id = (await communicator.receive_json_from())['active_ride']['id']
		await communicator.send_json_to({'type': 'untrack_ride', 'ride_id': ride_id})
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'complete_ride', 'ride_id': ride_id, 'actual_fare': '25.00'})
		state = await communicator.receive_json_from()

		self.assertEqual(state['rides'][0]['status'], 'completed')
		self.assertEqual(state['rides'][0]['fare'], '25.00')
		await communicator.disconnect()

	async def test_invalid_request_is_rejected(self):
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'request_ride', 'pickup': PICKUP})
		error = await communicator.receive_json_from()

		self.assertEqual(error['code'], 'validation_error')
		self.assertIn('destination', error['errors'])
		self.assertEqual(self.store.select('rides'), [])
		await communicator.disconnect()

	async def test_cannot_track_someone_elses_ride(self):
		other = await sync_to_async(make_service(self.store).request_ride)(
			'someone-else',
			RideRequest(Location(**PICKUP), Location(**DESTINATION)),
		)
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'track_ride', 'ride_id': other.id})
		error = await communicator.receive_json_from()

		self.assertEqual(error['type'], 'error')
		self.assertEqual(error['code'], 'not_found')
		await communicator.disconnect()

	async def test_cannot_cancel_someone_elses_ride(self):
		other = await sync_to_async(make_service(self.store).request_ride)(
			'someone-else',
			RideRequest(Location(**PICKUP), Location(**DESTINATION)),
		)
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'cancel_ride', 'ride_id': other.id})
		error = await communicator.receive_json_from()

		self.assertEqual(error['code'], 'not_found')
		self.assertEqual(self.store.select_one('rides', {'id': other.id})['status'], 'active')
		await communicator.disconnect()

	async def test_unknown_message_type(self):
		communicator = await self._connect()

		await communicator.send_json_to({'type': 'teleport'})
		error = await communicator.receive_json_from()

		self.assertEqual(error['message'], 'Unknown message type: teleport')
		await communicator.disconnect()


class JWTAuthMiddlewareTests(TransactionTestCase):
	def setUp(self):
		self.user = User.objects.create_user(username='rider', password='pass1234')
		patcher = patch(
			'realtime.consumers.ride_consumer.get_ride_lifecycle_service',
			return_value=make_service(InMemoryDataStore()),
		)
		patcher.start()
		self.addCleanup(patcher.stop)

	async def test_valid_token_connects(self):
		token = str(AccessToken.for_user(self.user))
		communicator = WebsocketCommunicator(
			JWTAuthMiddleware(RideConsumer.as_asgi()),
			'/ws/rides/?token=%s' % token,
		)
		connected, _ = await communicator.connect()
		self.assertTrue(connected)

		hello = await communicator.receive_json_from()
		self.assertEqual(hello['user_id'], self.user.pk)
		await communicator.disconnect()

	async def test_bad_token_is_rejected(self):
		communicator = WebsocketCommunicator(
			JWTAuthMiddleware(RideConsumer.as_asgi()),
			'/ws/rides/?token=not-a-jwt',
		)
		connected, _ = await communicator.connect()
		self.assertFalse(connected)
