import random

from django.test import SimpleTestCase

from common.utils import (
	calculate_distance,
	estimated_duration_minutes,
	eta_minutes,
	random_point_near,
)


class GeoUtilsTests(SimpleTestCase):
	def test_distance_between_same_point_is_zero(self):
		self.assertEqual(calculate_distance(37.7749, -122.4194, 37.7749, -122.4194), 0.0)

	def test_distance_matches_known_city_pair(self):
		# San Francisco -> Los Angeles, ~559 km great-circle
		distance = calculate_distance(37.7749, -122.4194, 34.0522, -118.2437)
		self.assertAlmostEqual(distance, 559.1, delta=1.0)

	def test_distance_is_symmetric(self):
		there = calculate_distance(37.7749, -122.4194, 37.7849, -122.4094)
		back = calculate_distance(37.7849, -122.4094, 37.7749, -122.4194)
		self.assertAlmostEqual(there, back, places=9)
		self.assertAlmostEqual(there, 1.417, places=2)

	def test_distance_accepts_decimal_strings(self):
		self.assertAlmostEqual(
			calculate_distance('37.7749', '-122.4194', '37.7849', '-122.4094'),
			calculate_distance(37.7749, -122.4194, 37.7849, -122.4094),
		)

	def test_duration_rounds_up_to_whole_minutes(self):
		self.assertEqual(estimated_duration_minutes(0), 0)
		self.assertEqual(estimated_duration_minutes(1.417), 4)
		self.assertEqual(estimated_duration_minutes(4), 10)
		self.assertEqual(estimated_duration_minutes(4.01), 11)

	def test_eta_uses_two_minutes_per_km(self):
		self.assertEqual(eta_minutes(1.417), 3)
		self.assertEqual(eta_minutes(5), 10)

	def test_random_point_stays_within_radius(self):
		rng = random.Random(42)
		for _ in range(200):
			lat, lon = random_point_near(37.7749, -122.4194, 2.0, rng)
			self.assertLessEqual(calculate_distance(37.7749, -122.4194, lat, lon), 2.0 + 1e-6)

	def test_random_point_with_zero_radius_is_origin(self):
		lat, lon = random_point_near(10.0, 20.0, 0, random.Random(1))
		self.assertAlmostEqual(lat, 10.0)
		self.assertAlmostEqual(lon, 20.0)
