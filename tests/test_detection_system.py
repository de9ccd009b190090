import random
import unittest

from intersim.domain.models import Approach, EngineSettings, LightColor, SignalPair
from intersim.systems.detection_system import DetectionAggregator
from intersim.systems.road_network import RoadNetwork

ALL_RED = {approach: LightColor.RED for approach in Approach}


class TestDetectionAggregator(unittest.TestCase):
    def setUp(self):
        self.network = RoadNetwork(EngineSettings(car_spawn_rate=0))
        self.detection = DetectionAggregator(self.network)
        self.rng = random.Random(5)

    def queue(self, approach, positions, speed=0.0):
        segment = self.network.inbound(approach)
        vehicles = []
        for u in positions:
            vehicle = segment.create_vehicle(f"{approach.value}-{u}", [segment.road_id], self.rng, lane=0)
            vehicle.u = u
            vehicle.speed = speed
            segment.vehicles.append(vehicle)
            vehicles.append(vehicle)
        return vehicles

    def test_zone_bounds_follow_detector_distance(self):
        zone = self.detection.zones[Approach.EAST]
        self.assertEqual((zone.u_start, zone.u_end), (8.0, 88.0))
        self.detection.apply_settings(EngineSettings(DETECTOR_DISTANCE=120))
        self.assertEqual(zone.u_start, 0.0)
        north = self.detection.zones[Approach.NORTH]
        self.assertEqual((north.u_start, north.u_end), (60.0, 180.0))

    def test_counts_waiting_vehicles_under_red(self):
        near, far = self.queue(Approach.EAST, [80.0, 70.0])
        self.queue(Approach.EAST, [95.0])  # past the stop line

        self.detection.update(0.5, ALL_RED)
        self.detection.update(0.5, ALL_RED)

        zone = self.detection.zones[Approach.EAST]
        self.assertEqual(zone.cars_waiting, 2)
        self.assertEqual(zone.total_detected, 2)
        self.assertEqual(zone.closest_vehicle_id, near.id)
        self.assertAlmostEqual(zone.wait_time, 1.0)
        self.assertEqual(zone.detected, [near.id, far.id])

        scores = self.detection.priority_scores()
        self.assertAlmostEqual(scores[SignalPair.WE], 2 * 1.0 + 2)
        self.assertEqual(scores[SignalPair.NS], 0.0)

    def test_moving_vehicles_are_detected_but_not_waiting(self):
        self.queue(Approach.NORTH, [150.0], speed=10.0)
        self.detection.update(0.5, ALL_RED)
        zone = self.detection.zones[Approach.NORTH]
        self.assertEqual(zone.total_detected, 1)
        self.assertEqual(zone.cars_waiting, 0)
        self.assertIsNone(zone.closest_vehicle_id)

    def test_colour_change_resets_wait_time_not_distinct_count(self):
        self.queue(Approach.EAST, [80.0, 70.0])
        for _ in range(4):
            self.detection.update(0.5, ALL_RED)
        zone = self.detection.zones[Approach.EAST]
        self.assertAlmostEqual(zone.wait_time, 2.0)

        lights = dict(ALL_RED)
        lights[Approach.EAST] = LightColor.GREEN
        self.detection.update(0.5, lights, changed=[Approach.EAST])

        self.assertEqual(zone.wait_time, 0.0)
        self.assertEqual(zone.cars_waiting, 0)
        self.assertEqual(zone.total_detected, 2)

    def test_green_approach_is_not_measured(self):
        self.queue(Approach.WEST, [80.0])
        lights = dict(ALL_RED)
        lights[Approach.WEST] = LightColor.GREEN
        self.detection.update(0.5, lights)
        self.assertEqual(self.detection.zones[Approach.WEST].total_detected, 0)

    def test_distinct_count_is_edge_triggered(self):
        (vehicle,) = self.queue(Approach.SOUTH, [150.0])
        for _ in range(5):
            self.detection.update(0.5, ALL_RED)
        self.assertEqual(self.detection.zones[Approach.SOUTH].total_detected, 1)

        vehicle.u = 190.0
        self.detection.update(0.5, ALL_RED)
        vehicle.u = 160.0
        self.detection.update(0.5, ALL_RED)
        self.assertEqual(self.detection.zones[Approach.SOUTH].total_detected, 2)

    def test_pair_switch_resets_distinct_counts(self):
        self.queue(Approach.EAST, [80.0])
        self.detection.update(0.5, ALL_RED)
        self.detection.reset_all_counts(SignalPair.NS)
        self.assertEqual(self.detection.get_total_cars_detected()["east"], 0)
        self.detection.update(0.5, ALL_RED)
        self.assertEqual(self.detection.get_total_cars_detected()["east"], 1)

    def test_sensor_data_shape(self):
        self.queue(Approach.EAST, [80.0])
        self.detection.update(0.5, ALL_RED)
        data = self.detection.get_sensor_data()
        self.assertEqual(set(data), {"north", "south", "east", "west"})
        self.assertEqual(data["east"].carsWaiting, 1)
        self.assertEqual(data["east"].totalCarsDetected, 1)

    def test_reset(self):
        self.queue(Approach.EAST, [80.0])
        self.detection.update(0.5, ALL_RED)
        self.detection.reset()
        self.assertEqual(self.detection.get_total_cars_detected(),
                         {"north": 0, "south": 0, "east": 0, "west": 0})


if __name__ == '__main__':
    unittest.main()
