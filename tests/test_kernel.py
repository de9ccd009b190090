import json
import math
import unittest

from intersim.domain.models import (
    Approach, ControlMode, EngineSettings, LightColor, TurnProbabilities, TurnType
)
from intersim.kernel.observers import SimulationObserver
from intersim.kernel.simulation_kernel import SimulationKernel


class RecordingObserver(SimulationObserver):
    def __init__(self):
        self.completed = []
        self.stats = []

    def on_vehicle_completed(self, vehicle):
        self.completed.append(vehicle.id)

    def on_statistics_tick(self, stats):
        self.stats.append(stats)


class TestSettings(unittest.TestCase):
    def test_milliseconds_at_boundary(self):
        settings = EngineSettings(GREEN_DURATION=20000, YELLOW_DURATION=4000, MIN_GREEN_TIME=2500)
        self.assertEqual(settings.green_time, 20.0)
        self.assertEqual(settings.yellow_time, 4.0)
        self.assertEqual(settings.min_green, 2.5)
        self.assertEqual(settings.demand_for(Approach.EAST), 240.0)

    def test_settings_are_immutable(self):
        settings = EngineSettings()
        with self.assertRaises(Exception):
            settings.green_duration = 1.0
        updated = settings.with_updates(green_duration=1000)
        self.assertEqual(updated.green_duration, 1000)
        self.assertEqual(settings.green_duration, 100000)

    def test_turn_rate_split(self):
        probabilities = TurnProbabilities.from_turn_rate(0.4)
        self.assertAlmostEqual(probabilities.straight, 0.6)
        self.assertAlmostEqual(probabilities.right, 0.25)
        self.assertAlmostEqual(probabilities.left, 0.15)

    def test_turn_probabilities_must_sum_to_one(self):
        with self.assertRaises(ValueError):
            TurnProbabilities(straight=0.5, right=0.3, left=0.3)


class TestSimulationKernel(unittest.TestCase):
    def setUp(self):
        self.kernel = SimulationKernel(EngineSettings(car_spawn_rate=0))
        self.kernel.initialize(seed=3)

    def test_invalid_turn_probabilities_are_rejected(self):
        before = self.kernel.settings
        with self.assertLogs("intersim.kernel.simulation_kernel", level="WARNING"):
            self.assertFalse(self.kernel.set_turn_probabilities(0.5, 0.3, 0.3))
        self.kernel.run_tick()
        self.assertIs(self.kernel.settings, before)

    def test_turn_probabilities_apply_at_tick_boundary(self):
        self.assertTrue(self.kernel.set_turn_probabilities(0.2, 0.5, 0.3))
        self.assertIsNone(self.kernel.settings.turn_probabilities)
        self.kernel.run_tick()
        self.assertAlmostEqual(self.kernel.settings.effective_turn_probabilities().right, 0.5)

    def test_update_settings(self):
        self.assertFalse(self.kernel.update_settings(green_duration=-5))
        self.assertTrue(self.kernel.update_settings(car_speed=10, detector_distance=50))
        self.kernel.run_tick()
        self.assertEqual(self.kernel.network.idm.speed_limit, 10)
        self.assertEqual(self.kernel.detection.zones[Approach.EAST].u_start, 38.0)

    def test_traffic_demand(self):
        self.kernel.set_traffic_demand({Approach.NORTH: 3600.0})
        self.kernel.run_tick()
        self.assertEqual(self.kernel.settings.demand_for(Approach.NORTH), 3600.0)
        self.assertEqual(self.kernel.settings.demand_for(Approach.EAST), 0.0)
        for _ in range(40):
            self.kernel.run_tick()
        self.assertGreater(len(self.kernel.network.inbound(Approach.NORTH).vehicles), 0)
        self.assertEqual(len(self.kernel.network.inbound(Approach.EAST).vehicles), 0)

    def test_unknown_demand_direction_is_dropped(self):
        self.kernel.set_traffic_demand({"up": 100.0, "north": 1200.0})
        self.kernel.set_mode(ControlMode.ADAPTIVE)
        with self.assertLogs("intersim.kernel.commands", level="WARNING"):
            self.kernel.run_tick()
        self.assertEqual(self.kernel.settings.traffic_demand, {Approach.NORTH: 1200.0})
        self.assertEqual(self.kernel.state.mode, ControlMode.ADAPTIVE)

    def test_negative_demand_is_rejected(self):
        self.kernel.set_traffic_demand({Approach.EAST: 500.0})
        self.kernel.run_tick()
        self.kernel.set_traffic_demand({Approach.EAST: -500.0})
        with self.assertLogs("intersim.kernel.commands", level="WARNING"):
            self.kernel.run_tick()
        self.assertEqual(self.kernel.settings.demand_for(Approach.EAST), 500.0)
        self.assertGreaterEqual(self.kernel.network.inbound(Approach.EAST).in_veh_buffer, 0.0)

    def test_misspelled_setting_is_rejected(self):
        with self.assertLogs("intersim.kernel.simulation_kernel", level="WARNING"):
            self.assertFalse(self.kernel.update_settings(GREN_DURATION=5))
        self.assertTrue(self.kernel.update_settings(GREEN_DURATION=5000))
        self.kernel.run_tick()
        self.assertEqual(self.kernel.settings.green_duration, 5000)

    def test_spawn_on_unknown_direction_falls_back(self):
        self.kernel.spawn_vehicle("up")
        with self.assertLogs("intersim.systems.road_network", level="WARNING"):
            self.kernel.run_tick()
        self.assertEqual(len(self.kernel.network.inbound(Approach.EAST).vehicles), 1)

    def test_mode_switch(self):
        self.kernel.set_mode(ControlMode.ADAPTIVE)
        self.kernel.run_tick()
        self.assertEqual(self.kernel.state.mode, ControlMode.ADAPTIVE)
        self.assertTrue(all(c == LightColor.RED for c in self.kernel.get_light_states().values()))

    def test_adaptive_control_serves_waiting_traffic(self):
        self.kernel.set_mode(ControlMode.ADAPTIVE)
        self.kernel.spawn_vehicle(Approach.EAST, TurnType.STRAIGHT)
        for _ in range(200):
            self.kernel.run_tick()
        self.assertEqual(self.kernel.signals.strategy.current_pair.value, "WE")
        self.assertGreater(self.kernel.get_total_cars_detected()["east"], 0)

    def test_observers_and_statistics(self):
        observer = RecordingObserver()
        self.kernel.add_observer(observer)
        segment = self.kernel.network.segment(3)
        vehicle = segment.create_vehicle("leaving", [3], self.kernel.rng)
        vehicle.u = 209.5
        vehicle.speed = 10.0
        vehicle.wait_time = 4.0
        segment.vehicles.append(vehicle)

        for _ in range(50):
            self.kernel.run_tick()

        self.assertEqual(observer.completed, ["leaving"])
        self.assertEqual(len(observer.stats), 1)
        stats = self.kernel.get_statistics()
        self.assertEqual(stats.totalCarsPassed, 1)
        self.assertAlmostEqual(stats.averageWaitTime, 4.0)
        self.assertEqual(stats.currentCars, 0)
        self.assertEqual(self.kernel.state.vehicles_completed, 1)

    def test_export_traffic_data(self):
        self.kernel.spawn_vehicle(Approach.WEST)
        self.kernel.run_tick()
        data = json.loads(self.kernel.export_traffic_data({"frames": 1}))
        for key in ("statistics", "trafficStatistics", "flowAnalysis", "performance",
                    "configuration", "sensors", "lights", "vehicles"):
            self.assertIn(key, data)
        self.assertEqual(data["configuration"]["GREEN_DURATION"], 100000)
        self.assertEqual(len(data["vehicles"]), 1)
        self.assertAlmostEqual(data["vehicles"][0]["heading"], math.pi, delta=0.01)
        self.assertEqual(data["performance"], {"frames": 1})

    def test_reset(self):
        self.kernel.spawn_vehicle(Approach.SOUTH)
        for _ in range(10):
            self.kernel.run_tick()
        self.kernel.reset()
        self.assertEqual(self.kernel.state.tick_id, 0)
        self.assertEqual(self.kernel.network.vehicle_count(), 0)
        self.assertEqual(self.kernel.get_statistics().totalCarsPassed, 0)


if __name__ == '__main__':
    unittest.main()
