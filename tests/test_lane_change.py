import unittest

from intersim.domain import config
from intersim.domain.models import Approach, TurnType, Vehicle
from intersim.systems.car_following import IDMModel
from intersim.systems.lane_change import MOBILModel
from intersim.systems.road_segment import RoadSegment, TurnPath


def make_vehicle(vid, u, speed, lane=0, route=None):
    return Vehicle(id=vid, approach=Approach.EAST, route=route or [0], road_id=0,
                   u=u, lane=lane, lane_old=lane, v=float(lane), speed=speed)


class TestMOBILModel(unittest.TestCase):
    def setUp(self):
        self.idm = IDMModel()

    def test_safety_gate_rejects_close_fast_follower(self):
        model = MOBILModel(self.idm, *config.LC_MANDATORY_RIGHT)
        candidate = make_vehicle("c", 50.0, 10.0, lane=0)
        candidate.mandatory_lane_change = True
        follower = make_vehicle("f", 42.0, 20.0, lane=1)

        decision = model.should_change_lanes(candidate, [candidate], [follower], 1)

        self.assertFalse(decision.should_change)
        self.assertEqual(decision.reason, "unsafe_follower")
        self.assertLess(decision.safety, -model.b_safe)

    def test_accepts_change_away_from_blocked_lane(self):
        model = MOBILModel(self.idm, *config.LC_NORMAL)
        candidate = make_vehicle("c", 50.0, 10.0, lane=0)
        blocker = make_vehicle("b", 60.0, 0.0, lane=0)

        decision = model.should_change_lanes(candidate, [candidate, blocker], [], 1)

        self.assertTrue(decision.should_change)
        self.assertGreaterEqual(decision.safety, -model.b_safe)
        self.assertGreater(decision.incentive, model.a_thr)

    def test_rejects_change_into_occupied_space(self):
        model = MOBILModel(self.idm, *config.LC_NORMAL)
        candidate = make_vehicle("c", 50.0, 10.0, lane=0)
        alongside = make_vehicle("a", 52.0, 10.0, lane=1)

        decision = model.should_change_lanes(candidate, [candidate], [alongside], 1)

        self.assertFalse(decision.should_change)
        self.assertEqual(decision.reason, "occupied")

    def test_no_incentive_on_free_road(self):
        model = MOBILModel(self.idm, *config.LC_NORMAL)
        candidate = make_vehicle("c", 50.0, 10.0, lane=1)
        decision = model.should_change_lanes(candidate, [candidate], [], -1)
        self.assertFalse(decision.should_change)
        self.assertEqual(decision.reason, "insufficient_gain")


class TestSegmentLaneChanges(unittest.TestCase):
    def setUp(self):
        self.segment = RoadSegment(0, "test", IDMModel())

    def test_out_of_range_target_is_rejected(self):
        vehicle = make_vehicle("c", 50.0, 10.0, lane=0)
        self.segment.vehicles = [vehicle]
        self.assertFalse(self.segment.execute_lane_change(vehicle, -1))
        self.assertFalse(self.segment.execute_lane_change(vehicle, self.segment.n_lanes))
        self.assertEqual(vehicle.lane, 0)

    def test_proposals_stay_in_range(self):
        vehicle = make_vehicle("c", 50.0, 10.0, lane=0)
        blocker = make_vehicle("b", 58.0, 0.0, lane=0)
        self.segment.vehicles = [vehicle, blocker]
        choice = self.segment.choose_lane_change(vehicle)
        self.assertIsNotNone(choice)
        self.assertEqual(choice[0], 1)

    def test_cooldown_blocks_consecutive_changes(self):
        vehicle = make_vehicle("c", 50.0, 10.0, lane=0)
        blocker = make_vehicle("b", 58.0, 0.0, lane=0)
        self.segment.vehicles = [vehicle, blocker]
        self.segment.calc_accelerations()
        self.segment.change_lanes(0.1)
        self.assertEqual(vehicle.lane, 1)
        self.assertEqual(vehicle.lane_old, 0)

        vehicle.u = 30.0
        other = make_vehicle("o", 38.0, 0.0, lane=1)
        self.segment.vehicles.append(other)
        self.segment.change_lanes(0.1)
        self.assertEqual(vehicle.lane, 1)

    def test_optical_position_follows_s_curve(self):
        vehicle = make_vehicle("c", 50.0, 10.0, lane=0)
        self.segment.execute_lane_change(vehicle, 1)
        expected = {0.0: 0.0, 1.0: 0.125, 2.0: 0.5, 3.0: 0.875, 4.0: 1.0}
        for elapsed, v in expected.items():
            vehicle.time_since_lane_change = elapsed
            RoadSegment.update_optical(vehicle)
            self.assertAlmostEqual(vehicle.v, v)
        self.assertEqual(vehicle.dvdt, 0.0)

    def test_mandatory_change_toward_turn_lane(self):
        segment = RoadSegment(0, "test", IDMModel(), stop_line=88.0)
        target = RoadSegment(5, "exit", IDMModel())
        segment.add_turn_path(TurnPath(road_id=5, umin=92.0, umax=103.78, lane_min=1, lane_max=1,
                                       turn_type=TurnType.RIGHT))
        vehicle = make_vehicle("c", 60.0, 10.0, lane=0, route=[0, 5])
        segment.vehicles = [vehicle]
        segment.connect(target, 103.78, 2.0)

        segment.change_lanes(0.1)

        self.assertEqual(vehicle.lane, 1)
        self.assertFalse(vehicle.mandatory_lane_change)


if __name__ == '__main__':
    unittest.main()
