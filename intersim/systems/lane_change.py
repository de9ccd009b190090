from dataclasses import dataclass
from typing import Iterable, Optional

from intersim.domain import config
from intersim.domain.models import Vehicle
from intersim.systems.car_following import IDMModel


@dataclass
class LaneChangeDecision:
    should_change: bool
    urgency: float = 0.0
    reason: str = ""
    incentive: float = 0.0
    safety: float = 0.0


class MOBILModel:
    """MOBIL gap-acceptance lane change model (Minimizing Overall Braking Induced by Lane changes)."""

    def __init__(self, idm: IDMModel,
                 politeness: float = 0.2,
                 threshold: float = 0.1,
                 bias_right: float = 0.3,
                 safe_decel: float = config.MOBIL_SAFE_DECEL):
        self.idm = idm
        self.p = politeness
        self.a_thr = threshold
        self.bias_right = bias_right
        self.b_safe = safe_decel
        self.factor_other = 1.0

    def should_change_lanes(self, vehicle: Vehicle, current_lane: Iterable[Vehicle],
                            target_lane: Iterable[Vehicle], direction: int) -> LaneChangeDecision:
        """
        Args:
            vehicle: Candidate vehicle
            current_lane: Vehicles in the candidate's lane
            target_lane: Vehicles in the lane being considered
            direction: +1 for a change to the right, -1 to the left
        """
        current_lane = list(current_lane)
        target_lane = list(target_lane)

        if self.is_blocked(vehicle, target_lane):
            return LaneChangeDecision(False, reason="occupied", safety=-self.idm.bmax)

        follower_acc = self.follower_impact(vehicle, target_lane)
        if follower_acc < -self.b_safe:
            return LaneChangeDecision(False, reason="unsafe_follower", safety=follower_acc)

        acc_current = self.lane_acceleration(vehicle, current_lane)
        acc_target = self.lane_acceleration(vehicle, target_lane)

        incentive = acc_target - acc_current
        incentive += self.p * self.others_gain(vehicle, current_lane, target_lane)
        if direction > 0:
            incentive += self.bias_right

        urgency_multiplier = 1.0
        if vehicle.mandatory_lane_change:
            urgency_multiplier = 2.0
            incentive += self.a_thr

        should_change = incentive > self.a_thr * urgency_multiplier
        return LaneChangeDecision(
            should_change=should_change,
            urgency=max(0.0, incentive),
            reason="beneficial" if should_change else "insufficient_gain",
            incentive=incentive,
            safety=follower_acc,
        )

    def lane_acceleration(self, vehicle: Vehicle, lane_vehicles: Iterable[Vehicle]) -> float:
        leader = self.find_leader(vehicle, lane_vehicles)
        if leader is None:
            return self.idm.free_flow(vehicle.speed, vehicle.driver_factor)
        gap = leader.u - vehicle.u - leader.length
        return self.idm.acceleration(gap, vehicle.speed, leader.speed, vehicle.driver_factor)

    def follower_impact(self, vehicle: Vehicle, target_lane: Iterable[Vehicle]) -> float:
        """Acceleration the new target-lane follower would have behind the candidate."""
        follower = self.find_follower(vehicle, target_lane)
        if follower is None:
            return 0.0
        gap = vehicle.u - follower.u - vehicle.length
        return self.idm.acceleration(gap, follower.speed, vehicle.speed, follower.driver_factor)

    def others_gain(self, vehicle: Vehicle, current_lane: Iterable[Vehicle],
                    target_lane: Iterable[Vehicle]) -> float:
        gain = 0.0

        # Current-lane follower gains the space the candidate leaves
        current_follower = self.find_follower(vehicle, current_lane)
        if current_follower is not None:
            current_leader = self.find_leader(vehicle, current_lane)
            if current_leader is not None:
                new_gap = current_leader.u - current_follower.u - current_leader.length
                new_acc = self.idm.acceleration(new_gap, current_follower.speed,
                                                current_leader.speed, current_follower.driver_factor)
            else:
                new_acc = self.idm.free_flow(current_follower.speed, current_follower.driver_factor)
            gain += new_acc - current_follower.acc

        # Target-lane follower loses space
        target_follower = self.find_follower(vehicle, target_lane)
        if target_follower is not None:
            gap = vehicle.u - target_follower.u - vehicle.length
            new_acc = self.idm.acceleration(gap, target_follower.speed, vehicle.speed,
                                            target_follower.driver_factor)
            gain -= new_acc - target_follower.acc

        return gain * self.factor_other

    @staticmethod
    def is_blocked(vehicle: Vehicle, target_lane: Iterable[Vehicle]) -> bool:
        """True when a target-lane vehicle overlaps the candidate's footprint."""
        for other in target_lane:
            if other.id == vehicle.id:
                continue
            if other.u >= vehicle.u and other.u - other.length < vehicle.u:
                return True
            if other.u < vehicle.u and vehicle.u - vehicle.length < other.u:
                return True
        return False

    @staticmethod
    def find_leader(vehicle: Vehicle, lane_vehicles: Iterable[Vehicle]) -> Optional[Vehicle]:
        leader = None
        min_distance = float("inf")
        for other in lane_vehicles:
            if other.id != vehicle.id and other.u > vehicle.u:
                distance = other.u - vehicle.u
                if distance < min_distance:
                    min_distance = distance
                    leader = other
        return leader

    @staticmethod
    def find_follower(vehicle: Vehicle, lane_vehicles: Iterable[Vehicle]) -> Optional[Vehicle]:
        follower = None
        min_distance = float("inf")
        for other in lane_vehicles:
            if other.id != vehicle.id and other.u < vehicle.u:
                distance = vehicle.u - other.u
                if distance < min_distance:
                    min_distance = distance
                    follower = other
        return follower
