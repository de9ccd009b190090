import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from intersim.domain import config
from intersim.domain.models import (
    Approach, LightColor, TurnProbabilities, TurnType, Vehicle, VehicleKind
)
from intersim.systems.car_following import IDMModel
from intersim.systems.lane_change import LaneChangeDecision, MOBILModel

logger = logging.getLogger(__name__)

Trajectory = Tuple[Callable[[float], float], Callable[[float], float]]


@dataclass
class TurnPath:
    road_id: int  # destination road
    umin: float
    umax: float
    lane_min: int
    lane_max: int
    turn_type: TurnType
    trajectory: Optional[Trajectory] = None

    def lane_ok(self, lane: int) -> bool:
        return self.lane_min <= lane <= self.lane_max

    def required_direction(self, lane: int) -> int:
        return 1 if lane < self.lane_min else -1


@dataclass
class Connection:
    target: "RoadSegment"
    u_source: float
    u_target: float


class RoadSegment:
    """A directed lane group parameterized by arc length u."""

    def __init__(self, road_id: int, name: str, idm: IDMModel,
                 length: float = config.ROAD_LENGTH,
                 n_lanes: int = config.N_LANES,
                 lane_width: float = config.LANE_WIDTH,
                 approach: Optional[Approach] = None,
                 stop_line: Optional[float] = None,
                 trajectory: Optional[Trajectory] = None):
        self.road_id = road_id
        self.name = name
        self.length = length
        self.n_lanes = n_lanes
        self.lane_width = lane_width
        self.approach = approach  # set on segments controlled by a signal head
        self.stop_line = stop_line
        self.trajectory = trajectory
        self.idm = idm

        self.vehicles: List[Vehicle] = []
        self.turn_paths: List[TurnPath] = []
        self.connections: List[Connection] = []
        self.in_veh_buffer = 0.0
        self.headings: List[float] = []

        self.lc_mandatory_right = MOBILModel(idm, *config.LC_MANDATORY_RIGHT)
        self.lc_mandatory_left = MOBILModel(idm, *config.LC_MANDATORY_LEFT)
        self.lc_tactical = MOBILModel(idm, *config.LC_TACTICAL)
        self.lc_normal = MOBILModel(idm, *config.LC_NORMAL)

    # Geometry

    def precompute_geometry(self, n_segments: int = 100) -> bool:
        if self.trajectory is None:
            logger.warning(f"Road {self.road_id}: trajectory not set up yet, skipping precompute")
            return False
        seg_len = self.length / n_segments
        self.headings = [self.heading_at((i + 0.5) * seg_len) for i in range(n_segments)]
        return True

    def heading_at(self, u: float, trajectory: Optional[Trajectory] = None) -> float:
        traj = trajectory or self.trajectory
        if traj is None:
            return 0.0
        du = 0.1
        u_loc = max(du, min(self.length - du, u))
        dx = traj[0](u_loc + du) - traj[0](u_loc - du)
        dy = traj[1](u_loc + du) - traj[1](u_loc - du)
        return math.atan2(dy, dx)

    def vehicle_heading(self, vehicle: Vehicle) -> float:
        """Heading in radians; main-road positions read the precomputed table."""
        traj = self.trajectory_for(vehicle)
        if traj is not self.trajectory or not self.headings:
            return self.heading_at(vehicle.u, traj)
        index = int(vehicle.u / self.length * len(self.headings))
        return self.headings[max(0, min(len(self.headings) - 1, index))]

    def add_turn_path(self, path: TurnPath):
        self.turn_paths.append(path)

    def connect(self, target: "RoadSegment", u_source: float, u_target: float):
        self.connections.append(Connection(target, u_source, u_target))

    def trajectory_for(self, vehicle: Vehicle) -> Optional[Trajectory]:
        """Path the vehicle is drawn along; turn paths apply only inside their window."""
        for path in self.turn_paths:
            if path.road_id in vehicle.route and path.umin <= vehicle.u <= path.umax:
                return path.trajectory
        return self.trajectory

    def turn_path_for(self, vehicle: Vehicle) -> Optional[TurnPath]:
        next_road = vehicle.next_road
        if next_road is None:
            return None
        for path in self.turn_paths:
            if path.road_id == next_road:
                return path
        return None

    # Queries

    def lane_vehicles(self, lane: int) -> List[Vehicle]:
        return [v for v in self.vehicles if v.lane == lane]

    def vehicle_count(self, u_start: float, u_end: float, lane: Optional[int] = None) -> int:
        return sum(1 for v in self.vehicles
                   if u_start <= v.u <= u_end and (lane is None or v.lane == lane))

    def average_speed(self, u_start: float, u_end: float, lane: Optional[int] = None) -> float:
        speeds = [v.speed for v in self.vehicles
                  if u_start <= v.u <= u_end and (lane is None or v.lane == lane)]
        return sum(speeds) / len(speeds) if speeds else 0.0

    # Per-tick passes

    def _must_stop(self, vehicle: Vehicle, light: Optional[LightColor]) -> bool:
        if self.stop_line is None or light is None or light == LightColor.GREEN:
            return False
        gap = self.stop_line - vehicle.u
        if gap < 0:
            return False
        if light == LightColor.RED:
            return True
        # Yellow: stop only if it can be done at comfortable deceleration
        return vehicle.speed ** 2 / (2 * self.idm.b) <= gap

    def calc_accelerations(self, light: Optional[LightColor] = None,
                           rng: Optional[random.Random] = None):
        for veh in self.vehicles:
            veh.acc = 0.0
            if rng is not None:
                veh.driver_factor = IDMModel.perturb_driver_factor(veh.driver_factor, rng)

        for lane in range(self.n_lanes):
            lane_vehicles = sorted(self.lane_vehicles(lane), key=lambda v: v.u)
            for i, veh in enumerate(lane_vehicles):
                gap = config.FREE_GAP
                leader_speed = veh.speed
                for candidate in lane_vehicles[i + 1:]:
                    if candidate.u > veh.u:
                        gap = candidate.u - veh.u - candidate.length
                        leader_speed = candidate.speed
                        break

                if self._must_stop(veh, light):
                    stop_gap = self.stop_line - veh.u
                    if stop_gap < gap:
                        gap = stop_gap
                        leader_speed = 0.0

                acc = self.idm.acceleration(max(config.MIN_GAP_CLAMP, gap), veh.speed,
                                            leader_speed, veh.driver_factor)
                veh.acc = max(config.ACC_CLAMP_MIN, min(config.ACC_CLAMP_MAX, acc))

    def change_lanes(self, dt: float):
        for veh in self.vehicles:
            veh.time_since_lane_change += dt
            if veh.time_since_lane_change < config.LANE_CHANGE_COOLDOWN:
                self.update_optical(veh)
                continue

            choice = self.choose_lane_change(veh)
            if choice is not None:
                self.execute_lane_change(veh, choice[0])
            self.update_optical(veh)

    def choose_lane_change(self, veh: Vehicle) -> Optional[Tuple[int, LaneChangeDecision]]:
        """Evaluate mandatory need first, then tactical, then a courtesy change."""
        path = self.turn_path_for(veh)
        if path is not None:
            distance = path.umin - veh.u
            if path.lane_ok(veh.lane):
                veh.mandatory_lane_change = False
                veh.tactical_lane_change = False
                if distance < config.TACTICAL_DISTANCE:
                    return None
            elif distance <= 0:
                return None
            else:
                if distance < config.LANE_CHANGE_DISTANCE:
                    veh.mandatory_lane_change = True
                elif distance < config.TACTICAL_DISTANCE:
                    veh.tactical_lane_change = True
                if veh.mandatory_lane_change or veh.tactical_lane_change:
                    direction = path.required_direction(veh.lane)
                    model = self._model_for(veh, direction)
                    return self._evaluate(veh, veh.lane + direction, direction, model)

        best = None
        for direction in (1, -1):
            decision = self._evaluate(veh, veh.lane + direction, direction, self.lc_normal)
            if decision is not None and (best is None or decision[1].incentive > best[1].incentive):
                best = decision
        return best

    def _model_for(self, veh: Vehicle, direction: int) -> MOBILModel:
        if veh.mandatory_lane_change:
            return self.lc_mandatory_right if direction > 0 else self.lc_mandatory_left
        if veh.tactical_lane_change:
            return self.lc_tactical
        return self.lc_normal

    def _evaluate(self, veh: Vehicle, target_lane: int, direction: int,
                  model: MOBILModel) -> Optional[Tuple[int, LaneChangeDecision]]:
        if not 0 <= target_lane < self.n_lanes:
            return None
        decision = model.should_change_lanes(
            veh, self.lane_vehicles(veh.lane), self.lane_vehicles(target_lane), direction
        )
        if decision.should_change:
            return target_lane, decision
        return None

    def execute_lane_change(self, veh: Vehicle, target_lane: int) -> bool:
        if not 0 <= target_lane < self.n_lanes or target_lane == veh.lane:
            return False
        veh.lane_old = veh.lane
        veh.lane = target_lane
        veh.time_since_lane_change = 0.0
        veh.lane_change_duration = config.LANE_CHANGE_DURATION
        veh.mandatory_lane_change = False
        veh.tactical_lane_change = False
        return True

    @staticmethod
    def update_optical(veh: Vehicle):
        """S-curve easing of the optical lateral position from lane_old to lane."""
        duration = veh.lane_change_duration
        elapsed = veh.time_since_lane_change
        if duration <= 0 or elapsed >= duration:
            veh.v = float(veh.lane)
            veh.dvdt = 0.0
            return

        acc_v = 4.0 / (duration * duration)
        span = veh.lane - veh.lane_old
        if elapsed < 0.5 * duration:
            t = elapsed
            dv = 0.5 * acc_v * t * t
        else:
            t = duration - elapsed
            dv = 1 - 0.5 * acc_v * t * t
        veh.v = veh.lane_old + dv * span
        veh.dvdt = acc_v * t * span

    def update_speed_positions(self, dt: float):
        for veh in self.vehicles:
            veh.u += max(0.0, veh.speed * dt + 0.5 * veh.acc * dt * dt)
            veh.speed = max(0.0, veh.speed + veh.acc * dt)
            if veh.is_waiting:
                veh.wait_time += dt
            self.update_optical(veh)

    def remove_exited(self) -> List[Vehicle]:
        limit = self.length + config.BOUNDARY_OVERSHOOT
        exited = [v for v in self.vehicles if v.u > limit]
        if exited:
            self.vehicles = [v for v in self.vehicles if v.u <= limit]
        return exited

    # Inflow

    def update_inflow(self, flow: float, dt: float, routes: Dict[TurnType, List[int]],
                      probabilities: TurnProbabilities, rng: random.Random,
                      vehicle_id: str, truck_fraction: float = 0.0,
                      sim_time: float = 0.0) -> Optional[Vehicle]:
        """
        Accumulate a fractional vehicle buffer from a flow rate [veh/h] and spawn
        once it reaches one vehicle. A blocked spawn keeps the buffer for the next tick.
        """
        self.in_veh_buffer += flow * dt / 3600.0
        if self.in_veh_buffer < 1.0:
            return None

        route = select_route(routes, probabilities, rng)
        kind = VehicleKind.TRUCK if rng.random() < truck_fraction else VehicleKind.CAR
        vehicle = self.create_vehicle(vehicle_id, route, rng, kind, sim_time)
        if not self.can_spawn(vehicle):
            return None
        self.vehicles.append(vehicle)
        self.in_veh_buffer -= 1.0
        return vehicle

    def create_vehicle(self, vehicle_id: str, route: Sequence[int], rng: random.Random,
                       kind: VehicleKind = VehicleKind.CAR, sim_time: float = 0.0,
                       lane: Optional[int] = None) -> Vehicle:
        if lane is None:
            lane = rng.randrange(self.n_lanes)
        return Vehicle(
            id=vehicle_id,
            kind=kind,
            approach=self.approach or Approach.EAST,
            route=list(route),
            road_id=self.road_id,
            u=config.SPAWN_U,
            lane=lane,
            v=float(lane),
            lane_old=lane,
            speed=max(0.0, config.SPEED_INIT + (rng.random() - 0.5) * config.SPEED_INIT_SPREAD),
            driver_factor=IDMModel.initial_driver_factor(rng),
            spawn_time=sim_time,
        )

    def can_spawn(self, vehicle: Vehicle) -> bool:
        for existing in self.vehicles:
            if existing.lane == vehicle.lane and abs(existing.u - vehicle.u) < config.SPAWN_CLEARANCE:
                return False
        return True

    # Connections

    def process_connections(self) -> List[Vehicle]:
        transferred = []
        for connection in self.connections:
            for veh in list(reversed(self.vehicles)):
                if veh.u >= connection.u_source and veh.next_road == connection.target.road_id:
                    self.transfer_vehicle(veh, connection)
                    transferred.append(veh)
        return transferred

    def transfer_vehicle(self, veh: Vehicle, connection: Connection):
        self.vehicles.remove(veh)
        target = connection.target
        veh.u = connection.u_target
        veh.road_id = target.road_id
        veh.route = veh.route[1:]
        veh.lane = min(veh.lane, target.n_lanes - 1)
        veh.lane_old = min(veh.lane_old, target.n_lanes - 1)
        veh.mandatory_lane_change = False
        veh.tactical_lane_change = False
        target.vehicles.append(veh)

    def reset(self):
        self.vehicles = []
        self.in_veh_buffer = 0.0


def select_route(routes: Dict[TurnType, List[int]], probabilities: TurnProbabilities,
                 rng: random.Random) -> List[int]:
    r = rng.random()
    if r < probabilities.straight:
        return list(routes[TurnType.STRAIGHT])
    if r < probabilities.straight + probabilities.right:
        return list(routes[TurnType.RIGHT])
    return list(routes[TurnType.LEFT])
