import logging
import math
import random
from typing import Any, Dict, List, Optional

from intersim.domain import config
from intersim.domain.graph import IntersectionGraph
from intersim.domain.models import (
    Approach, EngineSettings, LightColor, RoadStats, TrafficStatistics, TurnType, Vehicle
)
from intersim.systems.car_following import IDMModel
from intersim.systems.road_segment import RoadSegment, Trajectory, TurnPath, select_route

logger = logging.getLogger(__name__)

DEFAULT_ROAD = 0

# Road ids: 0 east-bound, 1 west-bound, 2 north-bound in, 3 north exit,
# 4 south-bound in, 5 south exit. Junction centre at (0, 0).
ROAD_NAMES = {
    0: "east-bound",
    1: "west-bound",
    2: "north-bound-in",
    3: "north-exit",
    4: "south-bound-in",
    5: "south-exit",
}

INBOUND_ROADS = {
    Approach.EAST: 0,
    Approach.WEST: 1,
    Approach.NORTH: 2,
    Approach.SOUTH: 4,
}

ROUTES = {
    Approach.EAST: {TurnType.STRAIGHT: [0], TurnType.RIGHT: [0, 5], TurnType.LEFT: [0, 3]},
    Approach.WEST: {TurnType.STRAIGHT: [1], TurnType.RIGHT: [1, 3], TurnType.LEFT: [1, 5]},
    Approach.NORTH: {TurnType.STRAIGHT: [2, 3], TurnType.RIGHT: [2, 0], TurnType.LEFT: [2, 1]},
    Approach.SOUTH: {TurnType.STRAIGHT: [4, 5], TurnType.RIGHT: [4, 1], TurnType.LEFT: [4, 0]},
}

EXIT_ROADS = (3, 5)
DEFAULT_APPROACH = Approach.EAST


def resolve_approach(approach) -> Approach:
    """Coerce a direction name to an Approach, falling back to DEFAULT_APPROACH."""
    try:
        return Approach(approach)
    except ValueError:
        logger.warning(f"Unknown direction {approach!r}, falling back to {DEFAULT_APPROACH.value}")
        return DEFAULT_APPROACH


def centerline(road_id: int) -> Trajectory:
    half = config.ROAD_LENGTH / 2
    offset = config.LANE_WIDTH
    junction = half + 12.0
    trajectories = {
        0: (lambda u: u - half, lambda u: -offset),
        1: (lambda u: half - u, lambda u: offset),
        2: (lambda u: offset, lambda u: u - junction),
        3: (lambda u: offset, lambda u: 12.0 + u),
        4: (lambda u: -offset, lambda u: junction - u),
        5: (lambda u: -offset, lambda u: -12.0 - u),
    }
    return trajectories[road_id]


def arc_trajectory(base: Trajectory, umin: float, radius: float, left: bool) -> Trajectory:
    """Quarter circle leaving `base` tangentially at umin."""
    x0, y0 = base[0](umin), base[1](umin)
    du = 0.1
    dx = base[0](umin + du) - base[0](umin - du)
    dy = base[1](umin + du) - base[1](umin - du)
    norm = math.hypot(dx, dy) or 1.0
    dx, dy = dx / norm, dy / norm
    nx_, ny_ = -dy, dx  # left normal
    side = 1.0 if left else -1.0
    cx, cy = x0 + side * radius * nx_, y0 + side * radius * ny_

    def x(u: float) -> float:
        theta = (u - umin) / radius
        return cx - side * radius * nx_ * math.cos(theta) + radius * dx * math.sin(theta)

    def y(u: float) -> float:
        theta = (u - umin) / radius
        return cy - side * radius * ny_ * math.cos(theta) + radius * dy * math.sin(theta)

    return x, y


class RoadNetwork:
    """Six road segments around one junction and the per-tick processing order across them."""

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        self.idm = IDMModel(speed_limit=self.settings.car_speed)
        self.graph = IntersectionGraph()
        self.segments: Dict[int, RoadSegment] = {}
        self.vehicle_counter = 0
        self.lane_changes = 0
        self._build()

    def _build(self):
        approach_of = {road_id: approach for approach, road_id in INBOUND_ROADS.items()}
        for road_id, name in ROAD_NAMES.items():
            stop_line = None
            if road_id in (0, 1):
                stop_line = config.STOP_LINE_MAIN
            elif road_id in (2, 4):
                stop_line = config.STOP_LINE_APPROACH
            segment = RoadSegment(road_id, name, self.idm,
                                  approach=approach_of.get(road_id),
                                  stop_line=stop_line,
                                  trajectory=centerline(road_id))
            self.segments[road_id] = segment
            self.graph.add_road(road_id, name, segment.length, segment.n_lanes)

        for approach, routes in ROUTES.items():
            source = self.segments[INBOUND_ROADS[approach]]
            for turn in (TurnType.RIGHT, TurnType.LEFT):
                self._add_turn(source, routes[turn][1], turn)

        for source_id, target_id in ((2, 3), (4, 5)):
            self._connect(self.segments[source_id], self.segments[target_id],
                          config.STRAIGHT_SOURCE, 0.0, TurnType.STRAIGHT)

        for segment in self.segments.values():
            segment.precompute_geometry()

        for approach, routes in ROUTES.items():
            for turn, route in routes.items():
                if not self.graph.is_valid_route(route):
                    logger.warning(f"Route {route} for {approach.value}/{turn.value} is not a path")

    def _add_turn(self, source: RoadSegment, target_id: int, turn: TurnType):
        umin = source.stop_line + config.TURN_OFFSET
        if turn == TurnType.RIGHT:
            umax = umin + config.LEN_RIGHT
            lane = source.n_lanes - 1
            radius = config.RADIUS_RIGHT
        else:
            umax = umin + config.LEN_LEFT
            lane = 0
            radius = config.RADIUS_LEFT
        source.add_turn_path(TurnPath(
            road_id=target_id,
            umin=umin,
            umax=umax,
            lane_min=lane,
            lane_max=lane,
            turn_type=turn,
            trajectory=arc_trajectory(source.trajectory, umin, radius, left=(turn == TurnType.LEFT)),
        ))
        u_target = config.U_TARGET_EXIT if target_id in EXIT_ROADS else config.U_TARGET_MAIN
        self._connect(source, self.segments[target_id], umax, u_target, turn)

    def _connect(self, source: RoadSegment, target: RoadSegment, u_source: float,
                 u_target: float, turn: TurnType):
        source.connect(target, u_source, u_target)
        self.graph.add_connection(source.road_id, target.road_id, u_source, u_target, turn)

    # Lookup

    def segment(self, road_id: int) -> RoadSegment:
        if not self.graph.has_road(road_id):
            logger.warning(f"Unknown road id {road_id}, falling back to road {DEFAULT_ROAD}")
            return self.segments[DEFAULT_ROAD]
        return self.segments[road_id]

    def inbound(self, approach: Approach) -> RoadSegment:
        return self.segments[INBOUND_ROADS[resolve_approach(approach)]]

    def all_vehicles(self) -> List[Vehicle]:
        return [v for segment in self.segments.values() for v in segment.vehicles]

    def vehicle_count(self) -> int:
        return sum(len(segment.vehicles) for segment in self.segments.values())

    def apply_settings(self, settings: EngineSettings):
        self.settings = settings
        self.idm.speed_limit = settings.car_speed

    # Tick

    def step(self, dt: float, light_states: Optional[Dict[Approach, LightColor]],
             rng: random.Random, sim_time: float = 0.0) -> List[Vehicle]:
        """Advance every segment by dt. Returns the vehicles that left the network."""
        settings = self.settings
        drift_rng = rng if settings.driver_drift else None

        for segment in self.segments.values():
            light = light_states.get(segment.approach) if light_states and segment.approach else None
            segment.calc_accelerations(light, drift_rng)

        probabilities = settings.effective_turn_probabilities()
        for approach, road_id in INBOUND_ROADS.items():
            spawned = self.segments[road_id].update_inflow(
                settings.demand_for(approach), dt, ROUTES[approach], probabilities, rng,
                self._next_vehicle_id(), settings.truck_fraction, sim_time,
            )
            if spawned is not None:
                self.vehicle_counter += 1

        for segment in self.segments.values():
            segment.process_connections()

        self.enforce_lane_assignments()

        for segment in self.segments.values():
            before = {v.id: v.lane for v in segment.vehicles}
            segment.change_lanes(dt)
            self.lane_changes += sum(1 for v in segment.vehicles if before.get(v.id, v.lane) != v.lane)

        for segment in self.segments.values():
            segment.update_speed_positions(dt)

        completed = []
        for segment in self.segments.values():
            completed.extend(segment.remove_exited())
        return completed

    def enforce_lane_assignments(self):
        """Flag vehicles approaching a turn zone from the wrong lane."""
        for segment in self.segments.values():
            for veh in segment.vehicles:
                path = segment.turn_path_for(veh)
                if path is None or path.lane_ok(veh.lane):
                    continue
                distance = path.umin - veh.u
                if 0 < distance < config.LANE_CHANGE_DISTANCE:
                    veh.mandatory_lane_change = True

    def _next_vehicle_id(self) -> str:
        return f"v-{self.vehicle_counter}"

    def spawn_vehicle(self, approach: Approach, rng: random.Random,
                      turn: Optional[TurnType] = None, sim_time: float = 0.0) -> Optional[Vehicle]:
        """Place one vehicle on an approach immediately, bypassing the inflow buffer."""
        approach = resolve_approach(approach)
        if turn is not None:
            try:
                turn = TurnType(turn)
            except ValueError:
                logger.warning(f"Unknown turn {turn!r}, choosing a route at random")
                turn = None
        segment = self.inbound(approach)
        if turn is None:
            route = select_route(ROUTES[approach], self.settings.effective_turn_probabilities(), rng)
        else:
            route = list(ROUTES[approach][turn])
        vehicle = segment.create_vehicle(self._next_vehicle_id(), route, rng, sim_time=sim_time)
        if not segment.can_spawn(vehicle):
            return None
        segment.vehicles.append(vehicle)
        self.vehicle_counter += 1
        return vehicle

    # Statistics

    def get_traffic_statistics(self) -> TrafficStatistics:
        road_stats = {}
        speeds = []
        lane_utilization = {}
        for road_id, segment in self.segments.items():
            count = len(segment.vehicles)
            avg_speed = sum(v.speed for v in segment.vehicles) / count if count else 0.0
            density = count / segment.length * 1000.0
            road_stats[road_id] = RoadStats(
                vehicles=count,
                averageSpeed=avg_speed,
                density=density,
                flow=density * avg_speed * 3.6,
            )
            speeds.extend(v.speed for v in segment.vehicles)
            for lane in range(segment.n_lanes):
                lane_utilization[f"{road_id}-{lane}"] = len(segment.lane_vehicles(lane))

        return TrafficStatistics(
            totalVehicles=len(speeds),
            averageSpeed=sum(speeds) / len(speeds) if speeds else 0.0,
            roadStats=road_stats,
            laneUtilization=lane_utilization,
        )

    def analyze_traffic_flow(self) -> Dict[str, Any]:
        vehicles = self.all_vehicles()
        speeds = [v.speed for v in vehicles]
        speed_stats = {"min": 0.0, "max": 0.0, "avg": 0.0, "std": 0.0}
        if speeds:
            avg = sum(speeds) / len(speeds)
            speed_stats = {
                "min": min(speeds),
                "max": max(speeds),
                "avg": avg,
                "std": math.sqrt(sum((s - avg) ** 2 for s in speeds) / len(speeds)),
            }

        distribution = {}
        bottlenecks = []
        for road_id, segment in self.segments.items():
            bin_length = segment.length / config.ANALYSIS_BINS
            bins = []
            for i in range(config.ANALYSIS_BINS):
                u0, u1 = i * bin_length, (i + 1) * bin_length
                count = segment.vehicle_count(u0, u1)
                avg_speed = segment.average_speed(u0, u1)
                density = count / bin_length
                bins.append(count)
                if (count and avg_speed < config.BOTTLENECK_SPEED_RATIO * self.idm.v0
                        and density > config.BOTTLENECK_DENSITY):
                    bottlenecks.append({
                        "road": road_id,
                        "name": self.graph.road_name(road_id),
                        "start": u0,
                        "end": u1,
                        "averageSpeed": avg_speed,
                        "density": density,
                    })
            distribution[road_id] = bins

        return {
            "vehicleDistribution": distribution,
            "speedStatistics": speed_stats,
            "laneChanges": {
                "total": self.lane_changes,
                "active": sum(1 for v in vehicles if v.is_changing_lanes),
            },
            "bottlenecks": bottlenecks,
        }

    def reset(self):
        for segment in self.segments.values():
            segment.reset()
        self.vehicle_counter = 0
        self.lane_changes = 0
