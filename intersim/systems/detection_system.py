import logging
from typing import Dict, Iterable, Optional, Set

from intersim.domain.models import (
    PAIR_APPROACHES, Approach, DetectionZone, EngineSettings, LightColor, SensorReading, SignalPair
)
from intersim.systems.road_network import RoadNetwork

logger = logging.getLogger(__name__)


class DetectionAggregator:
    """Virtual detectors upstream of each approach's stop line."""

    def __init__(self, network: RoadNetwork, settings: Optional[EngineSettings] = None):
        self.network = network
        self.settings = settings or network.settings
        self.zones: Dict[Approach, DetectionZone] = {}
        self._inside: Dict[Approach, Set[str]] = {}
        self._wait_clock: Dict[Approach, Dict[str, float]] = {}
        self.reset()

    def zone_bounds(self, approach: Approach):
        segment = self.network.inbound(approach)
        u_end = segment.stop_line if segment.stop_line is not None else segment.length
        return max(0.0, u_end - self.settings.detector_distance), u_end

    def apply_settings(self, settings: EngineSettings):
        self.settings = settings
        for approach, zone in self.zones.items():
            zone.u_start, zone.u_end = self.zone_bounds(approach)

    def update(self, dt: float, light_states: Dict[Approach, LightColor],
               changed: Iterable[Approach] = ()):
        changed = set(changed)
        for approach, zone in self.zones.items():
            zone.u_start, zone.u_end = self.zone_bounds(approach)
            if approach in changed:
                self._clear_waiting(approach)
                continue
            if light_states.get(approach) != LightColor.RED:
                continue
            self._measure(approach, dt)

    def _measure(self, approach: Approach, dt: float):
        zone = self.zones[approach]
        segment = self.network.inbound(approach)
        present = [v for v in segment.vehicles if zone.contains(v.u, v.lane)]
        present.sort(key=lambda v: v.u, reverse=True)

        ids = {v.id for v in present}
        zone.total_detected += len(ids - self._inside[approach])
        self._inside[approach] = ids
        zone.detected = [v.id for v in present]

        waiting = [v for v in present if v.is_waiting]
        clock = self._wait_clock[approach]
        waiting_ids = {v.id for v in waiting}
        for vid in list(clock):
            if vid not in waiting_ids:
                del clock[vid]
        for veh in waiting:
            clock[veh.id] = clock.get(veh.id, 0.0) + dt

        zone.cars_waiting = len(waiting)
        if waiting:
            closest = waiting[0]
            zone.closest_vehicle_id = closest.id
            zone.wait_time = clock[closest.id]
        else:
            zone.closest_vehicle_id = None
            zone.wait_time = 0.0

    def _clear_waiting(self, approach: Approach):
        zone = self.zones[approach]
        zone.cars_waiting = 0
        zone.wait_time = 0.0
        zone.closest_vehicle_id = None
        self._wait_clock[approach] = {}

    def priority_scores(self) -> Dict[SignalPair, float]:
        scores = {}
        for pair, approaches in PAIR_APPROACHES.items():
            score = 0.0
            for approach in approaches:
                zone = self.zones[approach]
                score += zone.cars_waiting * zone.wait_time + zone.total_detected
            scores[pair] = score
        return scores

    def get_sensor_data(self) -> Dict[str, SensorReading]:
        return {
            approach.value: SensorReading(
                carsWaiting=zone.cars_waiting,
                waitTime=zone.wait_time,
                totalCarsDetected=zone.total_detected,
                closestVehicleId=zone.closest_vehicle_id,
                detectedCars=list(zone.detected),
            )
            for approach, zone in self.zones.items()
        }

    def get_total_cars_detected(self) -> Dict[str, int]:
        return {approach.value: zone.total_detected for approach, zone in self.zones.items()}

    def reset_all_counts(self, pair: Optional[SignalPair] = None):
        """Zero the distinct counters. Queued vehicles are counted again on the next red tick."""
        if pair is not None:
            logger.debug(f"Detection counts reset on switch to {pair.value}")
        for approach, zone in self.zones.items():
            zone.total_detected = 0
            self._inside[approach] = set()

    def reset(self):
        self.zones = {}
        for approach in Approach:
            u_start, u_end = self.zone_bounds(approach)
            self.zones[approach] = DetectionZone(
                approach=approach,
                road_id=self.network.inbound(approach).road_id,
                u_start=u_start,
                u_end=u_end,
                lane_max=self.network.inbound(approach).n_lanes - 1,
            )
            self._inside[approach] = set()
            self._wait_clock[approach] = {}
