import json
import logging
import random
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from intersim.domain import config
from intersim.domain.models import (
    Approach, ControlMode, EngineSettings, LightColor, SensorReading, Statistics,
    TrafficStatistics, TurnProbabilities, TurnType
)
from intersim.domain.state import SimulationState
from intersim.kernel.command_queue import CommandQueue
from intersim.kernel.commands import (
    Command, SetControlModeCommand, SetTrafficDemandCommand, SetTurnProbabilitiesCommand,
    SpawnVehicleCommand, UpdateSettingsCommand
)
from intersim.kernel.observers import SimulationObserver
from intersim.kernel.snapshot_builder import SnapshotBuilder
from intersim.systems.detection_system import DetectionAggregator
from intersim.systems.road_network import RoadNetwork
from intersim.systems.signal_system import SignalController
from intersim.systems.statistics import StatisticsCollector

logger = logging.getLogger(__name__)


class SimulationKernel:
    """
    One deterministic tick over the road network, signal controller and detectors.

    Configuration changes are queued as commands and applied at the start of the
    next tick, so a tick always sees a single immutable settings snapshot.
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.state = SimulationState()
        self.dt = config.PHYSICS_DT
        self.command_queue = CommandQueue()
        self.settings = settings or EngineSettings()
        self.seed: Optional[int] = None
        self.rng = random.Random()

        self.network = RoadNetwork(self.settings)
        self.detection = DetectionAggregator(self.network, self.settings)
        self.signals = SignalController(self.state.mode, on_pair_switch=self.detection.reset_all_counts)
        self.stats = StatisticsCollector()
        self.observers: List[SimulationObserver] = [self.stats]
        self.snapshot_builder = SnapshotBuilder()
        self.initialized = False

    def initialize(self, seed: Optional[int] = None):
        self.seed = seed
        self.rng = random.Random(seed)
        self.state = SimulationState(mode=self.signals.mode)
        self.network.reset()
        self.signals.reset()
        self.detection.reset()
        self.stats.reset()
        self.initialized = True
        logger.info(f"Kernel initialized (seed: {seed}, mode: {self.signals.mode.value})")

    def reset(self):
        self.command_queue.clear()
        self.initialize(self.seed)

    def add_observer(self, observer: SimulationObserver):
        self.observers.append(observer)

    def remove_observer(self, observer: SimulationObserver):
        if observer in self.observers:
            self.observers.remove(observer)

    def queue_command(self, command: Command):
        self.command_queue.add(command)

    def apply_settings(self, settings: EngineSettings):
        self.settings = settings
        self.network.apply_settings(settings)
        self.detection.apply_settings(settings)

    def run_tick(self) -> List[Any]:
        if not self.initialized:
            self.initialize()

        # 1. Commands
        results = self.command_queue.drain(self)

        # 2. Traffic, signals, detectors
        dt = self.dt
        completed = self.network.step(dt, self.signals.get_light_states(), self.rng, self.state.time)
        changed = self.signals.update(dt, self.settings)
        self.detection.update(dt, self.signals.get_light_states(), changed)
        self.signals.set_priority_scores(self.detection.priority_scores())

        for vehicle in completed:
            self.state.vehicles_completed += 1
            for observer in self.observers:
                observer.on_vehicle_completed(vehicle)

        # 3. Time advance
        self.state.time += dt
        self.state.tick_id += 1
        self.state.vehicles_spawned = self.network.vehicle_counter

        if self.state.time - self.state.last_stats_time >= config.STATS_LOG_INTERVAL:
            self.state.last_stats_time = self.state.time
            self._statistics_tick()
        return results

    def _statistics_tick(self):
        stats = self.get_statistics()
        traffic = self.network.get_traffic_statistics()
        lights = ",".join(f"{a.value}={c.value}" for a, c in self.signals.get_light_states().items())
        logger.info(
            f"t={self.state.time:.1f}s vehicles={traffic.totalVehicles} "
            f"avg_speed={traffic.averageSpeed:.1f}m/s passed={stats.totalCarsPassed} lights={lights}"
        )
        for observer in self.observers:
            observer.on_statistics_tick(stats)

    # Control surface

    def update_settings(self, **updates) -> bool:
        try:
            self.settings.with_updates(**updates)
        except ValidationError as e:
            logger.warning(f"Rejected settings update {updates}: {e.error_count()} error(s)")
            return False
        self.queue_command(UpdateSettingsCommand(**updates))
        return True

    def set_traffic_demand(self, demand: Dict[Approach, float]):
        self.queue_command(SetTrafficDemandCommand(demand))

    def set_turn_probabilities(self, straight: float, right: float, left: float) -> bool:
        try:
            TurnProbabilities(straight=straight, right=right, left=left)
        except ValidationError:
            logger.warning(
                f"Turn probabilities must sum to 1.0, got {straight + right + left:.3f}; keeping previous values"
            )
            return False
        self.queue_command(SetTurnProbabilitiesCommand(straight, right, left))
        return True

    def set_mode(self, mode: ControlMode):
        self.queue_command(SetControlModeCommand(mode))

    def spawn_vehicle(self, approach: Approach, turn: Optional[TurnType] = None):
        self.queue_command(SpawnVehicleCommand(approach, turn))

    # Getters

    def get_statistics(self) -> Statistics:
        return self.stats.statistics(self.network.vehicle_count())

    def get_traffic_statistics(self) -> TrafficStatistics:
        return self.network.get_traffic_statistics()

    def get_sensor_data(self) -> Dict[str, SensorReading]:
        return self.detection.get_sensor_data()

    def get_total_cars_detected(self) -> Dict[str, int]:
        return self.detection.get_total_cars_detected()

    def get_light_states(self) -> Dict[Approach, LightColor]:
        return self.signals.get_light_states()

    def get_debug_info(self) -> Dict[str, Any]:
        return {
            "tick": self.state.tick_id,
            "time": self.state.time,
            "signals": self.signals.debug_info(),
            "priorityScores": {p.value: s for p, s in self.detection.priority_scores().items()},
            "pendingCommands": len(self.command_queue),
        }

    def export_traffic_data(self, performance: Optional[Dict[str, Any]] = None) -> str:
        return json.dumps(self.snapshot_builder.build(self, performance), indent=2)
