import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from pydantic import ValidationError

from intersim.domain.models import Approach, ControlMode, TurnProbabilities, TurnType

logger = logging.getLogger(__name__)


class Command(ABC):
    @abstractmethod
    def execute(self, kernel: Any):
        pass


class UpdateSettingsCommand(Command):
    def __init__(self, **updates):
        self.updates = updates

    def execute(self, kernel: Any):
        try:
            settings = kernel.settings.with_updates(**self.updates)
        except ValidationError as e:
            logger.warning(f"Rejected settings update {self.updates}: {e.error_count()} error(s)")
            return False
        kernel.apply_settings(settings)
        return True


class SetTrafficDemandCommand(Command):
    def __init__(self, demand: Dict[Approach, float]):
        self.demand = demand

    def execute(self, kernel: Any):
        merged = dict(kernel.settings.traffic_demand or {})
        for key, flow in self.demand.items():
            try:
                merged[Approach(key)] = flow
            except ValueError:
                logger.warning(f"Ignoring demand for unknown direction {key!r}")
        try:
            settings = kernel.settings.with_updates(traffic_demand=merged)
        except ValidationError as e:
            logger.warning(f"Rejected traffic demand {self.demand}: {e.error_count()} error(s)")
            return False
        kernel.apply_settings(settings)
        return True


class SetTurnProbabilitiesCommand(Command):
    def __init__(self, straight: float, right: float, left: float):
        self.straight = straight
        self.right = right
        self.left = left

    def execute(self, kernel: Any):
        try:
            probabilities = TurnProbabilities(straight=self.straight, right=self.right, left=self.left)
        except ValidationError:
            logger.warning(
                f"Turn probabilities must sum to 1.0, got "
                f"{self.straight + self.right + self.left:.3f}; keeping previous values"
            )
            return False
        kernel.apply_settings(kernel.settings.with_updates(turn_probabilities=probabilities))
        return True


class SetControlModeCommand(Command):
    def __init__(self, mode: ControlMode):
        self.mode = mode

    def execute(self, kernel: Any):
        kernel.signals.set_mode(self.mode)
        kernel.state.mode = self.mode


class SpawnVehicleCommand(Command):
    def __init__(self, approach: Approach, turn: Optional[TurnType] = None):
        self.approach = approach
        self.turn = turn

    def execute(self, kernel: Any):
        return kernel.network.spawn_vehicle(self.approach, kernel.rng, self.turn, kernel.state.time)
