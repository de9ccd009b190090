from abc import ABC, abstractmethod
from typing import Any, Dict

from intersim.domain.models import Approach, ControlMode, EngineSettings, LightColor, SignalPair

ALL_RED = {approach: LightColor.RED for approach in Approach}


class ControlStrategy(ABC):
    mode: ControlMode

    @abstractmethod
    def update(self, dt: float, settings: EngineSettings):
        pass

    @abstractmethod
    def light_states(self) -> Dict[Approach, LightColor]:
        pass

    @abstractmethod
    def reset(self):
        pass

    def set_priority_scores(self, scores: Dict[SignalPair, float]):
        """Only demand-driven strategies consume detector scores."""
        pass

    def debug_info(self) -> Dict[str, Any]:
        return {"mode": self.mode.value}
