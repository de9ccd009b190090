import logging
from typing import Any, Callable, Dict, List, Optional

from intersim.controllers.base import ControlStrategy
from intersim.controllers.implementations import AdaptiveDemandStrategy, FixedTimerStrategy
from intersim.domain.models import Approach, ControlMode, EngineSettings, LightColor, SignalPair

logger = logging.getLogger(__name__)


class SignalController:
    """Per-approach light colours from whichever ControlStrategy the current mode selects."""

    def __init__(self, mode: ControlMode = ControlMode.FIXED,
                 on_pair_switch: Optional[Callable[[SignalPair], None]] = None):
        self.strategies: Dict[ControlMode, ControlStrategy] = {
            ControlMode.FIXED: FixedTimerStrategy(),
            ControlMode.ADAPTIVE: AdaptiveDemandStrategy(on_pair_switch),
        }
        self.mode = mode
        self.strategy = self.strategies[mode]
        self.previous_states = self.strategy.light_states()

    def update(self, dt: float, settings: EngineSettings) -> List[Approach]:
        """Advance the active strategy. Returns the approaches whose colour changed."""
        self.strategy.update(dt, settings)
        states = self.strategy.light_states()
        changed = [a for a in Approach if states[a] != self.previous_states.get(a)]
        self.previous_states = states
        return changed

    def get_light_states(self) -> Dict[Approach, LightColor]:
        return self.strategy.light_states()

    def set_priority_scores(self, scores: Dict[SignalPair, float]):
        self.strategy.set_priority_scores(scores)

    def set_mode(self, mode: ControlMode):
        if mode == self.mode:
            return
        logger.info(f"Signal control mode {self.mode.value} -> {mode.value}")
        self.mode = mode
        self.strategy = self.strategies[mode]
        self.strategy.reset()

    def reset(self):
        for strategy in self.strategies.values():
            strategy.reset()
        self.previous_states = self.strategy.light_states()

    def debug_info(self) -> Dict[str, Any]:
        info = self.strategy.debug_info()
        info["lights"] = {a.value: c.value for a, c in self.get_light_states().items()}
        return info
