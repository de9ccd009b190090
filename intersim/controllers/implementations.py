import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from intersim.controllers.base import ALL_RED, ControlStrategy
from intersim.domain import config
from intersim.domain.models import (
    PAIR_APPROACHES, AdaptivePhase, Approach, ControlMode, EngineSettings, LightColor, SignalPair
)

logger = logging.getLogger(__name__)

# (green pair or None, colour of that pair)
FIXED_PHASES: List[Tuple[Optional[SignalPair], LightColor]] = [
    (SignalPair.NS, LightColor.GREEN),
    (SignalPair.NS, LightColor.YELLOW),
    (None, LightColor.RED),
    (SignalPair.WE, LightColor.GREEN),
    (SignalPair.WE, LightColor.YELLOW),
    (None, LightColor.RED),
]


def pair_colors(pair: Optional[SignalPair], color: LightColor) -> Dict[Approach, LightColor]:
    states = dict(ALL_RED)
    if pair is not None:
        for approach in PAIR_APPROACHES[pair]:
            states[approach] = color
    return states


class FixedTimerStrategy(ControlStrategy):
    """Six-phase cycle on a single timer: NS green, NS yellow, clearance, WE green, WE yellow, clearance."""
    mode = ControlMode.FIXED

    def __init__(self):
        self.phase = 0
        self.timer = 0.0

    def phase_duration(self, phase: int, settings: EngineSettings) -> float:
        pair, color = FIXED_PHASES[phase]
        if pair is None:
            return config.FIXED_CLEARANCE_TIME
        if color == LightColor.GREEN:
            return settings.green_time
        return settings.yellow_time

    def update(self, dt: float, settings: EngineSettings):
        self.timer += dt
        duration = self.phase_duration(self.phase, settings)
        if self.timer >= duration:
            # overshoot carries into the next phase
            self.timer -= duration
            self.phase = (self.phase + 1) % len(FIXED_PHASES)
            logger.debug(f"Fixed timer -> phase {self.phase}")

    def light_states(self) -> Dict[Approach, LightColor]:
        return pair_colors(*FIXED_PHASES[self.phase])

    def reset(self):
        self.phase = 0
        self.timer = 0.0

    def debug_info(self) -> Dict[str, Any]:
        return {"mode": self.mode.value, "phase": self.phase, "timer": self.timer}


class AdaptiveDemandStrategy(ControlStrategy):
    """
    Demand-driven controller. Idle (all red, no active pair) until some pair scores
    above zero, then green for that pair. The green holds until the other pair's score
    beats it by ADAPTIVE_SWITCH_RATIO and exceeds ADAPTIVE_SWITCH_FLOOR; then yellow,
    an all-red clearance, and a fresh pick of the highest-scoring pair.
    """
    mode = ControlMode.ADAPTIVE

    def __init__(self, on_pair_switch: Optional[Callable[[SignalPair], None]] = None):
        self.on_pair_switch = on_pair_switch
        self.reset()

    def reset(self):
        self.current_pair: Optional[SignalPair] = None
        self.phase = AdaptivePhase.RED
        self.timer = 0.0
        self.priority_scores: Dict[SignalPair, float] = {pair: 0.0 for pair in SignalPair}
        self.triggered = False

    def set_priority_scores(self, scores: Dict[SignalPair, float]):
        for pair in SignalPair:
            self.priority_scores[pair] = scores.get(pair, 0.0)

    def best_pair(self) -> Optional[SignalPair]:
        top = max(self.priority_scores.values())
        if top <= 0:
            return None
        if self.current_pair is not None and self.priority_scores[self.current_pair] == top:
            return self.current_pair
        for pair in SignalPair:
            if self.priority_scores[pair] == top:
                return pair
        return None

    def should_switch(self) -> bool:
        current = self.priority_scores[self.current_pair]
        other = self.priority_scores[opposite(self.current_pair)]
        return other > current * config.ADAPTIVE_SWITCH_RATIO and other > config.ADAPTIVE_SWITCH_FLOOR

    def update(self, dt: float, settings: EngineSettings):
        self.timer += dt

        if self.current_pair is None:
            pair = self.best_pair()
            if pair is not None:
                self.triggered = True
                self._green(pair)
                logger.info(f"Adaptive control triggered by {pair.value} demand")
            return

        if self.phase == AdaptivePhase.GREEN:
            if self.timer >= settings.min_green and self.should_switch():
                self.phase = AdaptivePhase.YELLOW
                self.timer = 0.0
        elif self.phase == AdaptivePhase.YELLOW:
            if self.timer >= settings.yellow_time:
                self.phase = AdaptivePhase.RED
                self.timer = 0.0
        elif self.timer >= config.ADAPTIVE_CLEARANCE_TIME:
            pair = self.best_pair()
            if pair is None:
                return
            if pair != self.current_pair and self.on_pair_switch is not None:
                self.on_pair_switch(pair)
            self._green(pair)

    def _green(self, pair: SignalPair):
        if pair != self.current_pair:
            logger.debug(f"Adaptive green -> {pair.value}")
        self.current_pair = pair
        self.phase = AdaptivePhase.GREEN
        self.timer = 0.0

    def light_states(self) -> Dict[Approach, LightColor]:
        if self.current_pair is None:
            return dict(ALL_RED)
        return pair_colors(self.current_pair, LightColor(self.phase.value))

    def debug_info(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "currentPair": self.current_pair.value if self.current_pair else None,
            "phase": self.phase.value,
            "timer": self.timer,
            "priorityScores": {pair.value: score for pair, score in self.priority_scores.items()},
            "triggered": self.triggered,
        }


def opposite(pair: SignalPair) -> SignalPair:
    return SignalPair.NS if pair == SignalPair.WE else SignalPair.WE
