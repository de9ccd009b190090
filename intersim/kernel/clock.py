import logging
import time
from typing import Any, Dict, Optional

from intersim.domain import config

logger = logging.getLogger(__name__)

EMA_WEIGHT = 0.05
PERFORMANCE_LOG_FRAMES = 300


class SimulationClock:
    """
    Fixed-timestep accumulator driving a SimulationKernel.

    Each frame adds elapsed wall time (capped at MAX_FRAME_TIME) to the accumulator
    and runs whole physics ticks out of it, at most MAX_TICKS_PER_FRAME per frame.
    The remaining fraction of a tick is returned as the interpolation alpha.
    """

    def __init__(self, kernel: Any,
                 max_frame_time: float = config.MAX_FRAME_TIME,
                 max_ticks_per_frame: int = config.MAX_TICKS_PER_FRAME):
        self.kernel = kernel
        self.max_frame_time = max_frame_time
        self.max_ticks_per_frame = max_ticks_per_frame
        self.running = False
        self.accumulator = 0.0
        self.total_time = 0.0
        self.alpha = 0.0
        self.last_timestamp: Optional[float] = None
        self._reset_performance()

    @property
    def dt(self) -> float:
        return self.kernel.dt

    def _reset_performance(self):
        self.frame_count = 0
        self.avg_frame_time = 0.0
        self.avg_physics_time = 0.0
        self.avg_vehicle_count = 0.0

    def start(self):
        if not self.running:
            self.running = True
            self.last_timestamp = None
            logger.info("Simulation started")

    def stop(self):
        if self.running:
            self.running = False
            logger.info("Simulation stopped")

    def reset(self):
        self.accumulator = 0.0
        self.total_time = 0.0
        self.alpha = 0.0
        self.last_timestamp = None
        self._reset_performance()
        self.kernel.reset()

    def frame_at(self, timestamp: float) -> float:
        """Frame callback taking an absolute timestamp in seconds."""
        if self.last_timestamp is None:
            self.last_timestamp = timestamp
            return self.alpha
        elapsed = timestamp - self.last_timestamp
        self.last_timestamp = timestamp
        return self.frame(elapsed)

    def frame(self, elapsed: float) -> float:
        if not self.running:
            return self.alpha

        frame_time = min(max(0.0, elapsed), self.max_frame_time)
        self.accumulator += frame_time

        started = time.perf_counter()
        ticks = 0
        while self.accumulator >= self.dt and ticks < self.max_ticks_per_frame:
            self.kernel.run_tick()
            self.accumulator -= self.dt
            self.total_time += self.dt
            ticks += 1
        physics_time = time.perf_counter() - started

        self.alpha = self.accumulator / self.dt
        self._record(frame_time, physics_time)
        return self.alpha

    def _record(self, frame_time: float, physics_time: float):
        self.frame_count += 1
        vehicles = self.kernel.network.vehicle_count()
        if self.frame_count == 1:
            self.avg_frame_time = frame_time
            self.avg_physics_time = physics_time
            self.avg_vehicle_count = float(vehicles)
            return
        self.avg_frame_time += EMA_WEIGHT * (frame_time - self.avg_frame_time)
        self.avg_physics_time += EMA_WEIGHT * (physics_time - self.avg_physics_time)
        self.avg_vehicle_count += EMA_WEIGHT * (vehicles - self.avg_vehicle_count)
        if self.frame_count % PERFORMANCE_LOG_FRAMES == 0:
            logger.debug(
                f"Performance: {self.avg_frame_time * 1000:.1f}ms frame, "
                f"{self.avg_physics_time * 1000:.1f}ms physics, {round(self.avg_vehicle_count)} vehicles"
            )

    def performance_stats(self) -> Dict[str, Any]:
        return {
            "frames": self.frame_count,
            "averageFrameTime": self.avg_frame_time,
            "averagePhysicsTime": self.avg_physics_time,
            "averageVehicleCount": self.avg_vehicle_count,
            "simulatedTime": self.total_time,
            "running": self.running,
        }
