import math
import random
from typing import Optional

from intersim.domain import config


class IDMModel:
    """Intelligent Driver Model (IDM) for car-following.

    The acceleration law is a pure function of the local traffic state. The only
    per-driver state is the multiplicative driver factor, which lives on the
    vehicle and is passed in.
    """

    def __init__(self,
                 v0: float = config.IDM_V0,
                 T: float = config.IDM_T,
                 s0: float = config.IDM_S0,
                 a: float = config.IDM_A,
                 b: float = config.IDM_B,
                 bmax: float = config.IDM_BMAX,
                 speed_limit: float = config.SPEED_MAX,
                 speed_max: float = config.SPEED_MAX):
        """
        Args:
            v0: Desired speed [m/s]
            T: Safe time headway [s]
            s0: Minimum gap in stop-and-go traffic [m]
            a: Maximum acceleration [m/s^2]
            b: Comfortable deceleration [m/s^2]
            bmax: Maximum braking deceleration [m/s^2]
            speed_limit: Posted limit capping the desired speed [m/s]
            speed_max: Absolute speed cap [m/s]
        """
        self.v0 = v0
        self.T = T
        self.s0 = s0
        self.a = a
        self.b = b
        self.bmax = bmax
        self.speed_limit = speed_limit
        self.speed_max = speed_max

    def effective_desired_speed(self, driver_factor: float = 1.0) -> float:
        return min(self.v0 * driver_factor, self.speed_limit, self.speed_max)

    def free_acceleration(self, v: float, driver_factor: float = 1.0) -> float:
        v0eff = self.effective_desired_speed(driver_factor)
        aeff = self.a * driver_factor
        if v < v0eff:
            return aeff * (1 - (v / v0eff) ** 4)
        return aeff * (1 - v / v0eff)

    def desired_gap(self, v: float, vl: float, driver_factor: float = 1.0) -> float:
        """Desired dynamic gap s*"""
        aeff = self.a * driver_factor
        return self.s0 + max(0.0, v * self.T + v * (v - vl) / (2 * math.sqrt(aeff * self.b)))

    def acceleration(self, s: float, v: float, vl: float, driver_factor: float = 1.0) -> float:
        """
        Compute IDM acceleration.

        Args:
            s: Gap to leader [m]
            v: Current speed [m/s]
            vl: Leader speed [m/s]
            driver_factor: Per-driver multiplier on desired speed and acceleration

        Returns:
            Acceleration [m/s^2], never below -bmax
        """
        s = max(s, config.MIN_GAP_CLAMP)
        acc_free = self.free_acceleration(v, driver_factor)

        acc_int = 0.0
        if v >= 0:
            s_star = self.desired_gap(v, vl, driver_factor)
            acc_int = -self.a * driver_factor * (s_star / max(s, self.s0)) ** 2

        return max(-self.bmax, acc_free + acc_int)

    def free_flow(self, v: float, driver_factor: float = 1.0) -> float:
        """Acceleration with no leader, using a very large nominal gap."""
        return self.acceleration(config.FREE_GAP, v, v, driver_factor)

    def safe_distance(self, v: float) -> float:
        return self.s0 + v * self.T

    def is_safe_gap(self, gap: float, v: float, v_other: float) -> bool:
        required = max(self.safe_distance(v), self.safe_distance(v_other))
        return gap > required * 1.2

    @staticmethod
    def initial_driver_factor(rng: random.Random, variance: float = config.DRIVER_VARIANCE) -> float:
        return 1 + variance * (rng.random() - 0.5)

    @staticmethod
    def perturb_driver_factor(driver_factor: float, rng: random.Random,
                              drift: Optional[float] = None) -> float:
        """Small intra-driver variability, bounded to [0.7, 1.3]."""
        amplitude = config.DRIVER_DRIFT_AMPLITUDE if drift is None else drift
        variation = amplitude * (rng.random() - 0.5)
        return max(config.DRIVER_FACTOR_MIN, min(config.DRIVER_FACTOR_MAX, driver_factor + variation))
