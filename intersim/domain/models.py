from enum import Enum
from typing import Annotated, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from intersim.domain import config

class LightColor(str, Enum):
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"

class Approach(str, Enum):
    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"

class SignalPair(str, Enum):
    WE = "WE"
    NS = "NS"

PAIR_APPROACHES = {
    SignalPair.WE: (Approach.WEST, Approach.EAST),
    SignalPair.NS: (Approach.NORTH, Approach.SOUTH),
}

class ControlMode(str, Enum):
    FIXED = "fixed"
    ADAPTIVE = "adaptive"

class AdaptivePhase(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"

class TurnType(str, Enum):
    STRAIGHT = "straight"
    RIGHT = "right"
    LEFT = "left"

class VehicleKind(str, Enum):
    CAR = "car"
    TRUCK = "truck"

VEHICLE_DIMENSIONS = {
    VehicleKind.CAR: (config.CAR_LENGTH, config.CAR_WIDTH),
    VehicleKind.TRUCK: (config.TRUCK_LENGTH, config.TRUCK_WIDTH),
}

class Vehicle(BaseModel):
    id: str
    kind: VehicleKind = VehicleKind.CAR
    approach: Approach
    route: List[int]  # route[0] is the road currently driven on
    road_id: int
    u: float = config.SPAWN_U
    lane: int = 0
    v: float = 0.0  # Optical lateral position (lane units), rendering only
    dvdt: float = 0.0
    speed: float = 0.0
    acc: float = 0.0
    driver_factor: float = 1.0
    time_since_lane_change: float = 10.0
    lane_change_duration: float = config.LANE_CHANGE_DURATION
    lane_old: int = 0
    mandatory_lane_change: bool = False
    tactical_lane_change: bool = False
    wait_time: float = 0.0
    spawn_time: float = 0.0

    @property
    def length(self) -> float:
        return VEHICLE_DIMENSIONS[self.kind][0]

    @property
    def width(self) -> float:
        return VEHICLE_DIMENSIONS[self.kind][1]

    @property
    def is_changing_lanes(self) -> bool:
        return self.time_since_lane_change < self.lane_change_duration

    @property
    def is_waiting(self) -> bool:
        return self.speed < config.WAITING_SPEED

    @property
    def next_road(self) -> Optional[int]:
        return self.route[1] if len(self.route) > 1 else None

class TurnProbabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    straight: float = Field(0.6, ge=0.0, le=1.0)
    right: float = Field(0.25, ge=0.0, le=1.0)
    left: float = Field(0.15, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_sum(self):
        total = self.straight + self.right + self.left
        if abs(total - 1.0) >= config.TURN_PROBABILITY_TOLERANCE:
            raise ValueError(f"Turn probabilities must sum to 1.0 (got {total:.3f})")
        return self

    @classmethod
    def from_turn_rate(cls, turn_rate: float) -> "TurnProbabilities":
        right = turn_rate * config.RIGHT_SHARE_OF_TURNS
        return cls(straight=1.0 - turn_rate, right=right, left=turn_rate - right)

class EngineSettings(BaseModel):
    """Immutable settings snapshot. Durations are milliseconds at the boundary."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    green_duration: float = Field(config.DEFAULT_SETTINGS["GREEN_DURATION"], alias="GREEN_DURATION", gt=0)
    yellow_duration: float = Field(config.DEFAULT_SETTINGS["YELLOW_DURATION"], alias="YELLOW_DURATION", gt=0)
    red_duration: float = Field(config.DEFAULT_SETTINGS["RED_DURATION"], alias="RED_DURATION", ge=0)
    min_green_time: float = Field(config.DEFAULT_SETTINGS["MIN_GREEN_TIME"], alias="MIN_GREEN_TIME", ge=0)
    car_spawn_rate: float = Field(config.DEFAULT_SETTINGS["CAR_SPAWN_RATE"], alias="CAR_SPAWN_RATE", ge=0)  # veh/min
    car_speed: float = Field(config.DEFAULT_SETTINGS["CAR_SPEED"], alias="CAR_SPEED", gt=0)  # m/s speed limit
    detector_distance: float = Field(config.DEFAULT_SETTINGS["DETECTOR_DISTANCE"], alias="DETECTOR_DISTANCE", ge=0)
    turn_rate: float = Field(config.DEFAULT_SETTINGS["TURN_RATE"], alias="TURN_RATE", ge=0, le=1)
    truck_fraction: float = Field(0.0, alias="TRUCK_FRACTION", ge=0, le=1)
    driver_drift: bool = Field(True, alias="DRIVER_DRIFT")
    traffic_demand: Optional[Dict[Approach, Annotated[float, Field(ge=0)]]] = None  # veh/h, overrides CAR_SPAWN_RATE
    turn_probabilities: Optional[TurnProbabilities] = None  # overrides TURN_RATE

    @property
    def green_time(self) -> float:
        return self.green_duration / 1000.0

    @property
    def yellow_time(self) -> float:
        return self.yellow_duration / 1000.0

    @property
    def red_time(self) -> float:
        return self.red_duration / 1000.0

    @property
    def min_green(self) -> float:
        return self.min_green_time / 1000.0

    def demand_for(self, approach: Approach) -> float:
        if self.traffic_demand is not None and approach in self.traffic_demand:
            return self.traffic_demand[approach]
        return self.car_spawn_rate * 60.0

    def effective_turn_probabilities(self) -> TurnProbabilities:
        if self.turn_probabilities is not None:
            return self.turn_probabilities
        return TurnProbabilities.from_turn_rate(self.turn_rate)

    def with_updates(self, **updates) -> "EngineSettings":
        aliases = {f.alias: name for name, f in EngineSettings.model_fields.items() if f.alias}
        data = self.model_dump()
        data.update({aliases.get(k, k): v for k, v in updates.items()})
        return EngineSettings.model_validate(data)

class DetectionZone(BaseModel):
    approach: Approach
    road_id: int
    u_start: float
    u_end: float
    lane_min: int = 0
    lane_max: int = config.N_LANES - 1
    cars_waiting: int = 0
    closest_vehicle_id: Optional[str] = None
    total_detected: int = 0
    wait_time: float = 0.0  # seconds, zone-local clock of the closest waiting vehicle
    detected: List[str] = []

    def contains(self, u: float, lane: int) -> bool:
        return self.u_start <= u <= self.u_end and self.lane_min <= lane <= self.lane_max

# API/Response Models

class Statistics(BaseModel):
    totalCarsPassed: int
    averageWaitTime: float
    currentCars: int

class RoadStats(BaseModel):
    vehicles: int
    averageSpeed: float
    density: float
    flow: float

class TrafficStatistics(BaseModel):
    totalVehicles: int
    averageSpeed: float
    roadStats: Dict[int, RoadStats]
    laneUtilization: Dict[str, int] = {}

class SensorReading(BaseModel):
    carsWaiting: int
    waitTime: float
    totalCarsDetected: int
    closestVehicleId: Optional[str] = None
    detectedCars: List[str] = []

class TrafficDemandUpdate(BaseModel):
    east: Optional[float] = Field(None, ge=0)
    west: Optional[float] = Field(None, ge=0)
    north: Optional[float] = Field(None, ge=0)
    south: Optional[float] = Field(None, ge=0)

    def as_mapping(self) -> Dict[Approach, float]:
        return {Approach(k): v for k, v in self.model_dump().items() if v is not None}

class TurnUpdate(BaseModel):
    straight: float
    right: float
    left: float

class ModeUpdate(BaseModel):
    mode: ControlMode

class SettingsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    green_duration: Optional[float] = Field(None, alias="GREEN_DURATION")
    yellow_duration: Optional[float] = Field(None, alias="YELLOW_DURATION")
    red_duration: Optional[float] = Field(None, alias="RED_DURATION")
    min_green_time: Optional[float] = Field(None, alias="MIN_GREEN_TIME")
    car_spawn_rate: Optional[float] = Field(None, alias="CAR_SPAWN_RATE")
    car_speed: Optional[float] = Field(None, alias="CAR_SPEED")
    detector_distance: Optional[float] = Field(None, alias="DETECTOR_DISTANCE")
    turn_rate: Optional[float] = Field(None, alias="TURN_RATE")

    def changes(self) -> Dict[str, float]:
        return {k: v for k, v in self.model_dump().items() if v is not None}
