from pydantic import BaseModel
from intersim.domain.models import ControlMode

class SimulationState(BaseModel):
    tick_id: int = 0
    time: float = 0.0
    mode: ControlMode = ControlMode.FIXED
    vehicles_spawned: int = 0
    vehicles_completed: int = 0
    last_stats_time: float = 0.0
