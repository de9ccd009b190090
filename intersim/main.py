import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from intersim.domain.models import (
    ModeUpdate, SensorReading, SettingsUpdate, Statistics, TrafficDemandUpdate,
    TrafficStatistics, TurnUpdate
)
from intersim.kernel.clock import SimulationClock
from intersim.kernel.simulation_kernel import SimulationKernel

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

# Initialize Kernel
kernel = SimulationKernel()
clock = SimulationClock(kernel)

# Background task for simulation loop
@asynccontextmanager
async def lifespan(app: FastAPI):
    kernel.initialize()
    clock.start()
    loop_task = asyncio.create_task(run_simulation())
    yield
    loop_task.cancel()

app = FastAPI(lifespan=lifespan)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

async def run_simulation():
    """Drives the clock at ~30 frames per second"""
    target_fps = 30
    frame = 1.0 / target_fps

    while True:
        start_time = time.perf_counter()
        clock.frame_at(start_time)
        elapsed = time.perf_counter() - start_time
        await asyncio.sleep(max(0.0, frame - elapsed))

@app.get("/api/lights", response_model=Dict[str, str])
async def get_lights():
    """Returns the current colour per approach"""
    return {a.value: c.value for a, c in kernel.get_light_states().items()}

@app.get("/api/statistics", response_model=Statistics)
async def get_statistics():
    return kernel.get_statistics()

@app.get("/api/traffic", response_model=TrafficStatistics)
async def get_traffic():
    """Per-road vehicle counts, speeds, densities and flows"""
    return kernel.get_traffic_statistics()

@app.get("/api/sensors", response_model=Dict[str, SensorReading])
async def get_sensors():
    return kernel.get_sensor_data()

@app.get("/api/export")
async def export_traffic_data():
    """Returns a full snapshot for offline inspection"""
    return json.loads(kernel.export_traffic_data(clock.performance_stats()))

@app.get("/api/debug")
async def get_debug_info():
    info = kernel.get_debug_info()
    info["clock"] = clock.performance_stats()
    return info

@app.post("/api/control/{action}")
async def control(action: str):
    """Starts, stops or resets the simulation"""
    if action == "start":
        clock.start()
    elif action == "stop":
        clock.stop()
    elif action == "reset":
        clock.reset()
    else:
        raise HTTPException(status_code=404, detail=f"Unknown action '{action}'")
    return {"status": action, "running": clock.running}

@app.post("/api/settings")
async def update_settings(update: SettingsUpdate):
    """Queues a settings change; applied at the next tick"""
    changes = update.changes()
    if not kernel.update_settings(**changes):
        raise HTTPException(status_code=422, detail="Invalid settings")
    return {"status": "queued", "settings": update.model_dump(by_alias=True, exclude_none=True)}

@app.post("/api/demand")
async def set_traffic_demand(demand: TrafficDemandUpdate):
    mapping = demand.as_mapping()
    kernel.set_traffic_demand(mapping)
    return {"status": "queued", "demand": {a.value: v for a, v in mapping.items()}}

@app.post("/api/turns")
async def set_turn_probabilities(turns: TurnUpdate):
    if not kernel.set_turn_probabilities(turns.straight, turns.right, turns.left):
        raise HTTPException(status_code=422, detail="Turn probabilities must sum to 1.0")
    return {"status": "queued", "turns": turns.model_dump()}

@app.post("/api/mode")
async def set_mode(update: ModeUpdate):
    kernel.set_mode(update.mode)
    return {"status": "queued", "mode": update.mode.value}

@app.get("/")
def read_root():
    return {"status": "Intersection simulator running", "mode": kernel.signals.mode.value}
