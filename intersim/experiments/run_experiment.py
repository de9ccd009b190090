import json
import logging
import time
from typing import Any, Dict

from intersim.domain.models import ControlMode, EngineSettings
from intersim.kernel.simulation_kernel import SimulationKernel

logger = logging.getLogger(__name__)

def load_config(config_path: str) -> Dict[str, Any]:
    with open(config_path) as f:
        return json.load(f)

def run_headless_experiment(config_path: str, output_path: str):
    experiment = load_config(config_path)
    seed = experiment.get("seed", 42)
    duration_ticks = experiment.get("ticks", 1000)
    mode = ControlMode(experiment.get("mode", ControlMode.FIXED.value))

    kernel = SimulationKernel(EngineSettings.model_validate(experiment.get("settings", {})))
    kernel.initialize(seed=seed)
    kernel.signals.set_mode(mode)
    kernel.state.mode = mode

    results = []

    start_time = time.time()
    for i in range(duration_ticks):
        kernel.run_tick()
        stats = kernel.get_statistics()
        results.append({
            "tick": i,
            "time": round(kernel.state.time, 3),
            "vehicle_count": stats.currentCars,
            "cars_passed": stats.totalCarsPassed,
            "lights": {a.value: c.value for a, c in kernel.get_light_states().items()},
        })

    end_time = time.time()
    logger.info(f"Experiment finished in {end_time - start_time:.4f}s")

    with open(output_path, 'w') as f:
        json.dump({"ticks": results, "export": json.loads(kernel.export_traffic_data())}, f, indent=2)

if __name__ == "__main__":
    import sys
    logging.basicConfig(level=logging.INFO)
    if len(sys.argv) > 2:
        run_headless_experiment(sys.argv[1], sys.argv[2])
    else:
        print("Usage: python -m intersim.experiments.run_experiment <config.json> <output.json>")
