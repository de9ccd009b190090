from typing import Any, Dict, Optional


class SnapshotBuilder:
    def build(self, kernel: Any, performance: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        network = kernel.network
        return {
            "tick": kernel.state.tick_id,
            "time": kernel.state.time,
            "mode": kernel.signals.mode.value,
            "statistics": kernel.get_statistics().model_dump(),
            "trafficStatistics": kernel.get_traffic_statistics().model_dump(),
            "flowAnalysis": kernel.network.analyze_traffic_flow(),
            "sensors": {k: v.model_dump() for k, v in kernel.get_sensor_data().items()},
            "lights": {a.value: c.value for a, c in kernel.get_light_states().items()},
            "performance": performance or {},
            "configuration": kernel.settings.model_dump(mode="json", by_alias=True),
            "vehicles": [
                {
                    "id": v.id,
                    "kind": v.kind.value,
                    "road": v.road_id,
                    "u": v.u,
                    "lane": v.lane,
                    "v": v.v,
                    "speed": v.speed,
                    "route": list(v.route),
                    "heading": network.segment(v.road_id).vehicle_heading(v),
                }
                for v in network.all_vehicles()
            ],
        }
