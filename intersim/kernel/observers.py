from intersim.domain.models import Statistics, Vehicle


class SimulationObserver:
    """Event sink registered with SimulationKernel.add_observer. Override what you need."""

    def on_vehicle_completed(self, vehicle: Vehicle):
        pass

    def on_statistics_tick(self, stats: Statistics):
        pass
