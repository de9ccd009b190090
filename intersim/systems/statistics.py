from intersim.domain.models import Statistics, Vehicle
from intersim.kernel.observers import SimulationObserver


class StatisticsCollector(SimulationObserver):
    """Completion counts and average wait time of vehicles that left the network."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.total_cars_passed = 0
        self.total_wait_time = 0.0

    def on_vehicle_completed(self, vehicle: Vehicle):
        self.total_cars_passed += 1
        self.total_wait_time += vehicle.wait_time

    def statistics(self, current_cars: int) -> Statistics:
        average = self.total_wait_time / self.total_cars_passed if self.total_cars_passed else 0.0
        return Statistics(
            totalCarsPassed=self.total_cars_passed,
            averageWaitTime=average,
            currentCars=current_cars,
        )
