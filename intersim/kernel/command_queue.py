from collections import deque
from typing import Any, Deque, List
from intersim.kernel.commands import Command

class CommandQueue:
    """Commands wait here until the kernel drains them at the start of the next tick."""

    def __init__(self):
        self.queue: Deque[Command] = deque()

    def add(self, command: Command):
        self.queue.append(command)

    def pop_all(self) -> Deque[Command]:
        commands = self.queue
        self.queue = deque()
        return commands

    def drain(self, kernel: Any) -> List[Any]:
        results = []
        commands = self.pop_all()
        while commands:
            results.append(commands.popleft().execute(kernel))
        return results

    def __len__(self) -> int:
        return len(self.queue)

    def clear(self):
        self.queue.clear()
