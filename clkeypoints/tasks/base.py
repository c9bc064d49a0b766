from __future__ import annotations

from ..registry import ProgramRegistry, load_kernel_source
from ..resources import Kernel


class Task:
    """A device task: one shared program and a command queue of its own."""

    program_name: str = ""

    def __init__(self, manager, registry: ProgramRegistry, device_index: int = 0):
        self.manager = manager
        self.registry = registry
        self.device_index = device_index
        self.program = registry.register_program(
            self.program_name, load_kernel_source(self.program_name)
        )
        self.queue = manager.create_queue(device_index)

    def make_kernel(self, name: str) -> Kernel:
        return self.program.kernel(name)
