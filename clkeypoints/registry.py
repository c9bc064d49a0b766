from __future__ import annotations

from importlib import resources
from typing import Dict, List

from loguru import logger

from .resources import Program


def load_kernel_source(name: str) -> str:
    """Read the packaged OpenCL source ``kernels/<name>.cl``."""
    return (resources.files("clkeypoints") / "kernels" / f"{name}.cl").read_text(encoding="utf-8")


class ProgramRegistry:
    """Builds each named program once and shares it with every task."""

    def __init__(self, manager, device_index: int = 0):
        self.manager = manager
        self.device_index = device_index
        self._programs: Dict[str, Program] = {}

    def register_program(self, name: str, source: str) -> Program:
        program = self._programs.get(name)
        if program is not None:
            return program
        logger.debug("Building program {}", name)
        program = self.manager.build_program(source, self.device_index, name=name)
        self._programs[name] = program
        return program

    def program(self, name: str) -> Program:
        return self._programs[name]

    def names(self) -> List[str]:
        return list(self._programs)

    def __contains__(self, name: str) -> bool:
        return name in self._programs
