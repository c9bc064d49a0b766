"""Handles over OpenCL objects.

Buffers and images are reference counted by Python; ``release()`` frees the
device allocation early. A kernel remembers the handles bound to it and
refuses to launch once any of them has been released.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import pyopencl as cl

from .errors import StaleHandleError, device_errors
from .formats import host_dtype


@dataclass(eq=False)
class Buffer:
    mem: Any
    dtype: np.dtype
    length: int
    flags: int
    released: bool = field(default=False, init=False)

    @property
    def nbytes(self) -> int:
        # the device only knows the byte size
        return int(self.mem.size)

    def release(self) -> None:
        if self.released:
            return
        self.mem.release()
        self.released = True


@dataclass(eq=False)
class Image:
    mem: Any
    image_format: cl.ImageFormat
    width: int
    height: int
    flags: int
    released: bool = field(default=False, init=False)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width

    def release(self) -> None:
        if self.released:
            return
        self.mem.release()
        self.released = True


def _unwrap(value):
    if isinstance(value, (Buffer, Image)):
        if value.released:
            raise StaleHandleError(f"cannot bind released {type(value).__name__}")
        return value.mem
    return value


class Kernel:
    def __init__(self, handle, name: str):
        self.handle = handle
        self.name = name
        self.args: Dict[int, Any] = {}

    def set_arg(self, index: int, value) -> None:
        with device_errors(f"set argument {index} of kernel {self.name}"):
            self.handle.set_arg(index, _unwrap(value))
        self.args[index] = value

    def set_args(self, *values) -> None:
        for index, value in enumerate(values):
            self.set_arg(index, value)

    def check_live(self) -> None:
        for index, value in self.args.items():
            if isinstance(value, (Buffer, Image)) and value.released:
                raise StaleHandleError(
                    f"kernel {self.name} argument {index} refers to a released "
                    f"{type(value).__name__}"
                )


class Program:
    def __init__(self, handle, name: Optional[str] = None):
        self.handle = handle
        self.name = name

    def kernel(self, name: str) -> Kernel:
        with device_errors(f"create kernel {name}"):
            return Kernel(cl.Kernel(self.handle, name), name)


class CommandQueue:
    """In-order command queue bound to one device."""

    def __init__(self, handle, device):
        self.handle = handle
        self.device = device

    def launch(self, kernel: Kernel, global_size: Sequence[int]) -> None:
        kernel.check_live()
        with device_errors(f"enqueue kernel {kernel.name}"):
            cl.enqueue_nd_range_kernel(self.handle, kernel.handle, tuple(global_size), None)

    def barrier(self) -> None:
        with device_errors("enqueue barrier"):
            cl.enqueue_barrier(self.handle)

    def write(self, buffer: Buffer, data) -> None:
        host = np.ascontiguousarray(data, dtype=buffer.dtype)
        if host.nbytes != buffer.nbytes:
            raise ValueError(f"host data has {host.nbytes} bytes, buffer has {buffer.nbytes}")
        with device_errors("write buffer"):
            cl.enqueue_copy(self.handle, _unwrap(buffer), host, is_blocking=True)

    def read(self, buffer: Buffer) -> np.ndarray:
        host = np.empty(buffer.length, dtype=buffer.dtype)
        with device_errors("read buffer"):
            cl.enqueue_copy(self.handle, host, _unwrap(buffer), is_blocking=True)
        return host

    def read_image(self, image: Image) -> np.ndarray:
        host = np.empty(image.shape, dtype=host_dtype(image.image_format))
        with device_errors("read image"):
            cl.enqueue_copy(
                self.handle,
                host,
                _unwrap(image),
                origin=(0, 0),
                region=(image.width, image.height),
                is_blocking=True,
            )
        return host

    def finish(self) -> None:
        with device_errors("finish queue"):
            self.handle.finish()
