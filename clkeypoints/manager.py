from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pyopencl as cl
from loguru import logger

from .errors import (
    BuildFailure,
    ClKeypointsError,
    DeviceError,
    DeviceQueryFailure,
    PlatformUnavailable,
    describe_error,
    device_errors,
)
from .formats import PixelFormatTable
from .image_io import as_host_image
from .resources import Buffer, CommandQueue, Image, Program

MIB = 1 << 20
DOUBLE_EXTENSION = "cl_khr_fp64"


@dataclass(frozen=True)
class DeviceCapabilities:
    name: str
    global_mem_size: int
    max_mem_alloc_size: int
    image2d_max: Tuple[int, int]
    has_double: bool


def has_extension(extensions: str, token: str) -> bool:
    return token in extensions.split()


class ResourceManager:
    """Owns the OpenCL context and allocates everything against it.

    One manager is created by the application and passed to the registry and
    tasks. ``initialize()`` selects the first platform and requests a GPU
    context from it. If that fails the manager stays usable as an object but
    every operation needing the context raises ``PlatformUnavailable``.
    """

    def __init__(self, pixel_formats: Optional[PixelFormatTable] = None):
        self.pixel_formats = pixel_formats or PixelFormatTable()
        self.platform = None
        self.context = None
        self._devices: List = []

    @property
    def available(self) -> bool:
        return self.context is not None and bool(self._devices)

    @property
    def devices(self) -> Tuple:
        return tuple(self._devices)

    def initialize(self) -> ResourceManager:
        try:
            with device_errors("get platforms"):
                platforms = cl.get_platforms()
            if not platforms:
                raise PlatformUnavailable("no OpenCL platform found")
            platform = platforms[0]
            with device_errors("create GPU context"):
                context = cl.Context(
                    dev_type=cl.device_type.GPU,
                    properties=[(cl.context_properties.PLATFORM, platform)],
                )
                devices = list(context.devices)
            if not devices:
                raise PlatformUnavailable(f"no GPU device on platform {platform.name}")
        except DeviceError as err:
            logger.error("Error: {}", err)
            raise PlatformUnavailable(str(err)) from err
        except PlatformUnavailable as err:
            logger.error("Error: {}", err)
            raise

        self.platform = platform
        self.context = context
        self._devices = devices
        logger.info(
            "Using OpenCL platform {} with {} GPU device(s): {}",
            platform.name,
            len(devices),
            ", ".join(d.name for d in devices),
        )
        return self

    def _require_context(self):
        if self.context is None:
            raise PlatformUnavailable("resource manager has no OpenCL context")
        return self.context

    def device(self, device_index: int = 0):
        self._require_context()
        try:
            return self._devices[device_index]
        except IndexError:
            raise IndexError(
                f"device index {device_index} out of range ({len(self._devices)} devices)"
            ) from None

    def build_program(self, source: str, device_index: int = 0, name: Optional[str] = None) -> Program:
        context = self._require_context()
        device = self.device(device_index)
        with device_errors("create program"):
            program = cl.Program(context, source)
        try:
            program.build(devices=self._devices)
        except cl.Error as err:
            if getattr(err, "code", None) == cl.status_code.BUILD_PROGRAM_FAILURE:
                build_log = self._build_log(program, device, err)
                logger.error("Build of program {} failed on device {}:\n{}", name or "<source>", device.name, build_log)
                raise BuildFailure(device.name, build_log) from err
            raise DeviceError.from_cl_error("build program", err) from err
        logger.debug("Built program {} for {} device(s)", name or "<source>", len(self._devices))
        return Program(program, name)

    @staticmethod
    def _build_log(program, device, err) -> str:
        try:
            return program.get_build_info(device, cl.program_build_info.LOG)
        except cl.Error:
            # no per-device log available, the error text carries the compiler output
            return str(err)

    def create_queue(self, device_index: int = 0) -> CommandQueue:
        context = self._require_context()
        device = self.device(device_index)
        with device_errors("create command queue"):
            return CommandQueue(cl.CommandQueue(context, device), device)

    def create_image(self, image_format: cl.ImageFormat, flags: int, width: int, height: int) -> Image:
        context = self._require_context()
        with device_errors(f"create {width}x{height} image"):
            mem = cl.Image(context, flags, image_format, shape=(int(width), int(height)))
        return Image(mem, image_format, int(width), int(height), flags)

    def create_image_from_host(self, pixels: np.ndarray) -> Optional[Image]:
        """Stage a single-plane host image on the device.

        Returns ``None`` when the pixel format has no device equivalent.
        """
        pixels = as_host_image(pixels)
        image_format = self.pixel_formats.lookup(pixels.dtype)
        if image_format is None:
            logger.warning("Unsupported host pixel format {}", pixels.dtype)
            return None
        context = self._require_context()
        height, width = pixels.shape
        flags = cl.mem_flags.READ_ONLY | cl.mem_flags.COPY_HOST_PTR
        with device_errors(f"create {width}x{height} image from host"):
            mem = cl.Image(context, flags, image_format, shape=(width, height), hostbuf=pixels)
        return Image(mem, image_format, width, height, flags)

    def create_buffer(self, dtype, flags: int, length: int, hostbuf: Optional[np.ndarray] = None) -> Buffer:
        context = self._require_context()
        dtype = np.dtype(dtype)
        length = int(length)
        nbytes = length * dtype.itemsize
        if hostbuf is not None:
            hostbuf = np.ascontiguousarray(hostbuf, dtype=dtype)
            if hostbuf.nbytes != nbytes:
                raise ValueError(f"host data has {hostbuf.nbytes} bytes, expected {nbytes}")
            if not flags & (cl.mem_flags.COPY_HOST_PTR | cl.mem_flags.USE_HOST_PTR):
                flags |= cl.mem_flags.COPY_HOST_PTR
        with device_errors(f"create buffer of {length} x {dtype}"):
            mem = cl.Buffer(context, flags, size=nbytes, hostbuf=hostbuf)
        return Buffer(mem, dtype, length, flags)

    def query_device_capabilities(self, device_index: int = 0) -> DeviceCapabilities:
        try:
            device = self.device(device_index)
            return DeviceCapabilities(
                name=device.name,
                global_mem_size=int(device.global_mem_size),
                max_mem_alloc_size=int(device.max_mem_alloc_size),
                image2d_max=(int(device.image2d_max_width), int(device.image2d_max_height)),
                has_double=has_extension(device.extensions, DOUBLE_EXTENSION),
            )
        except cl.Error as err:
            raise DeviceQueryFailure(
                f"device query failed: {describe_error(getattr(err, 'code', None))} - {err}"
            ) from err
        except (PlatformUnavailable, IndexError) as err:
            raise DeviceQueryFailure(f"device query failed: {err}") from err

    def report_device_capabilities(self, device_index: int = 0) -> Optional[DeviceCapabilities]:
        try:
            caps = self.query_device_capabilities(device_index)
        except (ClKeypointsError, cl.Error) as err:
            logger.error("Error: {}", err)
            return None
        width, height = caps.image2d_max
        logger.info(
            "***********Device Information***********\n"
            "Device: {}\n"
            "Device global memory: {} mb\n"
            "Supports double extension? {}\n"
            "Max image dimensions: {}x{}\n"
            "Max memory allocation: {} mb",
            caps.name,
            caps.global_mem_size // MIB,
            "yes" if caps.has_double else "no",
            width,
            height,
            caps.max_mem_alloc_size // MIB,
        )
        return caps
