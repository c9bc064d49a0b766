from __future__ import annotations

from contextlib import contextmanager
from enum import Enum, auto
from typing import Iterator

import pyopencl as cl


class ErrorKind(Enum):
    SUCCESS = auto()
    DEVICE_NOT_FOUND = auto()
    DEVICE_NOT_AVAILABLE = auto()
    COMPILER_NOT_AVAILABLE = auto()
    MEM_OBJECT_ALLOCATION_FAILURE = auto()
    OUT_OF_RESOURCES = auto()
    OUT_OF_HOST_MEMORY = auto()
    PROFILING_INFO_NOT_AVAILABLE = auto()
    MEM_COPY_OVERLAP = auto()
    IMAGE_FORMAT_MISMATCH = auto()
    IMAGE_FORMAT_NOT_SUPPORTED = auto()
    BUILD_PROGRAM_FAILURE = auto()
    MAP_FAILURE = auto()
    INVALID_VALUE = auto()
    INVALID_DEVICE_TYPE = auto()
    INVALID_PLATFORM = auto()
    INVALID_DEVICE = auto()
    INVALID_CONTEXT = auto()
    INVALID_QUEUE_PROPERTIES = auto()
    INVALID_COMMAND_QUEUE = auto()
    INVALID_HOST_PTR = auto()
    INVALID_MEM_OBJECT = auto()
    INVALID_IMAGE_FORMAT_DESCRIPTOR = auto()
    INVALID_IMAGE_SIZE = auto()
    INVALID_SAMPLER = auto()
    INVALID_BINARY = auto()
    INVALID_BUILD_OPTIONS = auto()
    INVALID_PROGRAM = auto()
    INVALID_PROGRAM_EXECUTABLE = auto()
    INVALID_KERNEL_NAME = auto()
    INVALID_KERNEL_DEFINITION = auto()
    INVALID_KERNEL = auto()
    INVALID_ARG_INDEX = auto()
    INVALID_ARG_VALUE = auto()
    INVALID_ARG_SIZE = auto()
    INVALID_KERNEL_ARGS = auto()
    INVALID_WORK_DIMENSION = auto()
    INVALID_WORK_GROUP_SIZE = auto()
    INVALID_WORK_ITEM_SIZE = auto()
    INVALID_GLOBAL_OFFSET = auto()
    INVALID_EVENT_WAIT_LIST = auto()
    INVALID_EVENT = auto()
    INVALID_OPERATION = auto()
    INVALID_GL_OBJECT = auto()
    INVALID_BUFFER_SIZE = auto()
    INVALID_MIP_LEVEL = auto()
    PLATFORM_NOT_FOUND = auto()
    UNKNOWN = auto()


# OpenCL status codes (cl.h, cl_icd.h)
ERROR_CODES: dict[int, ErrorKind] = {
    0: ErrorKind.SUCCESS,
    -1: ErrorKind.DEVICE_NOT_FOUND,
    -2: ErrorKind.DEVICE_NOT_AVAILABLE,
    -3: ErrorKind.COMPILER_NOT_AVAILABLE,
    -4: ErrorKind.MEM_OBJECT_ALLOCATION_FAILURE,
    -5: ErrorKind.OUT_OF_RESOURCES,
    -6: ErrorKind.OUT_OF_HOST_MEMORY,
    -7: ErrorKind.PROFILING_INFO_NOT_AVAILABLE,
    -8: ErrorKind.MEM_COPY_OVERLAP,
    -9: ErrorKind.IMAGE_FORMAT_MISMATCH,
    -10: ErrorKind.IMAGE_FORMAT_NOT_SUPPORTED,
    -11: ErrorKind.BUILD_PROGRAM_FAILURE,
    -12: ErrorKind.MAP_FAILURE,
    -30: ErrorKind.INVALID_VALUE,
    -31: ErrorKind.INVALID_DEVICE_TYPE,
    -32: ErrorKind.INVALID_PLATFORM,
    -33: ErrorKind.INVALID_DEVICE,
    -34: ErrorKind.INVALID_CONTEXT,
    -35: ErrorKind.INVALID_QUEUE_PROPERTIES,
    -36: ErrorKind.INVALID_COMMAND_QUEUE,
    -37: ErrorKind.INVALID_HOST_PTR,
    -38: ErrorKind.INVALID_MEM_OBJECT,
    -39: ErrorKind.INVALID_IMAGE_FORMAT_DESCRIPTOR,
    -40: ErrorKind.INVALID_IMAGE_SIZE,
    -41: ErrorKind.INVALID_SAMPLER,
    -42: ErrorKind.INVALID_BINARY,
    -43: ErrorKind.INVALID_BUILD_OPTIONS,
    -44: ErrorKind.INVALID_PROGRAM,
    -45: ErrorKind.INVALID_PROGRAM_EXECUTABLE,
    -46: ErrorKind.INVALID_KERNEL_NAME,
    -47: ErrorKind.INVALID_KERNEL_DEFINITION,
    -48: ErrorKind.INVALID_KERNEL,
    -49: ErrorKind.INVALID_ARG_INDEX,
    -50: ErrorKind.INVALID_ARG_VALUE,
    -51: ErrorKind.INVALID_ARG_SIZE,
    -52: ErrorKind.INVALID_KERNEL_ARGS,
    -53: ErrorKind.INVALID_WORK_DIMENSION,
    -54: ErrorKind.INVALID_WORK_GROUP_SIZE,
    -55: ErrorKind.INVALID_WORK_ITEM_SIZE,
    -56: ErrorKind.INVALID_GLOBAL_OFFSET,
    -57: ErrorKind.INVALID_EVENT_WAIT_LIST,
    -58: ErrorKind.INVALID_EVENT,
    -59: ErrorKind.INVALID_OPERATION,
    -60: ErrorKind.INVALID_GL_OBJECT,
    -61: ErrorKind.INVALID_BUFFER_SIZE,
    -62: ErrorKind.INVALID_MIP_LEVEL,
    -1001: ErrorKind.PLATFORM_NOT_FOUND,
}

DESCRIPTIONS: dict[ErrorKind, str] = {
    ErrorKind.SUCCESS: "Success",
    ErrorKind.DEVICE_NOT_FOUND: "Device not found",
    ErrorKind.DEVICE_NOT_AVAILABLE: "Device not available",
    ErrorKind.COMPILER_NOT_AVAILABLE: "Compiler not available",
    ErrorKind.MEM_OBJECT_ALLOCATION_FAILURE: "Memory object allocation failure",
    ErrorKind.OUT_OF_RESOURCES: "Out of resources",
    ErrorKind.OUT_OF_HOST_MEMORY: "Out of host memory",
    ErrorKind.PROFILING_INFO_NOT_AVAILABLE: "Profiling information not available",
    ErrorKind.MEM_COPY_OVERLAP: "Memory copy overlap",
    ErrorKind.IMAGE_FORMAT_MISMATCH: "Image format mismatch",
    ErrorKind.IMAGE_FORMAT_NOT_SUPPORTED: "Image format not supported",
    ErrorKind.BUILD_PROGRAM_FAILURE: "Program build failure",
    ErrorKind.MAP_FAILURE: "Map failure",
    ErrorKind.INVALID_VALUE: "Invalid value",
    ErrorKind.INVALID_DEVICE_TYPE: "Invalid device type",
    ErrorKind.INVALID_PLATFORM: "Invalid platform",
    ErrorKind.INVALID_DEVICE: "Invalid device",
    ErrorKind.INVALID_CONTEXT: "Invalid context",
    ErrorKind.INVALID_QUEUE_PROPERTIES: "Invalid queue properties",
    ErrorKind.INVALID_COMMAND_QUEUE: "Invalid command queue",
    ErrorKind.INVALID_HOST_PTR: "Invalid host pointer",
    ErrorKind.INVALID_MEM_OBJECT: "Invalid memory object",
    ErrorKind.INVALID_IMAGE_FORMAT_DESCRIPTOR: "Invalid image format descriptor",
    ErrorKind.INVALID_IMAGE_SIZE: "Invalid image size",
    ErrorKind.INVALID_SAMPLER: "Invalid sampler",
    ErrorKind.INVALID_BINARY: "Invalid binary",
    ErrorKind.INVALID_BUILD_OPTIONS: "Invalid build options",
    ErrorKind.INVALID_PROGRAM: "Invalid program",
    ErrorKind.INVALID_PROGRAM_EXECUTABLE: "Invalid program executable",
    ErrorKind.INVALID_KERNEL_NAME: "Invalid kernel name",
    ErrorKind.INVALID_KERNEL_DEFINITION: "Invalid kernel definition",
    ErrorKind.INVALID_KERNEL: "Invalid kernel",
    ErrorKind.INVALID_ARG_INDEX: "Invalid argument index",
    ErrorKind.INVALID_ARG_VALUE: "Invalid argument value",
    ErrorKind.INVALID_ARG_SIZE: "Invalid argument size",
    ErrorKind.INVALID_KERNEL_ARGS: "Invalid kernel arguments",
    ErrorKind.INVALID_WORK_DIMENSION: "Invalid work dimension",
    ErrorKind.INVALID_WORK_GROUP_SIZE: "Invalid work group size",
    ErrorKind.INVALID_WORK_ITEM_SIZE: "Invalid work item size",
    ErrorKind.INVALID_GLOBAL_OFFSET: "Invalid global offset",
    ErrorKind.INVALID_EVENT_WAIT_LIST: "Invalid event wait list",
    ErrorKind.INVALID_EVENT: "Invalid event",
    ErrorKind.INVALID_OPERATION: "Invalid operation",
    ErrorKind.INVALID_GL_OBJECT: "Invalid OpenGL object",
    ErrorKind.INVALID_BUFFER_SIZE: "Invalid buffer size",
    ErrorKind.INVALID_MIP_LEVEL: "Invalid mip-map level",
    ErrorKind.PLATFORM_NOT_FOUND: "Platform not found",
    ErrorKind.UNKNOWN: "Unknown",
}


def error_kind(code: int | None) -> ErrorKind:
    if code is None:
        return ErrorKind.UNKNOWN
    return ERROR_CODES.get(int(code), ErrorKind.UNKNOWN)


def describe_error(code: int | None) -> str:
    """Return the human-readable string for an OpenCL status code."""
    return DESCRIPTIONS[error_kind(code)]


class ClKeypointsError(Exception):
    """Base class of every error raised by clkeypoints."""


class PlatformUnavailable(ClKeypointsError):
    pass


class BuildFailure(ClKeypointsError):
    def __init__(self, device_name: str, build_log: str):
        self.device_name = device_name
        self.build_log = build_log
        super().__init__(f"Program build failed on device '{device_name}':\n{build_log}")


class UnsupportedPixelFormat(ClKeypointsError):
    def __init__(self, tag):
        self.tag = tag
        super().__init__(f"Unsupported host pixel format: {tag}")


class DeviceQueryFailure(ClKeypointsError):
    pass


class StaleHandleError(ClKeypointsError):
    pass


class DeviceError(ClKeypointsError):
    def __init__(self, action: str, code: int | None, detail: str = ""):
        self.action = action
        self.code = code
        self.kind = error_kind(code)
        message = f"{action} failed: {DESCRIPTIONS[self.kind]} ({code})"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)

    @classmethod
    def from_cl_error(cls, action: str, err: cl.Error) -> DeviceError:
        return cls(action, getattr(err, "code", None), str(err))


@contextmanager
def device_errors(action: str) -> Iterator[None]:
    """Translate pyopencl errors raised inside the block into DeviceError."""
    try:
        yield
    except cl.Error as err:
        raise DeviceError.from_cl_error(action, err) from err
