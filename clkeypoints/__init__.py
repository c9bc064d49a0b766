"""OpenCL resource management and adaptive Hessian keypoint detection."""

from .errors import (
    BuildFailure,
    ClKeypointsError,
    DeviceError,
    DeviceQueryFailure,
    ErrorKind,
    PlatformUnavailable,
    StaleHandleError,
    UnsupportedPixelFormat,
    describe_error,
)
from .formats import PixelFormatTable
from .manager import DeviceCapabilities, ResourceManager
from .registry import ProgramRegistry
from .resources import Buffer, CommandQueue, Image, Kernel, Program
from .tasks import Detections, GaussianSmoother, HessianDetector, KeypointsHost

__version__ = "0.1.0"

__all__ = [
    "BuildFailure",
    "Buffer",
    "ClKeypointsError",
    "CommandQueue",
    "Detections",
    "DeviceCapabilities",
    "DeviceError",
    "DeviceQueryFailure",
    "ErrorKind",
    "GaussianSmoother",
    "HessianDetector",
    "Image",
    "Kernel",
    "KeypointsHost",
    "PixelFormatTable",
    "PlatformUnavailable",
    "Program",
    "ProgramRegistry",
    "ResourceManager",
    "StaleHandleError",
    "UnsupportedPixelFormat",
    "describe_error",
]
