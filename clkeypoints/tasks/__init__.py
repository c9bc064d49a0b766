from .base import Task
from .gaussian_smooth import GaussianSmoother
from .hessian import Detections, HessianDetector, KeypointsHost

__all__ = ["Task", "GaussianSmoother", "HessianDetector", "Detections", "KeypointsHost"]
