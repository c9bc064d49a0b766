from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pyopencl as cl
import pyopencl.cltypes
from loguru import logger

from ..config import SMOOTH_HALF_WIDTH, SMOOTH_SIGMA
from ..formats import KEYPOINT_MAP_FORMAT, RESPONSE_FORMAT
from ..resources import Buffer, Image
from .base import Task
from .gaussian_smooth import GaussianSmoother

_ZERO = np.zeros(1, dtype=np.int32)


@dataclass
class Detections:
    """Device results; coordinates and scores may hold trailing slots beyond ``count``."""

    keypoint_map: Image
    coordinates: Buffer
    scores: Buffer
    count: int
    subpixel: bool


@dataclass
class KeypointsHost:
    positions: np.ndarray
    scores: np.ndarray
    keypoint_map: np.ndarray


class HessianDetector(Task):
    """Determinant-of-Hessian keypoint detector.

    The keypoint buffers are sized from ``buffer_capacity``, an estimate kept
    across calls. When a pass finds at least that many keypoints the buffers
    are reallocated to the true count and the extrema pass is run again, so
    no detection is ever dropped.
    """

    program_name = "hessian"

    def __init__(self, manager, registry, device_index: int = 0):
        super().__init__(manager, registry, device_index)
        self.compute_response = self.make_kernel("compute_response")
        self.init_keypoint_map = self.make_kernel("init_keypoint_map")
        self.find_extrema_fixed = self.make_kernel("find_extrema_fixed")
        self.find_extrema_subpixel = self.make_kernel("find_extrema_subpixel")
        self.buffer_capacity = 0
        self._smoother: Optional[GaussianSmoother] = None

    def smooth_and_detect(self, image: Image, threshold: float, scale: float, subpixel: bool = False) -> Detections:
        if self._smoother is None:
            self._smoother = GaussianSmoother(self.manager, self.registry, self.device_index)
        smoothed = self._smoother.smooth(image, SMOOTH_SIGMA, SMOOTH_HALF_WIDTH)
        return self.detect(smoothed, threshold, scale, subpixel)

    def detect(self, image: Image, threshold: float, scale: float, subpixel: bool = False) -> Detections:
        ni, nj = image.width, image.height
        if ni < 2 or nj < 2:
            raise ValueError(f"image must be at least 2x2, got {ni}x{nj}")

        # a hard upper bound on the number of keypoints that can be detected
        max_keypoints = ni * nj // 4
        if self.buffer_capacity < 1:
            # an initial guess for the total number of keypoints
            self.buffer_capacity = max(max_keypoints // 100, 1)
        capacity = self.buffer_capacity

        rw = cl.mem_flags.READ_WRITE
        response = self.manager.create_image(RESPONSE_FORMAT, rw, ni, nj)
        keypoint_map = self.manager.create_image(KEYPOINT_MAP_FORMAT, rw, ni >> 1, nj >> 1)
        if subpixel:
            coord_type = cl.cltypes.float2
            extrema = self.find_extrema_subpixel
        else:
            coord_type = cl.cltypes.int2
            extrema = self.find_extrema_fixed
        coords = self.manager.create_buffer(coord_type, rw, capacity)
        scores = self.manager.create_buffer(np.float32, rw, capacity)
        count = self.manager.create_buffer(np.int32, rw, 1)
        self.queue.write(count, _ZERO)

        self.compute_response.set_args(image, response, np.float32(scale * scale))
        self.init_keypoint_map.set_args(keypoint_map)
        extrema.set_args(
            response,
            keypoint_map,
            coords,
            scores,
            np.uint32(capacity),
            count,
            np.float32(threshold),
        )

        full_range = (ni, nj)
        half_range = (ni >> 1, nj >> 1)
        self.queue.launch(self.compute_response, full_range)
        self.queue.launch(self.init_keypoint_map, half_range)
        self.queue.barrier()
        self.queue.launch(extrema, full_range)
        self.queue.barrier()
        detected = self.num_keypoints(count)

        # the keypoint buffer was too small: allocate the true count and run again
        if detected >= capacity:
            logger.debug(
                "Keypoint buffer overflow: {} detected, capacity {}; rerunning extrema",
                detected,
                capacity,
            )
            self.queue.write(count, _ZERO)
            # the blocking read above drained the queue, nothing uses these any more
            coords.release()
            scores.release()
            coords = self.manager.create_buffer(coord_type, rw, detected)
            scores = self.manager.create_buffer(np.float32, rw, detected)
            extrema.set_arg(2, coords)
            extrema.set_arg(3, scores)
            extrema.set_arg(4, np.uint32(detected))
            self.queue.launch(self.init_keypoint_map, half_range)
            self.queue.barrier()
            self.queue.launch(extrema, full_range)
            self.queue.finish()

        # 1.5x headroom for the next frame
        self.buffer_capacity = min(3 * detected // 2, max_keypoints)
        logger.debug("Detected {} keypoints, next capacity {}", detected, self.buffer_capacity)
        return Detections(keypoint_map, coords, scores, detected, subpixel)

    def num_keypoints(self, count: Buffer) -> int:
        return int(self.queue.read(count)[0])

    def read_keypoints(self, detections: Detections) -> KeypointsHost:
        n = detections.count
        base = np.float32 if detections.subpixel else np.int32
        coords = self.queue.read(detections.coordinates)[:n]
        return KeypointsHost(
            positions=coords.view(base).reshape(-1, 2).copy(),
            scores=self.queue.read(detections.scores)[:n].copy(),
            keypoint_map=self.queue.read_image(detections.keypoint_map),
        )
