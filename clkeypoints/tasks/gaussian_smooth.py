from __future__ import annotations

import numpy as np
import pyopencl as cl
from loguru import logger

from ..formats import RESPONSE_FORMAT
from ..reference import gaussian_weights
from ..resources import Image
from .base import Task


class GaussianSmoother(Task):
    program_name = "gaussian_smooth"

    def __init__(self, manager, registry, device_index: int = 0):
        super().__init__(manager, registry, device_index)
        self.smooth_rows = self.make_kernel("smooth_rows")
        self.smooth_columns = self.make_kernel("smooth_columns")

    def smooth(self, image: Image, sigma: float, half_width: int) -> Image:
        """Blur ``image`` with a Gaussian truncated to ``half_width`` pixels each side.

        Blocks until the result is complete so it can be consumed from any queue.
        """
        radius = int(half_width)
        if radius < 0:
            raise ValueError(f"kernel half-width must be non-negative, got {half_width}")
        weights = self.manager.create_buffer(
            np.float32,
            cl.mem_flags.READ_ONLY | cl.mem_flags.COPY_HOST_PTR,
            radius + 1,
            hostbuf=gaussian_weights(sigma, radius),
        )
        ni, nj = image.width, image.height
        tmp = self.manager.create_image(RESPONSE_FORMAT, cl.mem_flags.READ_WRITE, ni, nj)
        smoothed = self.manager.create_image(RESPONSE_FORMAT, cl.mem_flags.READ_WRITE, ni, nj)

        self.smooth_rows.set_args(image, tmp, weights, np.int32(radius))
        self.smooth_columns.set_args(tmp, smoothed, weights, np.int32(radius))

        logger.debug("Smoothing {}x{} image, sigma={} radius={}", ni, nj, sigma, radius)
        self.queue.launch(self.smooth_rows, (ni, nj))
        self.queue.barrier()
        self.queue.launch(self.smooth_columns, (ni, nj))
        self.queue.finish()
        return smoothed
