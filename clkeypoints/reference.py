"""Host implementation of the OpenCL kernels.

Each function mirrors the kernel of the same name in ``kernels/*.cl``:
clamp-to-edge reads, the same arithmetic in float32, and extrema recorded
in row-major order through a counter that keeps counting past capacity.
"""

from __future__ import annotations

import math

import numba
import numpy as np

from .config import SMOOTH_HALF_WIDTH, SMOOTH_SIGMA


def gaussian_weights(sigma: float, radius: int) -> np.ndarray:
    """Normalized half kernel ``w[0..radius]`` of a symmetric Gaussian."""
    g = np.empty(radius + 1, dtype=np.float32)
    g[0] = np.float32(1.0)

    if sigma > 0.0:
        sig32 = np.float32(sigma)
        sum32 = np.float32(1.0)
        for i in range(1, radius + 1):
            t32 = np.float32(-0.5) * np.float32(i) * np.float32(i) / sig32 / sig32
            val32 = np.float32(math.exp(float(t32)))
            g[i] = val32
            sum32 = np.float32(sum32 + np.float32(2.0) * val32)
        g /= sum32
    elif radius > 0:
        g[1:] = np.float32(0.0)

    return g


@numba.njit(cache=True)
def _clamp(i, n):
    return min(max(i, 0), n - 1)


@numba.njit(cache=True)
def smooth_rows(src, dst, weights, radius):
    h, w = src.shape
    for y in range(h):
        for x in range(w):
            acc = weights[0] * src[y, x]
            for k in range(1, radius + 1):
                acc += weights[k] * (src[y, _clamp(x + k, w)] + src[y, _clamp(x - k, w)])
            dst[y, x] = acc


@numba.njit(cache=True)
def smooth_columns(src, dst, weights, radius):
    h, w = src.shape
    for y in range(h):
        for x in range(w):
            acc = weights[0] * src[y, x]
            for k in range(1, radius + 1):
                acc += weights[k] * (src[_clamp(y + k, h), x] + src[_clamp(y - k, h), x])
            dst[y, x] = acc


@numba.njit(cache=True)
def compute_response(src, dst, scale2):
    h, w = src.shape
    s2 = np.float32(scale2)
    for y in range(h):
        yu, yd = _clamp(y - 1, h), _clamp(y + 1, h)
        for x in range(w):
            xl, xr = _clamp(x - 1, w), _clamp(x + 1, w)
            c = src[y, x]
            dxx = src[y, xr] - np.float32(2.0) * c + src[y, xl]
            dyy = src[yd, x] - np.float32(2.0) * c + src[yu, x]
            dxy = np.float32(0.25) * (src[yd, xr] - src[yu, xr] - src[yd, xl] + src[yu, xl])
            dst[y, x] = s2 * s2 * (dxx * dyy - dxy * dxy)


@numba.njit(cache=True)
def init_keypoint_map(keypoint_map):
    keypoint_map[:, :] = -1


@numba.njit(cache=True)
def _is_keypoint(response, y, x, threshold):
    v = response[y, x]
    if v <= threshold:
        return False
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dy == 0 and dx == 0:
                continue
            if response[y + dy, x + dx] >= v:
                return False
    return True


@numba.njit(cache=True)
def find_extrema_fixed(response, keypoint_map, coords, scores, capacity, count, threshold):
    h, w = response.shape
    for y in range(1, h - 1):
        for x in range(1, w - 1):
            if not _is_keypoint(response, y, x, threshold):
                continue
            index = count[0]
            count[0] = index + 1
            if index >= capacity:
                continue
            coords[index, 0] = x
            coords[index, 1] = y
            scores[index] = response[y, x]
            keypoint_map[y >> 1, x >> 1] = index


@numba.njit(cache=True)
def find_extrema_subpixel(response, keypoint_map, coords, scores, capacity, count, threshold):
    h, w = response.shape
    for y in range(1, h - 1):
        for x in range(1, w - 1):
            if not _is_keypoint(response, y, x, threshold):
                continue
            index = count[0]
            count[0] = index + 1
            if index >= capacity:
                continue
            v = response[y, x]
            l, r = response[y, x - 1], response[y, x + 1]
            u, d = response[y - 1, x], response[y + 1, x]
            ox = np.float32(0.5) * (l - r) / (l - np.float32(2.0) * v + r)
            oy = np.float32(0.5) * (u - d) / (u - np.float32(2.0) * v + d)
            coords[index, 0] = np.float32(x) + ox
            coords[index, 1] = np.float32(y) + oy
            scores[index] = v
            keypoint_map[y >> 1, x >> 1] = index


def _as_float_image(image: np.ndarray) -> np.ndarray:
    image = np.asarray(image)
    if image.dtype == np.uint8:
        # same values a UNORM_INT8 image returns to read_imagef
        return np.ascontiguousarray(image, dtype=np.float32) / np.float32(255.0)
    return np.ascontiguousarray(image, dtype=np.float32)


def smooth(image: np.ndarray, sigma: float, half_width: int) -> np.ndarray:
    src = _as_float_image(image)
    radius = int(half_width)
    weights = gaussian_weights(sigma, radius)
    tmp = np.empty_like(src)
    out = np.empty_like(src)
    smooth_rows(src, tmp, weights, radius)
    smooth_columns(tmp, out, weights, radius)
    return out


def detect_keypoints(image: np.ndarray, threshold: float, scale: float, subpixel: bool = False):
    """Run response and extrema detection on the host.

    Returns ``(coords, scores)`` with one row per keypoint in row-major order.
    """
    src = _as_float_image(image)
    h, w = src.shape
    response = np.empty_like(src)
    compute_response(src, response, np.float32(scale * scale))

    capacity = h * w // 4
    keypoint_map = np.empty((h // 2, w // 2), np.int32)
    init_keypoint_map(keypoint_map)
    coords = np.empty((capacity, 2), np.float32 if subpixel else np.int32)
    scores = np.empty(capacity, np.float32)
    count = np.zeros(1, np.int32)
    extrema = find_extrema_subpixel if subpixel else find_extrema_fixed
    extrema(response, keypoint_map, coords, scores, capacity, count, np.float32(threshold))
    n = int(count[0])
    return coords[:n].copy(), scores[:n].copy()


def smooth_and_detect(image: np.ndarray, threshold: float, scale: float, subpixel: bool = False):
    smoothed = smooth(image, SMOOTH_SIGMA, SMOOTH_HALF_WIDTH)
    return detect_keypoints(smoothed, threshold, scale, subpixel)
