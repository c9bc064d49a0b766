from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np

W709_BGR = np.array(
    [0.072192315360734, 0.715168678767756, 0.212639005871510], dtype=np.float32
)


def read_gray(path: str | Path) -> np.ndarray:
    """Decode an image file to a BT.709 luma float32 image in [0, 1]."""
    raw = np.fromfile(str(path), np.uint8)
    im = cv2.imdecode(raw, cv2.IMREAD_COLOR)
    if im is None:
        raise ValueError(f"could not decode image: {path}")
    return np.ascontiguousarray((im.astype(np.float32) * W709_BGR).sum(axis=2) / 255.0)


def as_host_image(pixels: np.ndarray) -> np.ndarray:
    """Check that ``pixels`` is single-plane, contiguous, top-left origin storage."""
    pixels = np.asarray(pixels)
    if pixels.ndim != 2:
        raise ValueError(f"expected a single-plane 2-D image, got shape {pixels.shape}")
    if not pixels.flags.c_contiguous:
        raise ValueError("host image storage must be C-contiguous")
    return pixels
