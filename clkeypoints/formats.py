from __future__ import annotations

from typing import Dict, Iterator, Optional

import numpy as np
import pyopencl as cl

# working image formats used by the detection and smoothing tasks
RESPONSE_FORMAT = cl.ImageFormat(cl.channel_order.INTENSITY, cl.channel_type.FLOAT)
KEYPOINT_MAP_FORMAT = cl.ImageFormat(cl.channel_order.R, cl.channel_type.SIGNED_INT32)

# host dtype used to read back an image of a given channel type
_CHANNEL_TYPE_TO_DTYPE = {
    cl.channel_type.FLOAT: np.dtype(np.float32),
    cl.channel_type.SIGNED_INT32: np.dtype(np.int32),
    cl.channel_type.UNSIGNED_INT32: np.dtype(np.uint32),
    cl.channel_type.UNORM_INT8: np.dtype(np.uint8),
    cl.channel_type.UNSIGNED_INT8: np.dtype(np.uint8),
}


def host_dtype(image_format: cl.ImageFormat) -> np.dtype:
    return _CHANNEL_TYPE_TO_DTYPE[image_format.channel_data_type]


def same_format(a: cl.ImageFormat, b: cl.ImageFormat) -> bool:
    return (
        a.channel_order == b.channel_order
        and a.channel_data_type == b.channel_data_type
    )


class PixelFormatTable:
    """Maps a host pixel-format tag (a numpy dtype) to a device image format.

    Only single-channel formats are registered: host images are single-plane.
    A lookup miss returns ``None`` so callers can treat it as "unsupported".
    """

    def __init__(self, entries: Optional[Dict[np.dtype, cl.ImageFormat]] = None):
        self._formats: Dict[np.dtype, cl.ImageFormat] = {}
        if entries is None:
            entries = {
                np.dtype(np.float32): cl.ImageFormat(
                    cl.channel_order.INTENSITY, cl.channel_type.FLOAT
                ),
                np.dtype(np.uint8): cl.ImageFormat(
                    cl.channel_order.INTENSITY, cl.channel_type.UNORM_INT8
                ),
            }
        for tag, image_format in entries.items():
            self.register(tag, image_format)

    def register(self, tag, image_format: cl.ImageFormat) -> None:
        self._formats[np.dtype(tag)] = image_format

    def lookup(self, tag) -> Optional[cl.ImageFormat]:
        try:
            return self._formats.get(np.dtype(tag))
        except TypeError:
            return None

    def __contains__(self, tag) -> bool:
        return self.lookup(tag) is not None

    def __iter__(self) -> Iterator[np.dtype]:
        return iter(self._formats)

    def __len__(self) -> int:
        return len(self._formats)
