from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from . import reference
from .config import DetectorSettings
from .errors import BuildFailure, PlatformUnavailable, UnsupportedPixelFormat
from .image_io import read_gray
from .logging_config import setup_logging
from .manager import ResourceManager
from .registry import ProgramRegistry
from .tasks import HessianDetector


def build_parser(settings: DetectorSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clkeypoints", description="Count Hessian keypoints in images."
    )
    parser.add_argument("images", nargs="*", type=Path)
    parser.add_argument("--threshold", type=float, default=settings.threshold)
    parser.add_argument("--scale", type=float, default=settings.scale)
    parser.add_argument("--subpixel", action="store_true", default=settings.subpixel)
    parser.add_argument("--device", type=int, default=settings.device_index)
    parser.add_argument("--report-device", action="store_true")
    parser.add_argument("--host", action="store_true", help="run the host reference instead of OpenCL")
    parser.add_argument("--log-file", default=settings.log_file)
    return parser


def _run_host(args) -> int:
    for path in args.images:
        coords, _ = reference.smooth_and_detect(read_gray(path), args.threshold, args.scale, args.subpixel)
        print(f"{path.name}: {len(coords)} keypoints")
    return 0


def _run_device(args) -> int:
    manager = ResourceManager()
    try:
        manager.initialize()
    except PlatformUnavailable:
        return 1
    if args.report_device:
        manager.report_device_capabilities(args.device)
    if not args.images:
        return 0

    registry = ProgramRegistry(manager, args.device)
    try:
        detector = HessianDetector(manager, registry, args.device)
    except BuildFailure:
        return 1

    for path in args.images:
        pixels = read_gray(path)
        image = manager.create_image_from_host(pixels)
        if image is None:
            logger.error("{}: {}", path, UnsupportedPixelFormat(pixels.dtype))
            return 2
        detections = detector.smooth_and_detect(image, args.threshold, args.scale, args.subpixel)
        print(f"{path.name}: {detections.count} keypoints")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        settings = DetectorSettings()
    except ValidationError as err:
        logger.error("Invalid CLKEYPOINTS_* configuration:\n{}", err)
        return 2
    args = build_parser(settings).parse_args(argv)
    setup_logging(settings.log_level, args.log_file)
    if args.host:
        return _run_host(args)
    return _run_device(args)


if __name__ == "__main__":
    sys.exit(main())
