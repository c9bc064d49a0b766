from __future__ import annotations

import pytest
from loguru import logger

from clkeypoints import HessianDetector, ProgramRegistry, ResourceManager
from clkeypoints.errors import ClKeypointsError, PlatformUnavailable
from fake_cl import FakeOpenCL


@pytest.fixture
def fake_cl(monkeypatch):
    """pyopencl replaced by an in-process fake for the duration of a test."""
    return FakeOpenCL().install(monkeypatch)


@pytest.fixture
def manager(fake_cl):
    return ResourceManager().initialize()


@pytest.fixture
def registry(manager):
    return ProgramRegistry(manager)


@pytest.fixture
def detector(manager, registry):
    return HessianDetector(manager, registry)


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during the test."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)


@pytest.fixture(scope="session")
def gpu_manager():
    """A manager on a real OpenCL GPU; skips gracefully without one."""
    try:
        return ResourceManager().initialize()
    except PlatformUnavailable as e:
        pytest.skip(f"No OpenCL GPU available: {e}")
    except ClKeypointsError as e:
        pytest.skip(f"OpenCL initialization failed: {e}")
