import pytest

from clkeypoints import GaussianSmoother, HessianDetector, ProgramRegistry
from clkeypoints.errors import BuildFailure, DeviceError, ErrorKind
from clkeypoints.registry import load_kernel_source


@pytest.mark.parametrize(
    "name, entry_points",
    [
        ("hessian", ["compute_response", "init_keypoint_map", "find_extrema_fixed", "find_extrema_subpixel"]),
        ("gaussian_smooth", ["smooth_rows", "smooth_columns"]),
    ],
)
def test_packaged_kernel_sources(name, entry_points):
    source = load_kernel_source(name)
    for entry in entry_points:
        assert f"__kernel void {entry}(" in source


def test_register_builds_once(fake_cl, registry):
    first = registry.register_program("k", "kernel void k() {}")
    second = registry.register_program("k", "kernel void k() {}")
    assert first is second
    assert len(fake_cl.builds) == 1
    assert registry.program("k") is first
    assert "k" in registry
    assert registry.names() == ["k"]


def test_unknown_program_lookup(registry):
    with pytest.raises(KeyError):
        registry.program("missing")


def test_failed_build_is_not_cached(fake_cl, registry):
    with pytest.raises(BuildFailure):
        registry.register_program("bad", "#error\n")
    assert "bad" not in registry
    with pytest.raises(BuildFailure):
        registry.register_program("bad", "#error\n")
    assert len(fake_cl.builds) == 2


def test_tasks_share_one_program_with_their_own_queues(fake_cl, manager):
    registry = ProgramRegistry(manager)
    a = HessianDetector(manager, registry)
    b = HessianDetector(manager, registry)
    smoother = GaussianSmoother(manager, registry)
    assert a.program is b.program
    assert sorted(registry.names()) == ["gaussian_smooth", "hessian"]
    assert len(fake_cl.builds) == 2
    assert len({id(t.queue) for t in (a, b, smoother)}) == 3


def test_missing_kernel_entry_point(manager, registry):
    program = registry.register_program("k", "kernel void k() {}")
    with pytest.raises(DeviceError) as excinfo:
        program.kernel("not_a_kernel")
    assert excinfo.value.kind is ErrorKind.INVALID_KERNEL_NAME
