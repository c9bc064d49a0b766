import numpy as np
import pytest

from clkeypoints import reference
from clkeypoints.errors import StaleHandleError
from helpers_images import GRID, as_point_set, blob, spikes

THRESHOLD = 1e-3
SCALE = 1.0


def _detect(manager, detector, img, subpixel=False, threshold=THRESHOLD, scale=SCALE):
    image = manager.create_image_from_host(img)
    return detector.detect(image, threshold, scale, subpixel)


def _commands_from_last_count_write(fake_cl):
    start = max(i for i, c in enumerate(fake_cl.commands) if c == ("write", 4))
    return fake_cl.commands[start:]


def test_single_spike_is_detected_at_its_pixel(manager, detector):
    det = _detect(manager, detector, spikes([(20, 37)]))
    assert det.count == 1

    kp = detector.read_keypoints(det)
    assert kp.positions.dtype == np.int32
    assert kp.positions.tolist() == [[20, 37]]
    np.testing.assert_allclose(kp.scores, [4.0])
    assert kp.keypoint_map.shape == (32, 32)
    assert kp.keypoint_map[37 >> 1, 20 >> 1] == 0
    assert (kp.keypoint_map >= 0).sum() == 1


def test_response_scales_with_fourth_power_of_scale(manager, detector):
    det = _detect(manager, detector, spikes([(20, 37)]), scale=2.0)
    kp = detector.read_keypoints(det)
    np.testing.assert_allclose(kp.scores, [4.0 * 16])


def test_subpixel_positions_are_float(manager, detector):
    det = _detect(manager, detector, spikes([(20, 37)]), subpixel=True)
    assert det.subpixel
    kp = detector.read_keypoints(det)
    assert kp.positions.dtype == np.float32
    np.testing.assert_allclose(kp.positions, [[20.0, 37.0]], atol=1e-6)


def test_no_overflow_runs_extrema_once(fake_cl, manager, detector):
    # 64x64: hard bound 1024, initial capacity 10
    det = _detect(manager, detector, spikes(GRID[:9]))
    assert det.count == 9
    assert det.coordinates.length == 10
    assert len(fake_cl.kernel_launches("find_extrema_fixed")) == 1
    assert detector.buffer_capacity == 13

    kp = detector.read_keypoints(det)
    assert kp.positions.shape == (9, 2)
    assert as_point_set(kp.positions) == set(GRID[:9])


def test_command_order_single_pass(fake_cl, manager, detector):
    _detect(manager, detector, spikes(GRID[:3]))
    assert _commands_from_last_count_write(fake_cl) == [
        ("write", 4),
        ("kernel", "compute_response", (64, 64)),
        ("kernel", "init_keypoint_map", (32, 32)),
        ("barrier",),
        ("kernel", "find_extrema_fixed", (64, 64)),
        ("barrier",),
        ("read", 4),
    ]


def test_count_equal_to_capacity_takes_the_overflow_path(fake_cl, manager, detector):
    det = _detect(manager, detector, spikes(GRID[:10]))
    assert det.count == 10
    assert len(fake_cl.kernel_launches("find_extrema_fixed")) == 2
    assert det.coordinates.length == 10
    assert detector.buffer_capacity == 15


def test_overflow_reallocates_to_true_count(fake_cl, manager, detector):
    det = _detect(manager, detector, spikes(GRID))
    assert det.count == 225
    assert det.coordinates.length == 225
    assert det.coordinates.nbytes == 225 * 8
    assert det.scores.length == 225
    assert detector.buffer_capacity == 337

    # the response pass is not repeated
    assert _commands_from_last_count_write(fake_cl) == [
        ("write", 4),
        ("kernel", "init_keypoint_map", (32, 32)),
        ("barrier",),
        ("kernel", "find_extrema_fixed", (64, 64)),
        ("finish",),
    ]
    assert len(fake_cl.kernel_launches("compute_response")) == 1

    kp = detector.read_keypoints(det)
    assert kp.positions.shape == (225, 2)
    assert as_point_set(kp.positions) == set(GRID)
    np.testing.assert_allclose(kp.scores, 4.0)
    assert sorted(kp.keypoint_map[kp.keypoint_map >= 0].tolist()) == list(range(225))


def test_overflow_releases_first_pass_buffers(fake_cl, manager, detector):
    _detect(manager, detector, spikes(GRID))
    first_pass = [b for b in fake_cl.buffers if b.size in (10 * 8, 10 * 4)]
    assert len(first_pass) == 2
    assert all(b.released for b in first_pass)


def test_next_call_allocates_updated_capacity(manager, detector):
    _detect(manager, detector, spikes(GRID))
    det = _detect(manager, detector, spikes(GRID[:5]))
    assert det.coordinates.length == 337
    assert det.count == 5
    assert detector.buffer_capacity == 7


def test_capacity_is_clamped_to_the_hard_bound(manager, detector):
    # 16x16 holds at most 64 keypoints; a 7x7 grid gives 49 and 1.5x would be 73
    points = [(x, y) for y in range(1, 15, 2) for x in range(1, 15, 2)]
    det = _detect(manager, detector, spikes(points, shape=(16, 16)))
    assert det.count == 49
    assert detector.buffer_capacity == 64


def test_tiny_image_starts_with_capacity_one(manager, detector):
    # 8x8: hard bound 16, 16 // 100 == 0 is clamped to 1
    det = _detect(manager, detector, spikes([(4, 4)], shape=(8, 8)))
    assert det.count == 1
    assert det.coordinates.length == 1
    assert detector.buffer_capacity == 1


def test_empty_image_has_no_keypoints(fake_cl, manager, detector):
    det = _detect(manager, detector, np.zeros((64, 64), np.float32))
    assert det.count == 0
    assert len(fake_cl.kernel_launches("find_extrema_fixed")) == 1
    assert detector.buffer_capacity == 0

    kp = detector.read_keypoints(det)
    assert kp.positions.shape == (0, 2)
    assert kp.scores.shape == (0,)
    assert (kp.keypoint_map == -1).all()

    # capacity 0 means the next call starts from the initial guess again
    det = _detect(manager, detector, np.zeros((64, 64), np.float32))
    assert det.coordinates.length == 10


def test_subpixel_overflow(fake_cl, manager, detector):
    det = _detect(manager, detector, spikes(GRID), subpixel=True)
    assert det.count == 225
    assert len(fake_cl.kernel_launches("find_extrema_subpixel")) == 2
    kp = detector.read_keypoints(det)
    np.testing.assert_allclose(
        kp.positions[np.lexsort(kp.positions.T[::-1])],
        np.array(sorted(GRID), dtype=np.float32),
        atol=1e-6,
    )


def test_repeated_detection_gives_the_same_set(manager, detector):
    img = spikes(GRID)
    first = detector.read_keypoints(_detect(manager, detector, img))
    second = detector.read_keypoints(_detect(manager, detector, img))
    assert as_point_set(first.positions) == as_point_set(second.positions)
    np.testing.assert_allclose(np.sort(first.scores), np.sort(second.scores))


def test_matches_host_reference_on_noise(manager, detector):
    rng = np.random.default_rng(7)
    img = rng.random((48, 80), dtype=np.float32)
    det = _detect(manager, detector, img, threshold=1e-4, scale=2.0)
    coords, scores = reference.detect_keypoints(img, 1e-4, 2.0)
    assert det.count == len(coords)
    kp = detector.read_keypoints(det)
    assert as_point_set(kp.positions) == as_point_set(coords)


def test_smooth_and_detect_finds_the_blob_center(fake_cl, manager, detector):
    image = manager.create_image_from_host(blob((30, 25)))
    det = detector.smooth_and_detect(image, 1e-6, 2.0)
    assert det.count == 1
    kp = detector.read_keypoints(det)
    x, y = kp.positions[0]
    assert abs(int(x) - 30) <= 1 and abs(int(y) - 25) <= 1

    # the smoother runs to completion before the response pass
    names = [c[1] for c in fake_cl.kernel_launches()]
    assert names[:3] == ["smooth_rows", "smooth_columns", "compute_response"]


def test_smooth_and_detect_reuses_its_smoother(fake_cl, manager, detector):
    image = manager.create_image_from_host(blob((30, 25)))
    detector.smooth_and_detect(image, 1e-6, 2.0)
    queues = len(fake_cl.queues)
    detector.smooth_and_detect(image, 1e-6, 2.0)
    assert len(fake_cl.queues) == queues


def test_uint8_input(manager, detector):
    img = (spikes([(20, 37)]) * 255).astype(np.uint8)
    det = _detect(manager, detector, img)
    assert det.count == 1


@pytest.mark.parametrize("shape", [(1, 64), (64, 1), (1, 1)])
def test_images_below_two_pixels_are_rejected(manager, detector, shape):
    image = manager.create_image_from_host(np.zeros(shape, np.float32))
    with pytest.raises(ValueError):
        detector.detect(image, THRESHOLD, SCALE)


def test_launch_with_released_input_is_refused(manager, detector):
    image = manager.create_image_from_host(spikes([(20, 37)]))
    detector.detect(image, THRESHOLD, SCALE)
    image.release()
    with pytest.raises(StaleHandleError):
        detector.queue.launch(detector.compute_response, (64, 64))


def test_smooth_and_detect_matches_host_reference(manager, detector):
    img = spikes([(30, 25), (12, 40)])
    det = detector.smooth_and_detect(manager.create_image_from_host(img), 1e-6, 2.0)
    coords, _ = reference.smooth_and_detect(img, 1e-6, 2.0)
    assert det.count == len(coords)
    assert as_point_set(detector.read_keypoints(det).positions) == as_point_set(coords)
