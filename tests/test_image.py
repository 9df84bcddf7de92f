"""Tests for region of interest reduction."""

from __future__ import annotations

import numpy as np
import pytest

from ccdrefl.core.frame import FrameRecord
from ccdrefl.exceptions import EmptyRegionError, GeometryError
from ccdrefl.image import Roi, dezinger_image, reduce, region_sum
from ccdrefl.types import RoiKind


def test_reduce_subtracts_scaled_background(make_frame, signal_roi, background_roi):
    frame = make_frame(1.0, 1000.0)
    result = reduce(frame, signal_roi, background_roi)

    assert result.background == pytest.approx(200.0)
    assert result.signal == pytest.approx(800.0)
    assert result.background_var == pytest.approx(200.0)
    assert result.signal_var == pytest.approx(1200.0)
    assert result.frame_id == frame.frame_id
    assert result.angle == 1.0
    assert result.attenuation == 1.0


def test_reduce_scales_background_to_signal_area(make_frame, signal_roi):
    frame = make_frame(1.0, 1000.0)
    half_background = Roi.background(0, 5, 20, 30)
    result = reduce(frame, signal_roi, half_background)

    # 50 pixels of 2 counts scaled by 100 / 50
    assert result.background == pytest.approx(200.0)
    assert result.background_var == pytest.approx(400.0)
    assert result.signal_var == pytest.approx(1400.0)


def test_reduce_variances_never_negative(signal_roi, background_roi):
    frame = FrameRecord("bias", np.full((10, 30), -5.0), angle=1.0, exposure_time=1.0)
    result = reduce(frame, signal_roi, background_roi)

    assert result.signal_var >= 0
    assert result.background_var >= 0
    assert result.signal == pytest.approx(0.0)


def test_swapped_rois_raise(make_frame, signal_roi, background_roi):
    frame = make_frame(1.0)
    with pytest.raises(GeometryError) as exc:
        reduce(frame, background_roi, signal_roi)
    assert exc.value.frame_id == frame.frame_id
    assert frame.frame_id in str(exc.value)


@pytest.mark.parametrize(
    "roi",
    [
        Roi.signal(0, 11, 0, 10),
        Roi.signal(-1, 5, 0, 10),
        Roi.signal(0, 10, 25, 31),
    ],
)
def test_roi_outside_image_raises(make_frame, background_roi, roi):
    with pytest.raises(GeometryError):
        reduce(make_frame(1.0), roi, background_roi)


def test_overlapping_rois_raise(make_frame, signal_roi):
    overlapping = Roi.background(5, 10, 5, 15)
    with pytest.raises(GeometryError, match="overlaps"):
        reduce(make_frame(1.0), signal_roi, overlapping)


def test_empty_roi_raises(make_frame, background_roi):
    empty = Roi.signal(3, 3, 0, 10)
    with pytest.raises(EmptyRegionError):
        reduce(make_frame(1.0), empty, background_roi)


def test_roi_geometry():
    a = Roi.signal(0, 4, 0, 5)
    b = Roi.background(4, 8, 0, 5)

    assert a.n_pixels == 20
    assert a.kind is RoiKind.SIGNAL
    assert b.kind is RoiKind.BACKGROUND
    assert not a.overlaps(b)
    assert a.inside((4, 5))
    assert not b.inside((4, 5))
    assert Roi(1, 0, 0, 5).n_pixels == 0


def test_region_sum_matches_numpy():
    rng = np.random.default_rng(0)
    image = rng.poisson(5.0, size=(20, 20)).astype(np.float64)
    assert region_sum(image, 2, 9, 3, 17) == pytest.approx(image[2:9, 3:17].sum())


def test_frame_image_is_read_only(make_frame):
    frame = make_frame(1.0)
    with pytest.raises(ValueError):
        frame.image[0, 0] = 1.0


def test_frame_validation():
    with pytest.raises(ValueError):
        FrameRecord("a", np.zeros(10), angle=1.0, exposure_time=1.0)
    with pytest.raises(ValueError):
        FrameRecord("a", np.zeros((2, 2)), angle=1.0, exposure_time=0.0)
    with pytest.raises(ValueError):
        FrameRecord(
            "a", np.zeros((2, 2)), angle=1.0, exposure_time=1.0, attenuation=0.5
        )


def test_dezinger_replaces_hot_pixel():
    image = np.full((7, 7), 3.0)
    image[3, 3] = 1e5
    cleaned = dezinger_image(image)

    assert cleaned[3, 3] == pytest.approx(3.0)
    assert np.all(cleaned == 3.0)
