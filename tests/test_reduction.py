"""End to end tests of the reduction pipeline."""

from __future__ import annotations

import warnings
from dataclasses import replace

import numpy as np
import pytest

from ccdrefl.core.config import ReductionConfig
from ccdrefl.core.frame import FrameRecord
from ccdrefl.exceptions import (
    ConfigError,
    EmptyGroupError,
    GeometryError,
    NoOverlapError,
    ReductionWarning,
)
from ccdrefl.refl.aggregate import Normalization
from ccdrefl.refl.q import angle_to_q, energy_to_wavelength
from ccdrefl.refl.reduction import reduce_frames
from ccdrefl.types import PointFlag

from conftest import ATTENUATED_SIGNAL, WAVELENGTH


def test_scenario_attenuated_segment_matches(scenario_frames, config):
    result = reduce_frames(scenario_frames, config)

    first, second = result.scale_factors
    assert first.segment_id == "att=1"
    assert first.scale == 1.0
    assert second.segment_id == "att=10"
    assert second.scale == pytest.approx(1.0, abs=1e-6)
    assert second.n_overlap == 1

    curve = result.curve
    assert len(curve) == len(ATTENUATED_SIGNAL)
    np.testing.assert_allclose(
        curve.q, angle_to_q(np.array(list(ATTENUATED_SIGNAL)), WAVELENGTH)
    )
    # the later attenuated point replaces the unattenuated one at 1 deg
    assert curve[0].r == pytest.approx(800.0)
    assert PointFlag.DUPLICATE_RESOLVED in curve[0].flags
    assert curve[1].r == pytest.approx(500.0)


def test_scenario_aggregated_point(scenario_frames, config):
    config = replace(config, prefer_later=False)
    result = reduce_frames(scenario_frames, config)

    point = result.points[0]
    assert point.angle == 1.0
    assert point.attenuation == 1.0
    assert point.n_frames == 3
    assert point.intensity == pytest.approx(800.0)
    assert point.intensity_var == pytest.approx(400.0)


def test_scenario_overlap_ratio_recovers_attenuation(scenario_frames, config):
    config = replace(config, normalization=Normalization(deattenuate=False))
    result = reduce_frames(scenario_frames, config)

    assert result.scale_factors[1].scale == pytest.approx(10.0, abs=1e-6)
    assert result.curve[1].r == pytest.approx(500.0)


def test_clean_run_emits_no_warning(scenario_frames, config):
    with warnings.catch_warnings():
        warnings.simplefilter("error", ReductionWarning)
        result = reduce_frames(scenario_frames, config)
    assert result.flagged == ()


def test_frame_order_does_not_matter(scenario_frames, config):
    expected = reduce_frames(scenario_frames, config)

    assert reduce_frames(reversed(scenario_frames), config) == expected
    assert reduce_frames(scenario_frames, config, max_workers=1) == expected


def test_degraded_points_warn_once(make_frame, config):
    frames = [make_frame(1.0, s) for s in [1000.0, 1010.0, 990.0, 1005.0, 5000.0]]

    with pytest.warns(ReductionWarning, match="1 of 1 points"):
        result = reduce_frames(frames, config)
    assert len(result.flagged) == 1
    assert PointFlag.OUTLIERS_REJECTED in result.curve[0].flags
    assert result.points[0].n_frames == 4


def test_geometry_error_aborts_run(make_frame, config):
    frames = [make_frame(1.0), make_frame(2.0)]
    frames.append(FrameRecord("small", np.zeros((5, 5)), angle=3.0, exposure_time=1.0))

    with pytest.raises(GeometryError) as exc:
        reduce_frames(frames, config)
    assert exc.value.frame_id == "small"


def test_disjoint_segments_abort_run(make_frame, config):
    frames = [
        make_frame(0.5),
        make_frame(1.0),
        make_frame(3.0, attenuation=10.0),
        make_frame(4.0, attenuation=10.0),
    ]
    with pytest.raises(NoOverlapError):
        reduce_frames(frames, config)

    result = reduce_frames(frames, config, explicit_scales={"att=10": (1.0, 0.0)})
    assert result.scale_factors[1].explicit
    assert len(result.curve) == 4


def test_wavelength_from_frame_energy(make_frame, signal_roi, background_roi):
    config = ReductionConfig(signal_roi, background_roi)
    frames = [make_frame(1.0, energy=250.0), make_frame(2.0, energy=250.02)]

    result = reduce_frames(frames, config)
    assert result.wavelength == pytest.approx(energy_to_wavelength(250.01))
    assert result.config.wavelength == result.wavelength
    assert config.wavelength is None

    with pytest.raises(ConfigError):
        mixed = [make_frame(1.0, energy=250.0), make_frame(2.0, energy=260.0)]
        reduce_frames(mixed, config)
    with pytest.raises(ConfigError):
        reduce_frames([make_frame(1.0)], config)


def test_invalid_frame_sets(make_frame, config):
    with pytest.raises(EmptyGroupError):
        reduce_frames([], config)
    with pytest.raises(ValueError):
        same_id = [make_frame(1.0, frame_id="a"), make_frame(2.0, frame_id="a")]
        reduce_frames(same_id, config)


def test_result_tables(scenario_frames, config):
    result = reduce_frames(scenario_frames, config)

    points = result.points_frame()
    assert points.height == len(result.points)
    assert "Sample Theta [deg]" in points.columns
    assert points["Frames"].to_list()[0] == 1

    scales = result.scale_factors_frame()
    assert scales["Segment"].to_list() == ["att=1", "att=10"]
    assert scales["Explicit"].to_list() == [False, False]


def test_dezinger_removes_hot_pixel(signal_roi, background_roi):
    image = np.full((10, 30), 2.0)
    image[:, 0:10] = 10.0
    image[4, 4] = 1e5
    frames = [
        FrameRecord(f"hot-{i}", image, angle=angle, exposure_time=1.0)
        for i, angle in enumerate([1.0, 2.0])
    ]
    config = ReductionConfig(signal_roi, background_roi, wavelength=WAVELENGTH)

    raw = reduce_frames(frames, config)
    cleaned = reduce_frames(frames, replace(config, dezinger=True))

    assert raw.points[0].intensity > 1e4
    assert cleaned.points[0].intensity == pytest.approx(800.0)
