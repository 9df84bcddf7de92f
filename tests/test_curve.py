"""Tests for reflectivity curve assembly."""

from __future__ import annotations

import math
from datetime import datetime

import numpy as np
import polars as pl
import pytest

from ccdrefl.exceptions import NonMonotonicError
from ccdrefl.refl.aggregate import ExposurePoint
from ccdrefl.refl.curve import CurvePoint, ReflectivityCurve, assemble
from ccdrefl.types import PointFlag


@pytest.fixture
def points() -> list[CurvePoint]:
    return [
        CurvePoint(0.03, 0.1, 1e-4),
        CurvePoint(0.01, 0.9, 1e-3),
        CurvePoint(0.02, 0.4, 4e-4, PointFlag.OUTLIERS_REJECTED),
    ]


def test_assemble_sorts_by_q(points):
    curve = assemble(points)
    assert list(curve.q) == [0.01, 0.02, 0.03]
    assert curve[1].flags == PointFlag.OUTLIERS_REJECTED


def test_assemble_is_idempotent(points):
    curve = assemble(points)
    assert assemble(curve.points) == curve
    assert assemble(curve) == curve


def test_points_within_tolerance_are_merged():
    curve = assemble(
        [CurvePoint(0.1, 1.0, 1.0), CurvePoint(0.1 + 1e-8, 3.0, 1.0)],
        q_tolerance=1e-6,
    )
    assert len(curve) == 1
    merged = curve[0]
    assert merged.r == pytest.approx(2.0)
    assert merged.r_var == pytest.approx(0.5)
    assert merged.q == pytest.approx(0.1 + 5e-9)
    assert PointFlag.MERGED in merged.flags


def test_points_across_bin_edge_are_merged():
    # 0.0500005 is a bin edge at this resolution
    below = CurvePoint(0.0500005 - 1e-10, 1.0, 1.0)
    above = CurvePoint(0.0500005 + 1e-10, 3.0, 1.0)
    curve = assemble([below, above], q_tolerance=1e-6)
    assert len(curve) == 1
    assert curve[0].r == pytest.approx(2.0)
    assert PointFlag.MERGED in curve[0].flags
    assert assemble(curve, q_tolerance=1e-6) == curve


def test_close_neighbours_merge_until_separated():
    points = [CurvePoint(0.1 + i * 8e-7, 1.0, 1.0) for i in range(4)]
    points.append(CurvePoint(0.2, 1.0, 1.0))
    curve = assemble(points, q_tolerance=1e-6)

    assert np.all(np.diff(curve.q) > 1e-6)
    assert curve[-1] == CurvePoint(0.2, 1.0, 1.0)


def test_assemble_accepts_exposure_points():
    point = ExposurePoint(1.0, 0.05, 800.0, 400.0, 1.0, 3, datetime(2024, 5, 1))
    curve = assemble([point])
    assert curve[0] == CurvePoint(0.05, 800.0, 400.0)
    assert curve[0].dr == pytest.approx(20.0)

    with pytest.raises(ValueError):
        assemble([ExposurePoint(1.0, math.nan, 1.0, 1.0, 1.0, 1, datetime(2024, 5, 1))])


def test_non_monotonic_curve_rejected():
    with pytest.raises(NonMonotonicError):
        ReflectivityCurve((CurvePoint(0.2, 1.0, 1.0), CurvePoint(0.1, 1.0, 1.0)))
    with pytest.raises(NonMonotonicError):
        ReflectivityCurve((CurvePoint(0.1, 1.0, 1.0), CurvePoint(0.1, 2.0, 1.0)))
    with pytest.raises(NonMonotonicError):
        ReflectivityCurve((CurvePoint(0.1, 1.0, -1.0),))


def test_non_finite_q_rejected():
    with pytest.raises(NonMonotonicError):
        assemble([CurvePoint(math.inf, 1.0, 1.0)])


def test_empty_curve():
    curve = assemble([])
    assert len(curve) == 0
    assert curve.to_numpy().shape == (0, 3)


def test_exports(points):
    curve = assemble(points)

    table = curve.to_numpy()
    assert table.shape == (3, 3)
    np.testing.assert_allclose(table[:, 2], np.sqrt(curve.r_var))

    df = curve.to_polars()
    assert df.columns == ["Q [Å⁻¹]", "R", "R Var", "dR", "flags"]
    assert df.schema["flags"] == pl.List(pl.String)
    assert df["flags"].to_list() == [[], ["outliers_rejected"], []]

    pdf = curve.to_pandas()
    assert len(pdf) == 3
