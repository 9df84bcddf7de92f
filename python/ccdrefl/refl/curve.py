"""Assembly of the final reflectivity curve."""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, overload

import numpy as np
import polars as pl

from ccdrefl import _config
from ccdrefl.exceptions import NonMonotonicError
from ccdrefl.refl.aggregate import ExposurePoint
from ccdrefl.refl.grouping import Tolerance, group_by
from ccdrefl.types import PointFlag
from ccdrefl.utils import weighted_mean

if TYPE_CHECKING:
    import pandas as pd


@dataclass(frozen=True, slots=True)
class CurvePoint:
    """A single reflectivity value at momentum transfer ``q``."""

    q: float
    r: float
    r_var: float
    flags: PointFlag = PointFlag.NONE

    @classmethod
    def from_exposure(cls, point: ExposurePoint) -> CurvePoint:
        """Convert a stitched exposure point that carries a momentum transfer."""
        if not point.has_q:
            msg = f"Point at {point.angle} deg has not been converted to Q"
            raise ValueError(msg)
        return cls(point.q, point.intensity, point.intensity_var, point.flags)

    @property
    def dr(self) -> float:
        """Standard uncertainty of the reflectivity."""
        return math.sqrt(self.r_var)


@dataclass(frozen=True)
class ReflectivityCurve:
    """
    Reflectivity as a function of momentum transfer.

    Points are strictly increasing in ``q`` and carry non-negative variance;
    both are checked on construction.
    """

    points: tuple[CurvePoint, ...] = field(default=())

    def __post_init__(self):
        points = tuple(self.points)
        _check_curve(points)
        object.__setattr__(self, "points", points)

    def __len__(self) -> int:
        """Return the number of points."""
        return len(self.points)

    def __iter__(self) -> Iterator[CurvePoint]:
        """Iterate over the points in increasing q."""
        return iter(self.points)

    @overload
    def __getitem__(self, index: int) -> CurvePoint: ...
    @overload
    def __getitem__(self, index: slice) -> tuple[CurvePoint, ...]: ...
    def __getitem__(self, index):
        """Return the point(s) at the given position."""
        return self.points[index]

    @property
    def q(self) -> np.ndarray:
        """Momentum transfer in inverse Angstrom."""
        return np.array([p.q for p in self.points], dtype=np.float64)

    @property
    def r(self) -> np.ndarray:
        """Reflectivity."""
        return np.array([p.r for p in self.points], dtype=np.float64)

    @property
    def r_var(self) -> np.ndarray:
        """Variance of the reflectivity."""
        return np.array([p.r_var for p in self.points], dtype=np.float64)

    def to_numpy(self) -> np.ndarray:
        """Return an ``(n, 3)`` array of ``q, R, sigma_R``."""
        return np.column_stack([self.q, self.r, np.sqrt(self.r_var)])

    def to_polars(self) -> pl.DataFrame:
        """Return the curve as a polars DataFrame."""
        c = _config.CURVE_COLUMNS
        return pl.DataFrame(
            {
                c["q"]: self.q,
                c["r"]: self.r,
                c["r_var"]: self.r_var,
                c["dr"]: np.sqrt(self.r_var),
                c["flags"]: [p.flags.labels() for p in self.points],
            },
            schema={
                c["q"]: pl.Float64,
                c["r"]: pl.Float64,
                c["r_var"]: pl.Float64,
                c["dr"]: pl.Float64,
                c["flags"]: pl.List(pl.String),
            },
        )

    def to_pandas(self) -> pd.DataFrame:
        """Return the curve as a pandas DataFrame."""
        return self.to_polars().to_pandas()


def _check_curve(points: Sequence[CurvePoint]) -> None:
    q = np.array([p.q for p in points], dtype=np.float64)
    r_var = np.array([p.r_var for p in points], dtype=np.float64)
    if not np.all(np.isfinite(q)):
        msg = "Curve contains non-finite Q values"
        raise NonMonotonicError(msg)
    if np.any(np.diff(q) <= 0):
        crossing = int(np.argmax(np.diff(q) <= 0))
        msg = f"Q is not strictly increasing at {q[crossing]} -> {q[crossing + 1]}"
        raise NonMonotonicError(msg)
    if not np.all(np.isfinite(r_var) & (r_var >= 0)):
        msg = "Curve contains negative or non-finite variance"
        raise NonMonotonicError(msg)


def _merge(bucket: Sequence[CurvePoint]) -> CurvePoint:
    if len(bucket) == 1:
        return bucket[0]
    r, r_var, degraded = weighted_mean(
        [p.r for p in bucket], [p.r_var for p in bucket]
    )
    q = np.array([p.q for p in bucket])
    if degraded:
        merged_q = float(np.mean(q))
    else:
        weights = 1.0 / np.array([p.r_var for p in bucket])
        merged_q = float(np.sum(weights * q) / np.sum(weights))

    flags = PointFlag.MERGED
    for p in bucket:
        flags |= p.flags
    if degraded:
        flags |= PointFlag.ZERO_VARIANCE
    return CurvePoint(merged_q, r, r_var, flags)


def _merge_close(
    points: list[CurvePoint], tolerance: Tolerance
) -> list[CurvePoint]:
    # neighbours can straddle a bin edge; merge runs until no gap is that small
    while len(points) > 1:
        runs = [[points[0]]]
        for p in points[1:]:
            if tolerance.close(runs[-1][-1].q, p.q):
                runs[-1].append(p)
            else:
                runs.append([p])
        if len(runs) == len(points):
            break
        points = [_merge(run) for run in runs]
    return points


def assemble(
    points: Iterable[CurvePoint | ExposurePoint],
    q_tolerance: float = _config.Q_TOLERANCE,
) -> ReflectivityCurve:
    """
    Sort, deduplicate and package points into a reflectivity curve.

    Parameters
    ----------
    points : Iterable[CurvePoint | ExposurePoint]
        Points in any order. Exposure points must already carry ``q``.
    q_tolerance : float, optional
        Resolution of the momentum transfer. Points in the same bin, or at most
        this far from their neighbour, are merged with the inverse-variance
        weighted mean.

    Returns
    -------
    ReflectivityCurve
        The curve, strictly increasing in ``q``. Assembling an already
        assembled curve returns it unchanged.

    Raises
    ------
    NonMonotonicError
        If the merged points still fail to increase strictly in ``q`` or a
        point has non-finite ``q``.
    """
    curve_points = [
        CurvePoint.from_exposure(p) if isinstance(p, ExposurePoint) else p
        for p in points
    ]
    if not all(math.isfinite(p.q) for p in curve_points):
        msg = "Cannot assemble points with non-finite Q"
        raise NonMonotonicError(msg)
    curve_points.sort(key=lambda p: (p.q, p.r, p.r_var))

    tolerance = Tolerance(q_tolerance, "q")
    buckets = group_by(curve_points, lambda p: tolerance.key(p.q))
    merged = _merge_close([_merge(b) for b in buckets.values()], tolerance)
    return ReflectivityCurve(tuple(merged))
