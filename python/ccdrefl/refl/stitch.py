"""
Stitching of scan segments collected at different attenuation settings.

Each segment carries an unknown multiplicative scale relative to absolute
reflectivity. Segments are placed left to right in angle; every new segment is
scaled to agree with the curve assembled so far in the region where they
overlap. The first segment defines the absolute scale. Scale errors are carried
forward but a later segment never rescales an earlier one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import partial, reduce
from typing import NamedTuple

import numpy as np

from ccdrefl.exceptions import NoOverlapError
from ccdrefl.refl.aggregate import ExposurePoint
from ccdrefl.refl.grouping import Tolerance, group_by
from ccdrefl.types import PointFlag
from ccdrefl.utils import err_prop_div, weighted_mean

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScanSegment:
    """Points sharing one attenuation setting, strictly increasing in angle."""

    segment_id: str
    attenuation: float
    points: tuple[ExposurePoint, ...] = field(repr=False)

    def __post_init__(self):
        points = tuple(self.points)
        if not points:
            msg = f"Segment {self.segment_id} has no points"
            raise ValueError(msg)
        angles = np.array([p.angle for p in points])
        if np.any(np.diff(angles) <= 0):
            msg = f"Segment {self.segment_id} angles are not strictly increasing"
            raise ValueError(msg)
        object.__setattr__(self, "points", points)

    @classmethod
    def from_points(
        cls, segment_id: str, points: Iterable[ExposurePoint]
    ) -> ScanSegment:
        """Build a segment from unordered points of one attenuation setting."""
        points = sorted(points, key=lambda p: p.angle)
        attenuation = float(np.mean([p.attenuation for p in points])) if points else 1.0
        return cls(segment_id, attenuation, tuple(points))

    @property
    def angles(self) -> np.ndarray:
        """Angles of the segment points."""
        return np.array([p.angle for p in self.points])

    @property
    def sort_key(self) -> tuple[float, float, str]:
        """Order in which segments are stitched."""
        return (self.points[0].angle, self.attenuation, self.segment_id)


@dataclass(frozen=True, slots=True)
class ScaleFactor:
    """Scale applied to one segment while stitching."""

    segment_id: str
    attenuation: float
    scale: float
    scale_var: float
    n_overlap: int
    explicit: bool = False
    flags: PointFlag = PointFlag.NONE


class StitchResult(NamedTuple):
    """Stitched points in increasing angle and the scale of each segment."""

    points: tuple[ExposurePoint, ...]
    scale_factors: tuple[ScaleFactor, ...]


class _Assembled(NamedTuple):
    """Accumulator of the stitching fold."""

    points: tuple[ExposurePoint, ...]
    scale_factors: tuple[ScaleFactor, ...]
    last_segment: str


def segments_from_points(
    points: Iterable[ExposurePoint], attenuation_tolerance: Tolerance
) -> list[ScanSegment]:
    """
    Partition exposure points into one segment per attenuation setting.

    Segments are named ``att=<attenuation>`` with six significant digits, or
    the full float representation when that would repeat an earlier name.
    """
    groups = group_by(points, lambda p: attenuation_tolerance.key(p.attenuation))
    segments = []
    seen: set[str] = set()
    for group in groups.values():
        attenuation = float(np.mean([p.attenuation for p in group]))
        segment_id = f"att={attenuation:g}"
        if segment_id in seen:
            segment_id = f"att={attenuation!r}"
        if segment_id in seen:
            msg = f"Attenuation settings too close to name apart: {attenuation!r}"
            raise ValueError(msg)
        seen.add(segment_id)
        segments.append(ScanSegment.from_points(segment_id, group))
    return segments


def nearest_assembled(
    assembled: np.ndarray, segment: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Return the index of and distance to the nearest assembled angle."""
    idx = np.searchsorted(assembled, segment)
    left = np.clip(idx - 1, 0, assembled.size - 1)
    right = np.clip(idx, 0, assembled.size - 1)
    d_left = np.abs(segment - assembled[left])
    d_right = np.abs(assembled[right] - segment)
    return np.where(d_right < d_left, right, left), np.minimum(d_left, d_right)


def overlap_pairs(
    assembled: np.ndarray, segment: np.ndarray, tolerance: float
) -> list[tuple[int, int]]:
    """
    Match segment angles to assembled angles within a tolerance.

    Parameters
    ----------
    assembled : np.ndarray
        Sorted angles of the assembled curve.
    segment : np.ndarray
        Sorted angles of the incoming segment.
    tolerance : float
        Largest angle difference of a matched pair.

    Returns
    -------
    list[tuple[int, int]]
        One to one ``(assembled_index, segment_index)`` pairs, nearest pairs
        taking precedence, ordered by segment index.
    """
    if assembled.size == 0 or segment.size == 0:
        return []
    nearest, distance = nearest_assembled(assembled, segment)

    candidates = sorted(
        (distance[j], j, int(nearest[j]))
        for j in range(segment.size)
        if distance[j] <= tolerance
    )
    used_assembled: set[int] = set()
    used_segment: set[int] = set()
    pairs = []
    for _, j, i in candidates:
        if i in used_assembled or j in used_segment:
            continue
        used_assembled.add(i)
        used_segment.add(j)
        pairs.append((i, j))
    return sorted(pairs, key=lambda pair: pair[1])


def overlap_scale(
    assembled: Sequence[ExposurePoint],
    segment: Sequence[ExposurePoint],
    pairs: Sequence[tuple[int, int]],
) -> tuple[float, float, PointFlag] | None:
    """
    Return the scale reconciling a segment with the assembled curve.

    The scale is the inverse-variance weighted mean of the ratios
    ``assembled / segment`` over the overlapping pairs. Pairs with a
    non-positive intensity cannot form a ratio and are skipped; None is
    returned when no pair is usable.
    """
    if not pairs:
        return None
    a = np.array([assembled[i].intensity for i, _ in pairs])
    a_var = np.array([assembled[i].intensity_var for i, _ in pairs])
    s = np.array([segment[j].intensity for _, j in pairs])
    s_var = np.array([segment[j].intensity_var for _, j in pairs])
    usable = (a > 0) & (s > 0)
    if not usable.any():
        return None
    ratio, ratio_var = err_prop_div(a[usable], a_var[usable], s[usable], s_var[usable])
    scale, scale_var, degraded = weighted_mean(ratio, ratio_var)
    return scale, scale_var, PointFlag.ZERO_VARIANCE if degraded else PointFlag.NONE


def _stitch_segment(
    acc: _Assembled,
    segment: ScanSegment,
    *,
    angle_tolerance: float,
    prefer_later: bool,
    explicit_scales: Mapping[str, tuple[float, float]],
) -> _Assembled:
    assembled = acc.points
    assembled_angles = np.array([p.angle for p in assembled])
    pairs = overlap_pairs(assembled_angles, segment.angles, angle_tolerance)

    if segment.segment_id in explicit_scales:
        scale, scale_var = explicit_scales[segment.segment_id]
        factor = ScaleFactor(
            segment.segment_id,
            segment.attenuation,
            float(scale),
            float(scale_var),
            len(pairs),
            explicit=True,
        )
    else:
        found = overlap_scale(assembled, segment.points, pairs)
        if found is None:
            raise NoOverlapError(prior=acc.last_segment, current=segment.segment_id)
        scale, scale_var, flags = found
        factor = ScaleFactor(
            segment.segment_id,
            segment.attenuation,
            scale,
            scale_var,
            len(pairs),
            flags=flags,
        )
    logger.debug(
        "Segment %s scaled by %.6g +/- %.3g over %d points",
        segment.segment_id,
        factor.scale,
        np.sqrt(factor.scale_var),
        factor.n_overlap,
    )

    scaled = [p.scaled(factor.scale, factor.scale_var) for p in segment.points]
    points = list(assembled)
    resolve = list(pairs)
    paired = {j for _, j in pairs}
    if assembled:
        # a point left out of the one to one pairing still duplicates its
        # nearest curve point when it is within tolerance of it
        nearest, distance = nearest_assembled(assembled_angles, segment.angles)
        resolve += [
            (int(nearest[j]), j)
            for j in range(len(scaled))
            if j not in paired and distance[j] <= angle_tolerance
        ]
    matched = set()
    for i, j in resolve:
        matched.add(j)
        incoming = scaled[j]
        if prefer_later and incoming.timestamp >= points[i].timestamp:
            points[i] = incoming.flagged(PointFlag.DUPLICATE_RESOLVED)
        else:
            points[i] = points[i].flagged(PointFlag.DUPLICATE_RESOLVED)
    points.extend(p for j, p in enumerate(scaled) if j not in matched)
    points.sort(key=lambda p: (p.angle, p.timestamp))
    return _Assembled(
        tuple(points), (*acc.scale_factors, factor), segment.segment_id
    )


def stitch(
    segments: Iterable[ScanSegment],
    angle_tolerance: float,
    *,
    prefer_later: bool = True,
    explicit_scales: Mapping[str, tuple[float, float]] | None = None,
) -> StitchResult:
    """
    Stitch scan segments into one consistently scaled sequence of points.

    Parameters
    ----------
    segments : Iterable[ScanSegment]
        Segments in any order; they are stitched in increasing angle.
    angle_tolerance : float
        Largest angle difference in degrees for two points to overlap.
    prefer_later : bool, optional
        Keep the later acquired of two overlapping points, by default True.
        When False the point already on the curve is kept.
    explicit_scales : Mapping[str, tuple[float, float]] | None, optional
        ``(scale, scale_var)`` by segment id, used instead of the overlap
        ratio. Required for segments that do not overlap the curve.

    Returns
    -------
    StitchResult
        Scaled points in increasing angle and one `ScaleFactor` per segment.

    Raises
    ------
    NoOverlapError
        If a segment has no usable overlap with the curve assembled before it
        and no explicit scale was given for it.
    """
    ordered = sorted(segments, key=lambda s: s.sort_key)
    if not ordered:
        return StitchResult((), ())

    first = ordered[0]
    initial = _Assembled(
        first.points,
        (ScaleFactor(first.segment_id, first.attenuation, 1.0, 0.0, 0),),
        first.segment_id,
    )
    step = partial(
        _stitch_segment,
        angle_tolerance=angle_tolerance,
        prefer_later=prefer_later,
        explicit_scales=explicit_scales or {},
    )
    result = reduce(step, ordered[1:], initial)
    return StitchResult(result.points, result.scale_factors)
