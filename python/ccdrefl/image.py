"""Region of interest reduction of detector frames."""

from __future__ import annotations

import operator
from dataclasses import dataclass
from datetime import datetime

import numpy as np
from numba import njit
from scipy.ndimage import median_filter

from ccdrefl.core.frame import FrameRecord
from ccdrefl.exceptions import EmptyRegionError, GeometryError
from ccdrefl.types import RoiKind


@dataclass(frozen=True, slots=True)
class Roi:
    """
    Axis aligned rectangular pixel region, half open on both axes.

    Parameters
    ----------
    row_start, row_stop : int
        First row and one past the last row of the region.
    col_start, col_stop : int
        First column and one past the last column of the region.
    kind : RoiKind
        Whether the region holds the signal or the background estimate.
    """

    row_start: int
    row_stop: int
    col_start: int
    col_stop: int
    kind: RoiKind = RoiKind.SIGNAL

    def __post_init__(self):
        for name in ("row_start", "row_stop", "col_start", "col_stop"):
            object.__setattr__(self, name, operator.index(getattr(self, name)))
        object.__setattr__(self, "kind", RoiKind(self.kind))

    @classmethod
    def signal(cls, row_start, row_stop, col_start, col_stop) -> Roi:
        """Create a signal region."""
        return cls(row_start, row_stop, col_start, col_stop, RoiKind.SIGNAL)

    @classmethod
    def background(cls, row_start, row_stop, col_start, col_stop) -> Roi:
        """Create a background region."""
        return cls(row_start, row_stop, col_start, col_stop, RoiKind.BACKGROUND)

    @property
    def bounds(self) -> tuple[int, int, int, int]:
        """Return ``(row_start, row_stop, col_start, col_stop)``."""
        return (self.row_start, self.row_stop, self.col_start, self.col_stop)

    @property
    def n_pixels(self) -> int:
        """Number of pixels in the region."""
        rows = max(0, self.row_stop - self.row_start)
        cols = max(0, self.col_stop - self.col_start)
        return rows * cols

    def inside(self, shape: tuple[int, int]) -> bool:
        """Check that the region lies within an image of the given shape."""
        return (
            0 <= self.row_start
            and self.row_stop <= shape[0]
            and 0 <= self.col_start
            and self.col_stop <= shape[1]
        )

    def overlaps(self, other: Roi) -> bool:
        """Check if two regions share at least one pixel."""
        return (
            self.row_start < other.row_stop
            and other.row_start < self.row_stop
            and self.col_start < other.col_stop
            and other.col_start < self.col_stop
        )


@dataclass(frozen=True, slots=True)
class ROIResult:
    """Background subtracted counts of one frame and their Poisson variances."""

    signal: float
    signal_var: float
    background: float
    background_var: float
    frame_id: str
    angle: float
    exposure_time: float
    attenuation: float
    timestamp: datetime


# =====================/ Numba Functions /=====================
@njit(cache=True, nogil=True)
def region_sum(image, row_start, row_stop, col_start, col_stop):
    """Sum the counts of a rectangular region in a fixed order."""
    total = 0.0
    for i in range(row_start, row_stop):
        for j in range(col_start, col_stop):
            total += image[i, j]
    return total


def _validate(frame: FrameRecord, signal_roi: Roi, background_roi: Roi) -> None:
    if signal_roi.kind is not RoiKind.SIGNAL:
        msg = "signal_roi is not tagged as a signal region, were the ROIs swapped?"
        raise GeometryError(msg, frame.frame_id)
    if background_roi.kind is not RoiKind.BACKGROUND:
        msg = "background_roi is not tagged as a background region"
        raise GeometryError(msg, frame.frame_id)
    for roi in (signal_roi, background_roi):
        if roi.n_pixels == 0:
            msg = f"{roi.kind.value} region {roi.bounds} contains no pixels"
            raise EmptyRegionError(msg, frame.frame_id)
        if not roi.inside(frame.shape):
            msg = f"{roi.kind.value} region {roi.bounds} outside image {frame.shape}"
            raise GeometryError(msg, frame.frame_id)
    if signal_roi.overlaps(background_roi):
        msg = f"signal region {signal_roi.bounds} overlaps background region"
        raise GeometryError(msg, frame.frame_id)


def reduce(frame: FrameRecord, signal_roi: Roi, background_roi: Roi) -> ROIResult:
    """
    Reduce a frame to background subtracted signal counts.

    Parameters
    ----------
    frame : FrameRecord
        The frame to reduce.
    signal_roi : Roi
        Region containing the reflected beam.
    background_roi : Roi
        Region used to estimate the background count density.

    Returns
    -------
    ROIResult
        Net signal, scaled background and their variances.

    Raises
    ------
    EmptyRegionError
        If either region has no pixels.
    GeometryError
        If a region is outside the frame, the regions overlap, or their tags do
        not match their roles.

    Notes
    -----
    The background density (mean counts per pixel) is scaled to the signal
    area, ``k = N_signal / N_background``. Counts follow Poisson statistics so
    the variance of a sum of counts is the sum itself, giving
    ``background_var = k**2 * B`` and ``signal_var = S + k**2 * B``.
    """
    _validate(frame, signal_roi, background_roi)

    signal_sum = region_sum(frame.image, *signal_roi.bounds)
    background_sum = region_sum(frame.image, *background_roi.bounds)
    scale = signal_roi.n_pixels / background_roi.n_pixels

    background = scale * background_sum
    background_var = scale**2 * max(background_sum, 0.0)
    signal_var = max(signal_sum, 0.0) + background_var
    return ROIResult(
        signal=float(signal_sum - background),
        signal_var=float(signal_var),
        background=float(background),
        background_var=float(background_var),
        frame_id=frame.frame_id,
        angle=frame.angle,
        exposure_time=frame.exposure_time,
        attenuation=frame.attenuation,
        timestamp=frame.timestamp,
    )


def dezinger_image(image: np.ndarray, threshold=10, size=3) -> np.ndarray:
    """
    Replace cosmic ray hot pixels with the local median.

    Pixels larger than ``threshold`` times the median of their ``size x size``
    neighbourhood are replaced by that median.
    """
    image = np.clip(np.asarray(image, dtype=np.float64), 0, None)
    med_result = median_filter(image, size=size)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = image / np.abs(med_result)
    return np.where(ratio > threshold, med_result, image)
