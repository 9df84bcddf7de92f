"""Aggregation of repeated exposures at one angle and attenuation."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime

import numpy as np

from ccdrefl import _config
from ccdrefl.exceptions import EmptyGroupError
from ccdrefl.image import ROIResult
from ccdrefl.types import PointFlag
from ccdrefl.utils import err_prop_mult, robust_outliers, weighted_mean

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Normalization:
    """
    Conversion of reduced counts into a count rate.

    Parameters
    ----------
    exposure_offset : float
        Shutter offset in seconds added to every exposure time.
    deattenuate : bool
        Multiply the rate by the attenuation factor. When False the attenuation
        is left in the rate and is recovered by the stitching overlap ratio.
    """

    exposure_offset: float = 0.0
    deattenuate: bool = True

    def factor(self, exposure_time: float, attenuation: float) -> float:
        """Return the factor converting counts into a rate."""
        scale = attenuation if self.deattenuate else 1.0
        return scale / (exposure_time + self.exposure_offset)


@dataclass(frozen=True, slots=True)
class ExposurePoint:
    """
    Normalized intensity of one (angle, attenuation) exposure group.

    ``q`` is NaN until the point has been converted with `with_q`.
    """

    angle: float
    q: float
    intensity: float
    intensity_var: float
    attenuation: float
    n_frames: int
    timestamp: datetime
    flags: PointFlag = PointFlag.NONE

    def __post_init__(self):
        if not self.intensity_var >= 0:
            msg = f"intensity_var must be non-negative, got {self.intensity_var}"
            raise ValueError(msg)
        if self.n_frames < 1:
            msg = f"n_frames must be at least 1, got {self.n_frames}"
            raise ValueError(msg)

    @property
    def has_q(self) -> bool:
        """Whether the point has been converted to momentum transfer."""
        return not math.isnan(self.q)

    def with_q(self, q: float) -> ExposurePoint:
        """Return a copy of the point at the given momentum transfer."""
        return replace(self, q=float(q))

    def flagged(self, flag: PointFlag) -> ExposurePoint:
        """Return a copy of the point with an additional flag."""
        return replace(self, flags=self.flags | flag)

    def scaled(self, scale: float, scale_var: float) -> ExposurePoint:
        """Return a copy of the point multiplied by an uncertain scale factor."""
        intensity, var = err_prop_mult(
            self.intensity, self.intensity_var, scale, scale_var
        )
        return replace(self, intensity=float(intensity), intensity_var=float(var))


def aggregate(
    roi_results: Iterable[ROIResult],
    normalization: Normalization | None = None,
    outlier_threshold: float = _config.OUTLIER_THRESHOLD,
) -> ExposurePoint:
    """
    Combine the reduced frames of one exposure group into a single point.

    Parameters
    ----------
    roi_results : Iterable[ROIResult]
        Reduced frames sharing a nominal angle and attenuation. Forming the
        group is the caller's responsibility.
    normalization : Normalization | None, optional
        Conversion of counts into rates, by default `Normalization()`.
    outlier_threshold : float, optional
        Rates further than this many robust standard deviations from the group
        median are excluded, by default 3.

    Returns
    -------
    ExposurePoint
        The inverse-variance weighted mean rate of the group, flagged with any
        degraded-precision condition met along the way.

    Raises
    ------
    EmptyGroupError
        If the group is empty.
    """
    if normalization is None:
        normalization = Normalization()
    results = sorted(roi_results, key=lambda r: (r.timestamp, r.frame_id))
    if not results:
        raise EmptyGroupError()

    factors = np.array(
        [normalization.factor(r.exposure_time, r.attenuation) for r in results]
    )
    rates = np.array([r.signal for r in results]) * factors
    rate_vars = np.array([r.signal_var for r in results]) * factors**2

    flags = PointFlag.NONE
    keep = ~robust_outliers(rates, outlier_threshold)
    if not keep.any():
        keep[:] = True
        flags |= PointFlag.HIGH_SCATTER
    elif not keep.all():
        flags |= PointFlag.OUTLIERS_REJECTED
        rejected = [r.frame_id for r, k in zip(results, keep, strict=True) if not k]
        logger.debug("Rejected outlier frames %s", rejected)

    intensity, intensity_var, degraded = weighted_mean(rates[keep], rate_vars[keep])
    if degraded:
        flags |= PointFlag.ZERO_VARIANCE

    kept = [r for r, k in zip(results, keep, strict=True) if k]
    return ExposurePoint(
        angle=float(np.mean([r.angle for r in kept])),
        q=math.nan,
        intensity=intensity,
        intensity_var=intensity_var,
        attenuation=float(np.mean([r.attenuation for r in kept])),
        n_frames=len(kept),
        timestamp=max(r.timestamp for r in kept),
        flags=flags,
    )
