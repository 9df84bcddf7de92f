"""
End to end reduction of detector frames into a reflectivity curve.

Per-frame ROI reduction and per-group aggregation fan out over a thread pool
and are joined before the next stage; stitching runs sequentially.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Callable, Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from functools import partial

import numpy as np
import polars as pl

from ccdrefl import _config
from ccdrefl.core.config import ReductionConfig
from ccdrefl.core.frame import FrameRecord
from ccdrefl.exceptions import ConfigError, EmptyGroupError, ReductionWarning
from ccdrefl.image import ROIResult, dezinger_image, reduce
from ccdrefl.refl.aggregate import ExposurePoint, aggregate
from ccdrefl.refl.curve import ReflectivityCurve, assemble
from ccdrefl.refl.grouping import Tolerance, exposure_key, group_by
from ccdrefl.refl.q import angle_to_q, energy_to_wavelength
from ccdrefl.refl.stitch import ScaleFactor, segments_from_points, stitch
from ccdrefl.types import PointFlag

logger = logging.getLogger(__name__)

ENERGY_RESOLUTION = 1  # Decimal places [eV]
DEGRADED = (
    PointFlag.ZERO_VARIANCE | PointFlag.HIGH_SCATTER | PointFlag.OUTLIERS_REJECTED
)


@dataclass(frozen=True)
class ReductionResult:
    """
    Outputs of a reduction run.

    ``config`` is the configuration of the run with the resolved wavelength
    filled in, so it reproduces the run without the frame energies.
    """

    curve: ReflectivityCurve
    points: tuple[ExposurePoint, ...]
    scale_factors: tuple[ScaleFactor, ...]
    wavelength: float
    config: ReductionConfig

    @property
    def flagged(self) -> tuple[ExposurePoint, ...]:
        """Stitched points carrying a degraded-precision flag."""
        return tuple(p for p in self.points if p.flags & DEGRADED)

    def points_frame(self) -> pl.DataFrame:
        """Return the stitched exposure points as a polars DataFrame."""
        c = _config.POINT_COLUMNS
        return pl.DataFrame(
            {
                c["angle"]: [p.angle for p in self.points],
                c["q"]: [p.q for p in self.points],
                c["intensity"]: [p.intensity for p in self.points],
                c["intensity_var"]: [p.intensity_var for p in self.points],
                c["attenuation"]: [p.attenuation for p in self.points],
                c["n_frames"]: [p.n_frames for p in self.points],
                c["timestamp"]: [p.timestamp for p in self.points],
                c["flags"]: [p.flags.labels() for p in self.points],
            },
            schema={
                c["angle"]: pl.Float64,
                c["q"]: pl.Float64,
                c["intensity"]: pl.Float64,
                c["intensity_var"]: pl.Float64,
                c["attenuation"]: pl.Float64,
                c["n_frames"]: pl.UInt32,
                c["timestamp"]: pl.Datetime,
                c["flags"]: pl.List(pl.String),
            },
        )

    def scale_factors_frame(self) -> pl.DataFrame:
        """Return the scale factor of every segment as a polars DataFrame."""
        c = _config.SCALE_COLUMNS
        return pl.DataFrame(
            {
                c["segment_id"]: [s.segment_id for s in self.scale_factors],
                c["attenuation"]: [s.attenuation for s in self.scale_factors],
                c["scale"]: [s.scale for s in self.scale_factors],
                c["scale_var"]: [s.scale_var for s in self.scale_factors],
                c["n_overlap"]: [s.n_overlap for s in self.scale_factors],
                c["explicit"]: [s.explicit for s in self.scale_factors],
            },
            schema={
                c["segment_id"]: pl.String,
                c["attenuation"]: pl.Float64,
                c["scale"]: pl.Float64,
                c["scale_var"]: pl.Float64,
                c["n_overlap"]: pl.UInt32,
                c["explicit"]: pl.Boolean,
            },
        )


def _fan_out[T, R](
    fn: Callable[[T], R], items: Sequence[T], max_workers: int | None
) -> list[R]:
    """Run ``fn`` over items on a thread pool, results in input order."""
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(fn, item) for item in items]
        try:
            return [future.result() for future in futures]
        except BaseException:
            pool.shutdown(wait=True, cancel_futures=True)
            raise


def _reduce_frame(frame: FrameRecord, config: ReductionConfig) -> ROIResult:
    if config.dezinger:
        frame = replace(frame, image=dezinger_image(frame.image))
    return reduce(frame, config.signal_roi, config.background_roi)


def resolve_wavelength(frames: Sequence[FrameRecord], config: ReductionConfig) -> float:
    """
    Return the wavelength of a run in Angstrom.

    The configured wavelength wins; otherwise every frame must record the same
    beamline energy (to `ENERGY_RESOLUTION` decimal places).
    """
    if config.wavelength is not None:
        return config.wavelength
    energies = [f.energy for f in frames]
    if any(e is None for e in energies):
        msg = "No wavelength configured and not every frame records an energy"
        raise ConfigError(msg)
    distinct = {round(e, ENERGY_RESOLUTION) for e in energies}
    if len(distinct) != 1:
        msg = f"Frames were collected at several energies: {sorted(distinct)}"
        raise ConfigError(msg)
    return energy_to_wavelength(float(np.mean(energies)))


def reduce_frames(
    frames: Iterable[FrameRecord],
    config: ReductionConfig,
    *,
    max_workers: int | None = None,
    explicit_scales: Mapping[str, tuple[float, float]] | None = None,
) -> ReductionResult:
    """
    Reduce a set of frames into a stitched reflectivity curve.

    Parameters
    ----------
    frames : Iterable[FrameRecord]
        Frames in any order; the result does not depend on it.
    config : ReductionConfig
        Read-only configuration of the run.
    max_workers : int | None, optional
        Overrides ``config.max_workers`` for the parallel stages.
    explicit_scales : Mapping[str, tuple[float, float]] | None, optional
        ``(scale, scale_var)`` by segment id for segments that cannot be scaled
        from an overlap.

    Returns
    -------
    ReductionResult
        The curve together with the intermediate points and scale factors.

    Raises
    ------
    ReductionError
        Any geometry, grouping, domain, overlap or monotonicity error aborts
        the whole run.
    """
    frames = sorted(frames, key=lambda f: f.sort_key)
    if not frames:
        msg = "No frames to reduce"
        raise EmptyGroupError(msg)
    ids = [f.frame_id for f in frames]
    if len(set(ids)) != len(ids):
        msg = "Frame identifiers must be unique"
        raise ValueError(msg)

    workers = max_workers or config.max_workers
    wavelength = resolve_wavelength(frames, config)
    logger.info("Reducing %d frames at %.4f A", len(frames), wavelength)

    results = _fan_out(partial(_reduce_frame, config=config), frames, workers)

    angle_tol = Tolerance(config.angle_tolerance, "angle")
    attenuation_tol = Tolerance(config.attenuation_tolerance, "attenuation")
    groups = group_by(
        results,
        lambda r: exposure_key(r.angle, r.attenuation, angle_tol, attenuation_tol),
    )
    logger.debug("Formed %d exposure groups", len(groups))
    points = _fan_out(
        partial(
            aggregate,
            normalization=config.normalization,
            outlier_threshold=config.outlier_threshold,
        ),
        list(groups.values()),
        workers,
    )
    points = [p.with_q(angle_to_q(p.angle, wavelength)) for p in points]

    segments = segments_from_points(points, attenuation_tol)
    logger.debug("Stitching %d segments", len(segments))
    stitched = stitch(
        segments,
        config.overlap_tolerance,
        prefer_later=config.prefer_later,
        explicit_scales=explicit_scales,
    )
    curve = assemble(stitched.points, config.q_tolerance)

    result = ReductionResult(
        curve=curve,
        points=stitched.points,
        scale_factors=stitched.scale_factors,
        wavelength=wavelength,
        config=config.with_wavelength(wavelength),
    )
    if result.flagged:
        warnings.warn(
            f"{len(result.flagged)} of {len(result.points)} points were reduced "
            "with degraded precision, see ReductionResult.flagged",
            ReductionWarning,
            stacklevel=2,
        )
    logger.info("Reduced curve has %d points", len(curve))
    return result
