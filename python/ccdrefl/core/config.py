"""Configuration of a reduction run."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from ccdrefl import _config
from ccdrefl.exceptions import ConfigError, DomainError
from ccdrefl.image import Roi
from ccdrefl.refl.aggregate import Normalization
from ccdrefl.refl.q import energy_to_wavelength
from ccdrefl.types import RoiKind


@dataclass(frozen=True)
class ReductionConfig:
    """
    Read-only configuration shared by every stage of a reduction run.

    Parameters
    ----------
    signal_roi : Roi
        Region containing the specular beam.
    background_roi : Roi
        Region used to estimate the background density.
    wavelength : float | None
        Beam wavelength in Angstrom. When None the wavelength is derived from
        the beamline energy recorded on the frames.
    angle_tolerance : float
        Grouping resolution for the sample angle in degrees.
    attenuation_tolerance : float
        Grouping resolution for the attenuation factor.
    overlap_tolerance : float
        Largest angle difference in degrees for two points to be considered the
        same point when stitching.
    outlier_threshold : float
        Number of robust standard deviations beyond which a repeated exposure
        is rejected.
    q_tolerance : float
        Resolution in inverse Angstrom under which curve points are merged.
    normalization : Normalization
        How rates are formed from the reduced counts.
    prefer_later : bool
        Keep the later acquired point when stitched points coincide.
    dezinger : bool
        Replace cosmic ray hot pixels by the local median before reduction.
    max_workers : int | None
        Worker count for the parallel stages, None for the executor default.
    """

    signal_roi: Roi
    background_roi: Roi
    wavelength: float | None = None
    angle_tolerance: float = _config.ANGLE_TOLERANCE
    attenuation_tolerance: float = _config.ATTENUATION_TOLERANCE
    overlap_tolerance: float = _config.OVERLAP_TOLERANCE
    outlier_threshold: float = _config.OUTLIER_THRESHOLD
    q_tolerance: float = _config.Q_TOLERANCE
    normalization: Normalization = field(default_factory=Normalization)
    prefer_later: bool = True
    dezinger: bool = False
    max_workers: int | None = None

    def __post_init__(self):
        if not isinstance(self.signal_roi, Roi) or not isinstance(
            self.background_roi, Roi
        ):
            msg = "signal_roi and background_roi must be Roi instances"
            raise ConfigError(msg)
        if self.signal_roi.kind is not RoiKind.SIGNAL:
            msg = "signal_roi must be tagged as a signal region"
            raise ConfigError(msg)
        if self.background_roi.kind is not RoiKind.BACKGROUND:
            msg = "background_roi must be tagged as a background region"
            raise ConfigError(msg)
        if self.wavelength is not None and not (
            math.isfinite(self.wavelength) and self.wavelength > 0
        ):
            msg = f"wavelength must be positive, got {self.wavelength}"
            raise ConfigError(msg)
        for name in (
            "angle_tolerance",
            "attenuation_tolerance",
            "overlap_tolerance",
            "outlier_threshold",
            "q_tolerance",
        ):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                msg = f"{name} must be positive, got {value}"
                raise ConfigError(msg)
        if self.normalization.exposure_offset < 0:
            msg = "normalization.exposure_offset cannot be negative"
            raise ConfigError(msg)
        if self.max_workers is not None and self.max_workers < 1:
            msg = f"max_workers must be at least 1, got {self.max_workers}"
            raise ConfigError(msg)

    # =====================/ Constructors /=====================

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> ReductionConfig:
        """
        Build a configuration from a plain mapping.

        ROIs are given as ``[row_start, row_stop, col_start, col_stop]``. An
        ``energy`` entry in eV may replace ``wavelength``.
        """
        config = dict(config)
        try:
            signal = Roi.signal(*config.pop("signal_roi"))
            background = Roi.background(*config.pop("background_roi"))
        except KeyError as e:
            msg = f"Missing required configuration key {e}"
            raise ConfigError(msg) from None
        except (TypeError, ValueError) as e:
            msg = f"ROIs must be given as four pixel bounds: {e}"
            raise ConfigError(msg) from None

        energy = config.pop("energy", None)
        if energy is not None:
            if config.get("wavelength") is not None:
                msg = "Specify either wavelength or energy, not both"
                raise ConfigError(msg)
            try:
                config["wavelength"] = energy_to_wavelength(float(energy))
            except DomainError as e:
                raise ConfigError(e.message) from None

        normalization = config.pop("normalization", None) or {}
        known = {f.name for f in fields(cls)}
        unknown = set(config) - known
        if unknown:
            msg = f"Unknown configuration keys: {sorted(unknown)}"
            raise ConfigError(msg)
        try:
            return cls(
                signal_roi=signal,
                background_roi=background,
                normalization=Normalization(**normalization),
                **config,
            )
        except TypeError as e:
            raise ConfigError(str(e)) from None

    @classmethod
    def from_yaml(cls, path: str | Path) -> ReductionConfig:
        """Parse a YAML configuration file."""
        path = Path(path)
        if not path.is_file():
            msg = f"{path} is not a valid file."
            raise FileNotFoundError(msg)
        with path.open("rb") as f:
            config = yaml.safe_load(f)
        if not isinstance(config, Mapping):
            msg = f"{path} does not contain a configuration mapping"
            raise ConfigError(msg)
        return cls.from_dict(config)

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as a plain mapping."""
        config = asdict(self)
        config["signal_roi"] = list(self.signal_roi.bounds)
        config["background_roi"] = list(self.background_roi.bounds)
        return config

    def with_wavelength(self, wavelength: float) -> ReductionConfig:
        """Return a copy of the configuration with the wavelength set."""
        return replace(self, wavelength=wavelength)
