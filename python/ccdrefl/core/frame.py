"""Immutable detector frame records."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any

import numpy as np


@dataclass(frozen=True, slots=True)
class FrameRecord:
    """
    A single CCD frame and the acquisition metadata needed for reduction.

    Parameters
    ----------
    frame_id : str
        Identifier of the frame, usually the file name it was read from.
    image : np.ndarray
        2D array of detector counts. A read-only float64 copy is stored.
    angle : float
        Sample theta in degrees.
    exposure_time : float
        Exposure time in seconds.
    attenuation : float
        Multiplicative beam attenuation factor, at least 1.
    timestamp : datetime
        Acquisition time of the frame.
    energy : float | None, optional
        Beamline energy in eV, when recorded.
    extra : Mapping[str, Any], optional
        Additional header values, stored read-only.
    """

    frame_id: str
    image: np.ndarray = field(repr=False)
    angle: float
    exposure_time: float
    attenuation: float = 1.0
    timestamp: datetime = field(default_factory=lambda: datetime.min)
    energy: float | None = None
    extra: Mapping[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))
        image = np.array(self.image, dtype=np.float64, order="C", copy=True)
        if image.ndim != 2:
            msg = f"Frame {self.frame_id} image must be 2D, got {image.ndim}D."
            raise ValueError(msg)
        image.flags.writeable = False
        object.__setattr__(self, "image", image)

        if not math.isfinite(self.angle):
            msg = f"Frame {self.frame_id} has a non-finite angle."
            raise ValueError(msg)
        if not self.exposure_time > 0:
            msg = f"Frame {self.frame_id} exposure time must be positive."
            raise ValueError(msg)
        if not self.attenuation >= 1:
            msg = f"Frame {self.frame_id} attenuation must be at least 1."
            raise ValueError(msg)

    @property
    def shape(self) -> tuple[int, int]:
        """Shape of the detector image."""
        return self.image.shape

    @property
    def sort_key(self) -> tuple[float, float, datetime, str]:
        """Key giving frames a discovery-order independent ordering."""
        return (self.angle, self.attenuation, self.timestamp, self.frame_id)
