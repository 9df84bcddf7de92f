"""
Reduction stages operating on already reduced frames.

- :mod:`~ccdrefl.refl.grouping`: tolerance keys shared by grouping and merging.
- :mod:`~ccdrefl.refl.aggregate`: combination of repeated exposures.
- :mod:`~ccdrefl.refl.q`: angle to momentum transfer conversion.
- :mod:`~ccdrefl.refl.stitch`: stitching of attenuation segments.
- :mod:`~ccdrefl.refl.curve`: assembly of the final curve.

The end to end pipeline lives in :mod:`ccdrefl.refl.reduction`.
"""

from ccdrefl.refl.aggregate import ExposurePoint, Normalization, aggregate
from ccdrefl.refl.curve import CurvePoint, ReflectivityCurve, assemble
from ccdrefl.refl.grouping import GroupKey, Tolerance
from ccdrefl.refl.q import angle_to_q, energy_to_wavelength, q_to_angle
from ccdrefl.refl.stitch import ScaleFactor, ScanSegment, StitchResult, stitch

__all__ = [
    "CurvePoint",
    "ExposurePoint",
    "GroupKey",
    "Normalization",
    "ReflectivityCurve",
    "ScaleFactor",
    "ScanSegment",
    "StitchResult",
    "Tolerance",
    "aggregate",
    "angle_to_q",
    "assemble",
    "energy_to_wavelength",
    "q_to_angle",
    "stitch",
]
