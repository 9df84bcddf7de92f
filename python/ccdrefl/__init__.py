"""
CCD X-ray reflectivity reduction package.

This package reduces stacks of CCD frames recorded during a specular X-ray
reflectivity scan into a reflectivity curve R(Q). It was written for the soft
X-ray reflectometer at the Advanced Light Source (ALS) Beamline 11.0.1.2, where
the reflected beam is imaged on an area detector and the direct beam is
attenuated at low angle. Frames are reduced to background subtracted rates,
repeated exposures are combined, attenuated scan segments are stitched onto a
common scale and the curve is assembled with propagated variances.
"""

__author__ = """Harlan Heilman"""
__email__ = "Harlan.Heilman@wsu.edu"

from ccdrefl.core.config import ReductionConfig
from ccdrefl.core.frame import FrameRecord
from ccdrefl.image import Roi, reduce
from ccdrefl.io import read_experiment, read_fits
from ccdrefl.loader import CcdReflLoader
from ccdrefl.refl.aggregate import Normalization
from ccdrefl.refl.curve import ReflectivityCurve
from ccdrefl.refl.reduction import ReductionResult, reduce_frames
from ccdrefl.utils import err_prop_div, err_prop_mult, weighted_mean

__all__ = [
    "CcdReflLoader",
    "FrameRecord",
    "Normalization",
    "ReductionConfig",
    "ReductionResult",
    "ReflectivityCurve",
    "Roi",
    "err_prop_div",
    "err_prop_mult",
    "read_experiment",
    "read_fits",
    "reduce",
    "reduce_frames",
    "weighted_mean",
]
