from typing import Final

from scipy import constants

# Physical constants
PLANCK: Final[float] = constants.h / constants.e  # [eV s]
SOL: Final[float] = constants.c  # [m/s]
METER_TO_ANGSTROM: Final[float] = 1e10

# Reduction defaults
ANGLE_TOLERANCE: Final[float] = 1e-3  # [deg]
ATTENUATION_TOLERANCE: Final[float] = 1e-3
OVERLAP_TOLERANCE: Final[float] = 5e-3  # [deg]
Q_TOLERANCE: Final[float] = 1e-6  # [A^-1]
OUTLIER_THRESHOLD: Final[float] = 3.0

# Column names of exported tables
CURVE_COLUMNS: Final[dict[str, str]] = {
    "q": "Q [Å⁻¹]",
    "r": "R",
    "r_var": "R Var",
    "dr": "dR",
    "flags": "flags",
}

POINT_COLUMNS: Final[dict[str, str]] = {
    "angle": "Sample Theta [deg]",
    "q": "Q [Å⁻¹]",
    "intensity": "I [counts/s]",
    "intensity_var": "I Var",
    "attenuation": "Attenuation",
    "n_frames": "Frames",
    "timestamp": "DATE",
    "flags": "flags",
}

SCALE_COLUMNS: Final[dict[str, str]] = {
    "segment_id": "Segment",
    "attenuation": "Attenuation",
    "scale": "Scale",
    "scale_var": "Scale Var",
    "n_overlap": "Overlap",
    "explicit": "Explicit",
}

FILE_NAMES: Final[dict[str, str]] = {
    "curve": "_refl.parquet",
    "points": "_points.parquet",
    "meta": "_meta.parquet",
}
