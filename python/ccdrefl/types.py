"""Types for the ccdrefl reduction core."""

from __future__ import annotations

from enum import Enum, Flag, auto
from pathlib import Path

type DataDirectory = str | Path
type FilePath = str | Path


class HeaderValue(Enum):
    """Enumeration of the header values used by the reduction."""

    SAMPLE_THETA = 1
    CCD_THETA = 2
    BEAMLINE_ENERGY = 3
    BEAM_CURRENT = 4
    EPU_POLARIZATION = 5
    HORIZONTAL_EXIT_SLIT_SIZE = 6
    HIGHER_ORDER_SUPPRESSOR = 7
    EXPOSURE = 8
    ATTENUATION = 9
    DATE = 10

    def unit(self) -> str:
        """Return the unit of the header value."""
        return _UNITS[self]

    def hdu(self) -> str:
        """Return the HDU card name of the header value."""
        return _CARDS[self]

    def display_name(self) -> str:
        """Return the name of the header value with its unit."""
        unit = self.unit()
        return f"{self.hdu()} {unit}" if unit else self.hdu()


_UNITS: dict[HeaderValue, str] = {
    HeaderValue.SAMPLE_THETA: "[deg]",
    HeaderValue.CCD_THETA: "[deg]",
    HeaderValue.BEAMLINE_ENERGY: "[eV]",
    HeaderValue.BEAM_CURRENT: "[mA]",
    HeaderValue.EPU_POLARIZATION: "[deg]",
    HeaderValue.HORIZONTAL_EXIT_SLIT_SIZE: "[um]",
    HeaderValue.HIGHER_ORDER_SUPPRESSOR: "[mm]",
    HeaderValue.EXPOSURE: "[s]",
    HeaderValue.ATTENUATION: "",
    HeaderValue.DATE: "",
}

_CARDS: dict[HeaderValue, str] = {
    HeaderValue.SAMPLE_THETA: "Sample Theta",
    HeaderValue.CCD_THETA: "CCD Theta",
    HeaderValue.BEAMLINE_ENERGY: "Beamline Energy",
    HeaderValue.BEAM_CURRENT: "Beam Current",
    HeaderValue.EPU_POLARIZATION: "EPU Polarization",
    HeaderValue.HORIZONTAL_EXIT_SLIT_SIZE: "Horizontal Exit Slit Size",
    HeaderValue.HIGHER_ORDER_SUPPRESSOR: "Higher Order Suppressor",
    HeaderValue.EXPOSURE: "EXPOSURE",
    HeaderValue.ATTENUATION: "Attenuation",
    HeaderValue.DATE: "DATE",
}


class ExperimentType(Enum):
    """Type of experiment a directory of frames was collected for."""

    XRR = "xrr"
    XRS = "xrs"
    OTHER = "other"

    @classmethod
    def from_str(cls, exp_type: str) -> ExperimentType:
        """Create an `ExperimentType` from a case-insensitive string."""
        try:
            return cls(exp_type.lower())
        except ValueError:
            msg = f"Invalid experiment type: {exp_type!r}"
            raise ValueError(msg) from None

    def get_keys(self) -> list[HeaderValue]:
        """Return the header values recorded for this experiment type."""
        if self is ExperimentType.XRR:
            return [
                HeaderValue.SAMPLE_THETA,
                HeaderValue.CCD_THETA,
                HeaderValue.BEAMLINE_ENERGY,
                HeaderValue.BEAM_CURRENT,
                HeaderValue.EPU_POLARIZATION,
                HeaderValue.HORIZONTAL_EXIT_SLIT_SIZE,
                HeaderValue.HIGHER_ORDER_SUPPRESSOR,
                HeaderValue.EXPOSURE,
            ]
        elif self is ExperimentType.XRS:
            return [HeaderValue.BEAMLINE_ENERGY]
        return []

    def names(self) -> list[str]:
        """Return the display names of the recorded header values."""
        return [key.display_name() for key in self.get_keys()]


class RoiKind(Enum):
    """Role of a region of interest on the detector."""

    SIGNAL = "signal"
    BACKGROUND = "background"


class PointFlag(Flag):
    """Degraded-precision conditions recorded on a reduced point."""

    NONE = 0
    ZERO_VARIANCE = auto()
    HIGH_SCATTER = auto()
    OUTLIERS_REJECTED = auto()
    DUPLICATE_RESOLVED = auto()
    MERGED = auto()

    def labels(self) -> list[str]:
        """Return the lower case names of the set flags."""
        return [f.name.lower() for f in PointFlag if f.value and f in self]

