"""Conversion between incident angle and momentum transfer."""

from __future__ import annotations

import numpy as np
import numpy.typing as npt

from ccdrefl import _config
from ccdrefl.exceptions import DomainError

type Angle = float | npt.NDArray[np.float64]


def _check_wavelength(wavelength: float) -> None:
    if not (np.isfinite(wavelength) and wavelength > 0):
        msg = f"Wavelength must be positive and finite, got {wavelength}"
        raise DomainError(msg)


def angle_to_q(angle_degrees: Angle, wavelength: float) -> Angle:
    """
    Convert an incident angle to momentum transfer.

    Parameters
    ----------
    angle_degrees : float | np.ndarray
        Incident angle in degrees, on ``[0, 90)``.
    wavelength : float
        Beam wavelength in Angstrom.

    Returns
    -------
    float | np.ndarray
        ``4 pi / wavelength * sin(angle)`` in inverse Angstrom.

    Raises
    ------
    DomainError
        If any angle is outside ``[0, 90)`` or the wavelength is not positive.
    """
    _check_wavelength(wavelength)
    angle = np.asarray(angle_degrees, dtype=np.float64)
    if not np.all((angle >= 0.0) & (angle < 90.0)):
        msg = f"Angle outside of [0, 90) degrees: {angle_degrees}"
        raise DomainError(msg)
    q = 4 * np.pi / wavelength * np.sin(np.deg2rad(angle))
    if np.ndim(q) == 0:
        return float(q)
    return q


def q_to_angle(q: Angle, wavelength: float) -> Angle:
    """Convert momentum transfer in inverse Angstrom back to degrees."""
    _check_wavelength(wavelength)
    q = np.asarray(q, dtype=np.float64)
    s = q * wavelength / (4 * np.pi)
    if not np.all((s >= 0.0) & (s < 1.0)):
        msg = f"Momentum transfer outside of the reachable range: {q}"
        raise DomainError(msg)
    angle = np.rad2deg(np.arcsin(s))
    if np.ndim(angle) == 0:
        return float(angle)
    return angle


def energy_to_wavelength(energy: float) -> float:
    """
    Convert a photon energy in eV to a wavelength in Angstrom.

    ``lambda = h c / E``, with h in eV s.
    """
    if not (np.isfinite(energy) and energy > 0):
        msg = f"Energy must be positive and finite, got {energy}"
        raise DomainError(msg)
    return _config.PLANCK * _config.SOL / energy * _config.METER_TO_ANGSTROM
