"""Shared fixtures building synthetic detector frames and FITS runs."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta
from pathlib import Path

import numpy as np
import pytest
from astropy.io import fits

from ccdrefl.core.config import ReductionConfig
from ccdrefl.core.frame import FrameRecord
from ccdrefl.image import Roi

SHAPE = (10, 30)
T0 = datetime(2024, 5, 1, 12, 0, 0)
WAVELENGTH = 40.0  # [A]

# Net counts of the attenuated segment, raw signal sum minus 200 background
ATTENUATED_SIGNAL = {1.0: 280.0, 2.0: 250.0, 3.0: 230.0, 4.0: 215.0, 5.0: 205.0}


def frame_image(signal_sum: float, background_level: float = 2.0) -> np.ndarray:
    """
    Image whose signal region (rows 0-9, cols 0-9) sums to ``signal_sum``.

    Both the signal and background (cols 20-29) regions hold ``background_level``
    counts per pixel; the excess signal sits on a single pixel.
    """
    image = np.zeros(SHAPE)
    image[:, 0:10] = background_level
    image[:, 20:30] = background_level
    image[0, 0] += signal_sum - 100 * background_level
    return image


@pytest.fixture
def signal_roi() -> Roi:
    return Roi.signal(0, 10, 0, 10)


@pytest.fixture
def background_roi() -> Roi:
    return Roi.background(0, 10, 20, 30)


@pytest.fixture
def config(signal_roi: Roi, background_roi: Roi) -> ReductionConfig:
    return ReductionConfig(signal_roi, background_roi, wavelength=WAVELENGTH)


@pytest.fixture
def make_frame():
    """Return a factory of frames with increasing timestamps."""
    counter = itertools.count()

    def _make(
        angle: float,
        signal_sum: float = 1000.0,
        *,
        attenuation: float = 1.0,
        exposure_time: float = 1.0,
        background_level: float = 2.0,
        energy: float | None = None,
        frame_id: str | None = None,
    ) -> FrameRecord:
        n = next(counter)
        return FrameRecord(
            frame_id=frame_id or f"frame-{n:05d}",
            image=frame_image(signal_sum, background_level),
            angle=angle,
            exposure_time=exposure_time,
            attenuation=attenuation,
            timestamp=T0 + timedelta(seconds=n),
            energy=energy,
        )

    return _make


@pytest.fixture
def scenario_frames(make_frame) -> list[FrameRecord]:
    """
    Three unattenuated frames at 1 deg followed by an attenuated scan 1-5 deg.

    Each unattenuated frame nets 800 counts in 1 s. The attenuated frame at
    1 deg nets 80 counts behind an attenuation of 10.
    """
    frames = [make_frame(1.0, 1000.0) for _ in range(3)]
    frames += [
        make_frame(angle, signal, attenuation=10.0)
        for angle, signal in ATTENUATED_SIGNAL.items()
    ]
    return frames


@pytest.fixture
def write_fits():
    """Return a writer of single frame FITS files in the BL 11.0.1.2 layout."""

    def _write(
        path: Path,
        *,
        angle: float | None = 1.0,
        exposure: float = 1.0,
        attenuation: float | None = None,
        energy: float | None = 250.0,
        date: str = "2024-05-01T12:00:00",
        image: np.ndarray | None = None,
        extra: dict[str, float] | None = None,
    ) -> Path:
        header = fits.Header()
        if angle is not None:
            header["HIERARCH Sample Theta"] = angle
        header["EXPOSURE"] = exposure
        header["DATE"] = date
        if energy is not None:
            header["HIERARCH Beamline Energy"] = energy
        if attenuation is not None:
            header["HIERARCH Attenuation"] = attenuation
        for key, value in (extra or {}).items():
            header[f"HIERARCH {key}"] = value

        hdus = [fits.PrimaryHDU(header=header)]
        if image is not None:
            hdus.append(fits.ImageHDU(np.array(image, dtype=np.float64)))
        fits.HDUList(hdus).writeto(path)
        return path

    return _write


@pytest.fixture
def scenario_run(tmp_path: Path, scenario_frames: list[FrameRecord], write_fits):
    """Directory holding the scenario frames as FITS files."""
    run = tmp_path / "run"
    run.mkdir()
    for i, frame in enumerate(scenario_frames):
        write_fits(
            run / f"sample-{i:05d}.fits",
            angle=frame.angle,
            exposure=frame.exposure_time,
            attenuation=frame.attenuation,
            date=frame.timestamp.isoformat(),
            image=frame.image,
        )
    return run
