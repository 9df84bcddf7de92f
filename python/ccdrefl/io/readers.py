"""
Module contains tools for reading FITS frames into frame records or DataFrames.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import numpy as np
import polars as pl
from astropy.io import fits

from ccdrefl import _config
from ccdrefl.core.frame import FrameRecord
from ccdrefl.exceptions import FitsReadError
from ccdrefl.refl.q import angle_to_q, energy_to_wavelength
from ccdrefl.types import DataDirectory, ExperimentType, FilePath, HeaderValue

if TYPE_CHECKING:
    import pandas as pd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeaderMap:
    """
    Header cards holding the fields a frame record needs.

    The defaults follow the BL 11.0.1.2 header layout. Set
    ``attenuation_required`` to fail on files without an attenuation card
    instead of assuming an unattenuated beam.
    """

    angle: str = HeaderValue.SAMPLE_THETA.hdu()
    exposure_time: str = HeaderValue.EXPOSURE.hdu()
    attenuation: str = HeaderValue.ATTENUATION.hdu()
    timestamp: str = HeaderValue.DATE.hdu()
    energy: str = HeaderValue.BEAMLINE_ENERGY.hdu()
    attenuation_required: bool = False

    def cards(self) -> set[str]:
        """Return the header cards consumed as frame fields."""
        return {
            self.angle,
            self.exposure_time,
            self.attenuation,
            self.timestamp,
            self.energy,
        }


def _check_file(file_path: Path) -> None:
    if not file_path.is_file():
        msg = f"{file_path} is not a valid file."
        raise FileNotFoundError(msg)
    if file_path.suffix != ".fits":
        msg = f"{file_path} is not a FITS file."
        raise ValueError(msg)


def _header_float(header: fits.Header, key: str, file_path: Path) -> float:
    if key not in header:
        msg = f"Missing header card {key!r}"
        raise FitsReadError(msg, path=file_path)
    try:
        return float(header[key])
    except (TypeError, ValueError):
        msg = f"Header card {key!r} is not numeric: {header[key]!r}"
        raise FitsReadError(msg, path=file_path) from None


def _header_timestamp(header: fits.Header, key: str, file_path: Path) -> datetime:
    if key not in header:
        msg = f"Missing header card {key!r}"
        raise FitsReadError(msg, path=file_path)
    try:
        return datetime.fromisoformat(str(header[key]).strip())
    except ValueError:
        msg = f"Header card {key!r} is not an ISO date: {header[key]!r}"
        raise FitsReadError(msg, path=file_path) from None


def _first_image(hdul: fits.HDUList, file_path: Path) -> np.ndarray:
    for hdu in hdul:
        if not isinstance(hdu, fits.PrimaryHDU | fits.ImageHDU):
            continue
        if hdu.data is not None and hdu.data.ndim == 2:
            return np.array(hdu.data, dtype=np.float64)
    msg = "Could not find a 2D image HDU"
    raise FitsReadError(msg, path=file_path)


def read_fits(
    file_path: FilePath,
    header_map: HeaderMap | None = None,
    *,
    experiment: ExperimentType | str = ExperimentType.XRR,
) -> FrameRecord:
    """
    Read a single FITS file into a frame record.

    Parameters
    ----------
    file_path : str | Path
        Path to the FITS file.
    header_map : HeaderMap | None, optional
        Header cards holding the frame fields, by default the BL 11.0.1.2 layout.
    experiment : ExperimentType | str, optional
        Experiment type whose additional header values are kept in
        ``FrameRecord.extra``, by default "xrr".

    Returns
    -------
    FrameRecord
        The frame, identified by its file name.

    Raises
    ------
    FileNotFoundError
        If the file_path does not point to a valid file.
    ValueError
        If the file is not a FITS file (does not end with .fits).
    FitsReadError
        If the file cannot be parsed or misses a required header card.

    Example
    -------
    >>> from ccdrefl.io import read_fits
    >>> frame = read_fits("path/to/file.fits")
    >>> frame.angle, frame.exposure_time
    """
    file_path = Path(file_path)
    _check_file(file_path)
    header_map = header_map or HeaderMap()
    if isinstance(experiment, str):
        experiment = ExperimentType.from_str(experiment)

    try:
        with fits.open(file_path) as hdul:
            header = hdul[0].header
            image = _first_image(hdul, file_path)
    except OSError as e:
        msg = f"Could not open FITS file: {e}"
        raise FitsReadError(msg, path=file_path) from e

    if header_map.attenuation in header:
        attenuation = _header_float(header, header_map.attenuation, file_path)
    elif header_map.attenuation_required:
        msg = f"Missing header card {header_map.attenuation!r}"
        raise FitsReadError(msg, path=file_path)
    else:
        attenuation = 1.0

    energy = None
    if header_map.energy in header:
        energy = _header_float(header, header_map.energy, file_path)

    consumed = {card.upper() for card in header_map.cards()}
    extra: dict[str, Any] = {
        key.display_name(): header[key.hdu()]
        for key in experiment.get_keys()
        if key.hdu().upper() not in consumed and key.hdu() in header
    }

    try:
        return FrameRecord(
            frame_id=file_path.name,
            image=image,
            angle=_header_float(header, header_map.angle, file_path),
            exposure_time=_header_float(header, header_map.exposure_time, file_path),
            attenuation=attenuation,
            timestamp=_header_timestamp(header, header_map.timestamp, file_path),
            energy=energy,
            extra=extra,
        )
    except ValueError as e:
        raise FitsReadError(str(e), path=file_path) from e


def read_experiment(
    file_path: DataDirectory,
    pattern: str | None = None,
    header_map: HeaderMap | None = None,
    *,
    experiment: ExperimentType | str = ExperimentType.XRR,
    max_workers: int | None = None,
) -> list[FrameRecord]:
    """
    Read every FITS file of a directory into frame records.

    Files are read in parallel; the frames are returned sorted by file name.

    Parameters
    ----------
    file_path : str | Path
        Directory holding the FITS files.
    pattern : str | None, optional
        Glob pattern selecting files in the directory, by default "*.fits".
    header_map : HeaderMap | None, optional
        Header cards holding the frame fields.
    experiment : ExperimentType | str, optional
        Experiment type whose additional header values are kept.
    max_workers : int | None, optional
        Number of reader threads, by default chosen by the executor.

    Returns
    -------
    list[FrameRecord]
        The frames of the directory.

    Raises
    ------
    FileNotFoundError
        If file_path is not a directory or no file matches.

    Example
    -------
    >>> from ccdrefl.io import read_experiment
    >>> frames = read_experiment("path/to/directory", pattern="*85684*")
    """
    directory = Path(file_path)
    fits_files = list_fits(directory, pattern)
    if not fits_files:
        msg = f"{directory} does not contain any FITS files."
        raise FileNotFoundError(msg)

    logger.info("Reading %d FITS files from %s", len(fits_files), directory)
    return read_files(
        fits_files, header_map, experiment=experiment, max_workers=max_workers
    )


def list_fits(directory: DataDirectory, pattern: str | None = None) -> list[Path]:
    """Return the FITS files of a directory matching a pattern, sorted by name."""
    directory = Path(directory)
    if not directory.is_dir():
        msg = f"{directory} is not a valid directory."
        raise FileNotFoundError(msg)
    return sorted(
        p for p in directory.glob(pattern or "*.fits") if p.suffix == ".fits"
    )


def read_files(
    files: Iterable[FilePath],
    header_map: HeaderMap | None = None,
    *,
    experiment: ExperimentType | str = ExperimentType.XRR,
    max_workers: int | None = None,
) -> list[FrameRecord]:
    """Read FITS files into frame records in parallel, keeping their order."""
    reader = partial(read_fits, header_map=header_map, experiment=experiment)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(reader, files))


def _frame_q(frame: FrameRecord) -> float | None:
    if frame.energy is None or not frame.energy > 0:
        return None
    if not 0 <= frame.angle < 90:
        return None
    return float(angle_to_q(frame.angle, energy_to_wavelength(frame.energy)))


def frames_to_polars(
    frames: Iterable[FrameRecord],
    experiment: ExperimentType | str = ExperimentType.XRR,
    *,
    engine: Literal["pandas", "polars"] = "polars",
) -> pd.DataFrame | pl.DataFrame:
    """
    Build a metadata table of frames, one row per frame, without the images.

    Columns are the file name, the display names of the experiment's header
    values, the attenuation, the acquisition date and the momentum transfer.
    Q is null for frames without a usable energy or outside ``[0, 90)`` deg.
    """
    if isinstance(experiment, str):
        experiment = ExperimentType.from_str(experiment)
    frames = list(frames)

    fields = {
        HeaderValue.SAMPLE_THETA: lambda f: f.angle,
        HeaderValue.EXPOSURE: lambda f: f.exposure_time,
        HeaderValue.BEAMLINE_ENERGY: lambda f: f.energy,
    }
    data: dict[str, list] = {"file_name": [f.frame_id for f in frames]}
    for key in experiment.get_keys():
        name = key.display_name()
        getter = fields.get(key, lambda f, name=name: f.extra.get(name))
        data[name] = [getter(f) for f in frames]
    data[HeaderValue.ATTENUATION.display_name()] = [f.attenuation for f in frames]
    data[HeaderValue.DATE.display_name()] = [f.timestamp for f in frames]
    data[_config.CURVE_COLUMNS["q"]] = [_frame_q(f) for f in frames]

    df = pl.DataFrame(data, strict=False)
    # header values absent from every frame
    df = df.with_columns(pl.col(pl.Null).cast(pl.Float64))
    if engine == "pandas":
        return df.to_pandas()
    return df
