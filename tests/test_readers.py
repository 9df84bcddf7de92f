"""Tests for reading FITS frames."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import numpy as np
import polars as pl
import pytest

from ccdrefl.exceptions import FitsReadError
from ccdrefl.io import HeaderMap, frames_to_polars, read_experiment, read_fits
from ccdrefl.refl.q import angle_to_q, energy_to_wavelength
from ccdrefl.types import ExperimentType, HeaderValue

IMAGE = np.arange(12, dtype=np.float64).reshape(3, 4)


def test_read_fits(tmp_path: Path, write_fits):
    path = write_fits(
        tmp_path / "sample-00001.fits",
        angle=2.5,
        exposure=0.5,
        attenuation=10.0,
        image=IMAGE,
        extra={"EPU Polarization": 100.0},
    )
    frame = read_fits(path)

    assert frame.frame_id == "sample-00001.fits"
    assert frame.angle == 2.5
    assert frame.exposure_time == 0.5
    assert frame.attenuation == 10.0
    assert frame.energy == 250.0
    assert frame.timestamp == datetime(2024, 5, 1, 12, 0, 0)
    np.testing.assert_array_equal(frame.image, IMAGE)
    assert frame.extra["EPU Polarization [deg]"] == 100.0
    assert "Sample Theta [deg]" not in frame.extra


def test_missing_attenuation_defaults_to_unattenuated(tmp_path: Path, write_fits):
    path = write_fits(tmp_path / "a.fits", image=IMAGE)

    assert read_fits(path).attenuation == 1.0
    with pytest.raises(FitsReadError, match="Attenuation"):
        read_fits(path, HeaderMap(attenuation_required=True))


def test_missing_required_card_raises(tmp_path: Path, write_fits):
    path = write_fits(tmp_path / "a.fits", angle=None, image=IMAGE)

    with pytest.raises(FitsReadError, match="Sample Theta") as exc:
        read_fits(path)
    assert exc.value.path == path


def test_custom_header_map(tmp_path: Path, write_fits):
    path = write_fits(tmp_path / "a.fits", image=IMAGE, extra={"CCD Theta": 5.0})
    frame = read_fits(path, HeaderMap(angle="CCD Theta"))
    assert frame.angle == 5.0


def test_invalid_frames_raise(tmp_path: Path, write_fits):
    no_image = write_fits(tmp_path / "empty.fits")
    with pytest.raises(FitsReadError, match="image"):
        read_fits(no_image)

    bad_exposure = write_fits(tmp_path / "zero.fits", exposure=0.0, image=IMAGE)
    with pytest.raises(FitsReadError, match="exposure"):
        read_fits(bad_exposure)


def test_read_fits_path_errors(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        read_fits(tmp_path / "missing.fits")

    text = tmp_path / "notes.txt"
    text.write_text("not a frame")
    with pytest.raises(ValueError):
        read_fits(text)


def test_read_experiment(tmp_path: Path, write_fits):
    for i, angle in enumerate([3.0, 1.0, 2.0]):
        write_fits(tmp_path / f"sample-{i:05d}.fits", angle=angle, image=IMAGE)
    write_fits(tmp_path / "other-00000.fits", angle=9.0, image=IMAGE)

    frames = read_experiment(tmp_path, max_workers=2)
    assert [f.frame_id for f in frames] == [
        "other-00000.fits",
        "sample-00000.fits",
        "sample-00001.fits",
        "sample-00002.fits",
    ]

    frames = read_experiment(tmp_path, pattern="sample*")
    assert [f.angle for f in frames] == [3.0, 1.0, 2.0]


def test_read_experiment_errors(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        read_experiment(tmp_path / "missing")
    with pytest.raises(FileNotFoundError):
        read_experiment(tmp_path)


def test_frames_to_polars(tmp_path: Path, write_fits):
    write_fits(tmp_path / "a.fits", image=IMAGE, extra={"EPU Polarization": 190.0})
    frames = read_experiment(tmp_path)

    df = frames_to_polars(frames)
    assert df.height == 1
    assert df["file_name"].to_list() == ["a.fits"]
    assert set(ExperimentType.XRR.names()) <= set(df.columns)
    assert df[HeaderValue.SAMPLE_THETA.display_name()].to_list() == [1.0]
    assert df[HeaderValue.EPU_POLARIZATION.display_name()].to_list() == [190.0]
    assert df[HeaderValue.BEAM_CURRENT.display_name()].to_list() == [None]
    assert "Attenuation" in df.columns
    assert "DATE" in df.columns

    xrs = frames_to_polars(frames, "xrs")
    assert xrs.columns == [
        "file_name",
        "Beamline Energy [eV]",
        "Attenuation",
        "DATE",
        "Q [Å⁻¹]",
    ]

    pdf = frames_to_polars(frames, engine="pandas")
    assert len(pdf) == 1


def test_frames_to_polars_q_column(tmp_path: Path, write_fits):
    write_fits(tmp_path / "a.fits", angle=10.0, image=IMAGE)
    write_fits(tmp_path / "b.fits", angle=10.0, energy=None, image=IMAGE)
    df = frames_to_polars(read_experiment(tmp_path))

    expected = angle_to_q(10.0, energy_to_wavelength(250.0))
    assert df["Q [Å⁻¹]"].to_list() == [pytest.approx(expected), None]
    assert df.schema["Q [Å⁻¹]"] == pl.Float64


def test_experiment_type():
    assert ExperimentType.from_str("XRR") is ExperimentType.XRR
    assert ExperimentType.from_str("other").get_keys() == []
    assert ExperimentType.XRS.names() == ["Beamline Energy [eV]"]
    with pytest.raises(ValueError):
        ExperimentType.from_str("saxs")
