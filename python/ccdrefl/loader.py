"""Main module."""

from __future__ import annotations

import logging
from functools import cached_property
from pathlib import Path

import polars as pl

from ccdrefl import _config
from ccdrefl.core.config import ReductionConfig
from ccdrefl.core.frame import FrameRecord
from ccdrefl.io.readers import (
    HeaderMap,
    frames_to_polars,
    list_fits,
    read_experiment,
    read_files,
)
from ccdrefl.refl.curve import ReflectivityCurve
from ccdrefl.refl.reduction import ReductionResult, reduce_frames
from ccdrefl.types import DataDirectory, ExperimentType, FilePath, HeaderValue

logger = logging.getLogger(__name__)


def _flat_flags(df: pl.DataFrame) -> pl.DataFrame:
    # csv cannot hold list columns
    return df.with_columns(pl.col("flags").list.join(","))


class CcdReflLoader:
    """
    Class to reduce a directory of CCD reflectivity frames.

    Frames are read on construction; the reduction runs on first access of
    :attr:`result` and is cached.

    Parameters
    ----------
    directory : Path
        Path to the directory containing the experiment data.
    config : ReductionConfig
        Configuration of the reduction.
    pattern : str | None, optional
        Glob pattern selecting the frames in the directory, by default None.
    header_map : HeaderMap | None, optional
        Header cards holding the frame fields, by default the BL 11.0.1.2 layout.
    experiment : ExperimentType | str, optional
        Experiment type whose header values are tabulated in :attr:`meta`.
    """

    def __init__(
        self,
        directory: DataDirectory,
        config: ReductionConfig,
        pattern: str | None = None,
        header_map: HeaderMap | None = None,
        experiment: ExperimentType | str = ExperimentType.XRR,
    ):
        self.path: Path = Path(directory)
        self.config = config
        self.pattern = pattern
        self.header_map = header_map
        self.experiment = experiment
        self.frames: list[FrameRecord] = read_experiment(
            self.path,
            pattern=pattern,
            header_map=header_map,
            experiment=experiment,
            max_workers=config.max_workers,
        )
        self.meta: pl.DataFrame = frames_to_polars(self.frames, experiment)
        self.shape = len(self.frames)

    def update(self) -> list[FrameRecord]:
        """
        Read frames added to the directory since the last read.

        New frames are appended to :attr:`frames` and :attr:`meta`, and the
        cached reduction is discarded so the next access of :attr:`result`
        includes them.

        Returns
        -------
        list[FrameRecord]
            The newly read frames, empty if the directory has not changed.

        Raises
        ------
        FileNotFoundError
            If a loaded frame is no longer in the directory.
        """
        files = list_fits(self.path, self.pattern)
        loaded = set(self.files)
        missing = loaded - {p.name for p in files}
        if missing:
            msg = f"Loaded frames are missing from {self.path}: {sorted(missing)}"
            raise FileNotFoundError(msg)

        new_files = [p for p in files if p.name not in loaded]
        if not new_files:
            return []
        logger.info("Reading %d new FITS files from %s", len(new_files), self.path)
        new_frames = read_files(
            new_files,
            self.header_map,
            experiment=self.experiment,
            max_workers=self.config.max_workers,
        )
        self.frames.extend(new_frames)
        self.meta = frames_to_polars(self.frames, self.experiment)
        self.shape = len(self.frames)
        self.__dict__.pop("result", None)
        return new_frames

    @property
    def name(self) -> str:
        """Name of the run, taken from the directory."""
        return self.path.resolve().name

    @property
    def files(self) -> list[str]:
        """Files getter."""
        return [frame.frame_id for frame in self.frames]

    @property
    def energy(self) -> list[float]:
        """Distinct beamline energies of the frames."""
        col = HeaderValue.BEAMLINE_ENERGY.display_name()
        if col not in self.meta.columns:
            return []
        return sorted(self.meta[col].drop_nulls().unique().to_list())

    @cached_property
    def result(self) -> ReductionResult:
        """Result of the reduction run."""
        logger.info("Reducing %s", self.path)
        return reduce_frames(self.frames, self.config)

    @property
    def curve(self) -> ReflectivityCurve:
        """Reduced reflectivity curve."""
        return self.result.curve

    @property
    def refl(self) -> pl.DataFrame:
        """Reflectivity curve as a DataFrame."""
        return self.curve.to_polars()

    @property
    def scale_factors(self) -> pl.DataFrame:
        """Scale factor of every stitched segment."""
        return self.result.scale_factors_frame()

    def __str__(self):
        """Return string representation."""
        s = []
        s.append(f"Run - {self.name}")
        s.append(f"Number of frames - {len(self.files)}")
        if "result" in self.__dict__:
            s.append(f"Number of points - {len(self.curve)}")
        return "\n".join(s)

    def __call__(self):
        """Return reflectivity dataframe."""
        return self.refl

    def __len__(self):
        """Return the number of files."""
        return self.shape

    def write_curve(self, file_path: FilePath) -> Path:
        """
        Save the reflectivity curve to a single file.

        The format follows the suffix, ``.parquet`` or ``.csv``.
        """
        file_path = Path(file_path)
        if file_path.suffix == ".parquet":
            self.refl.write_parquet(file_path)
        elif file_path.suffix == ".csv":
            _flat_flags(self.refl).write_csv(file_path)
        else:
            msg = f"Unsupported output format: {file_path.suffix!r}"
            raise ValueError(msg)
        logger.info("Wrote curve to %s", file_path)
        return file_path

    def write_csv(self, directory: DataDirectory | None = None) -> list[Path]:
        """
        Save the reflectivity curve and scale factors as .csv files.

        Parameters
        ----------
        directory : str | Path | None, optional
            Output directory, by default the ``refl`` folder of the run
            directory. Created if it does not exist.

        Returns
        -------
        list[Path]
            The written files.
        """
        out = Path(directory) if directory is not None else self.path / "refl"
        out.mkdir(parents=True, exist_ok=True)

        curve = out / f"{self.name}_refl.csv"
        scales = out / f"{self.name}_scales.csv"
        _flat_flags(self.refl).write_csv(curve)
        self.scale_factors.write_csv(scales)
        return [curve, scales]

    def write_parquet(self, directory: DataDirectory | None = None) -> list[Path]:
        """
        Save the curve, stitched points and frame metadata as .parquet files.

        Parameters
        ----------
        directory : str | Path | None, optional
            Output directory, by default the ``refl`` folder of the run
            directory. Created if it does not exist.

        Returns
        -------
        list[Path]
            The written files.
        """
        out = Path(directory) if directory is not None else self.path / "refl"
        out.mkdir(parents=True, exist_ok=True)

        names = _config.FILE_NAMES
        written = [
            out / f"{self.name}{names['curve']}",
            out / f"{self.name}{names['points']}",
            out / f"{self.name}{names['meta']}",
        ]
        self.refl.write_parquet(written[0])
        self.result.points_frame().write_parquet(written[1])
        self.meta.write_parquet(written[2])
        return written
