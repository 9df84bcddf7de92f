"""
I/O Operations for CCD Reflectivity Data.

This module provides tools for reading detector frames written as FITS files, as
recorded at soft X-ray reflectivity beamlines such as ALS 11.0.1.2. Each file holds
one CCD image and a header with the motor positions and acquisition metadata.

Input/Output operations currently supported:
===========================================

FITS Files
----------
- :func:`~ccdrefl.io.read_fits`: Read a single FITS file into a frame record.
- :func:`~ccdrefl.io.read_experiment`: Read all FITS files from a directory or based
        on a pattern.
- :func:`~ccdrefl.io.read_files`: Read a list of FITS files in parallel.
- :func:`~ccdrefl.io.frames_to_polars`: Tabulate frame metadata in a DataFrame.

See the specific function documentation for more details on usage and parameters.
"""

from ccdrefl.io.readers import (
    HeaderMap,
    frames_to_polars,
    list_fits,
    read_experiment,
    read_files,
    read_fits,
)

__all__ = [
    "HeaderMap",
    "frames_to_polars",
    "list_fits",
    "read_experiment",
    "read_files",
    "read_fits",
]
