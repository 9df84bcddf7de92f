"""
Command line interface for ccdrefl. The interface reduces a directory of
CCD frames into a reflectivity curve.

The interface is intended to be used with the following unix style command
system:

ccdrefl [command] [options] [arguments]

===============================================
Example usage:

1) Reduce a run:
```ccdrefl reduce path/to/run --config reduction.yaml```

command:
reduce - Read every FITS frame in the directory, reduce and stitch them and
write the curve. A table of the segment scale factors is printed.

options:
--config or -c: YAML reduction configuration (required)
--out or -o: Output file, .parquet or .csv Default - <run>/refl/<run>_refl.parquet
--workers or -w: Number of worker threads Default - executor default
--verbose or -v: Log each reduction stage
"""

__app__name__ = "ccdrefl"
__version__ = "0.1.0"

(
    SUCCESS,
    REDUCTION_ERROR,
) = range(2)
