import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from ccdrefl.cli import REDUCTION_ERROR, __app__name__, __version__
from ccdrefl.core.config import ReductionConfig
from ccdrefl.exceptions import ReductionError
from ccdrefl.loader import CcdReflLoader

app = typer.Typer(add_completion=True)
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{__app__name__} version {__version__}")
        raise typer.Exit()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", "-V", callback=_version_callback, is_eager=True
    ),
) -> None:
    """
    A CLI for the reduction of CCD reflectometry data.
    """
    return


def scale_table(loader: CcdReflLoader) -> Table:
    """Tabulate the scale factors of a reduced run."""
    table = Table(title=f"Scale factors - {loader.name}")
    table.add_column("Segment")
    table.add_column("Attenuation", justify="right")
    table.add_column("Scale", justify="right")
    table.add_column("dScale", justify="right")
    table.add_column("Overlap", justify="right")
    for sf in loader.result.scale_factors:
        table.add_row(
            sf.segment_id,
            f"{sf.attenuation:g}",
            f"{sf.scale:.6g}",
            f"{sf.scale_var**0.5:.3g}",
            "explicit" if sf.explicit else str(sf.n_overlap),
        )
    return table


@app.command()
def reduce(
    directory: Path = typer.Argument(
        ..., exists=True, file_okay=False, dir_okay=True, help="Run directory."
    ),
    config: Path = typer.Option(
        ..., "--config", "-c", exists=True, dir_okay=False, help="YAML config."
    ),
    out: Optional[Path] = typer.Option(
        None, "--out", "-o", help="Output file, .parquet or .csv."
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", min=1, help="Number of worker threads."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Reduce a directory of FITS frames into a reflectivity curve."""
    _setup_logging(verbose)
    try:
        reduction_config = ReductionConfig.from_yaml(config)
        if workers is not None:
            reduction_config = replace(reduction_config, max_workers=workers)
        loader = CcdReflLoader(directory, reduction_config)
        if out is None:
            out = loader.path / "refl" / f"{loader.name}_refl.parquet"
            out.parent.mkdir(parents=True, exist_ok=True)
        loader.write_curve(out)
    except (ReductionError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(REDUCTION_ERROR) from None

    console.print(scale_table(loader))
    console.print(f"Wrote {len(loader.curve)} points to [green]{out}[/green]")
