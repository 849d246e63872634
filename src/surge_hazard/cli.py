"""CLI interface using Typer."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import numpy as np
import typer
from rich.console import Console
from rich.table import Table

from surge_hazard import __version__
from surge_hazard.config import SurgeHazardConfig
from surge_hazard.decay import fit_pressure_decay
from surge_hazard.fetchers.erddap import coarse_source
from surge_hazard.pipeline import run_surge_pipeline
from surge_hazard.storage import export_decay_json, load_hazard, load_tracks
from surge_hazard.tracks import ElevationLandAnnotator

app = typer.Typer(
    name="surge-hazard",
    help="Storm surge hazard sets from tropical cyclone wind hazard sets.",
    add_completion=False,
)
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"surge-hazard {__version__}")
        raise typer.Exit()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[logging.StreamHandler()],
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Surge Hazard - storm surge from tropical cyclone wind footprints."""


@app.command()
def surge(
    wind_hazard: Annotated[
        Path, typer.Argument(help="Tropical cyclone wind hazard set (.npz).")
    ],
    output: Annotated[
        str,
        typer.Argument(help="Name of the surge hazard set (NO_SAVE to skip saving)."),
    ],
    source: Annotated[
        str | None,
        typer.Option("--source", "-s", help="Elevation source: coarse (ETOPO) or fine (SRTM)."),
    ] = None,
    slr: Annotated[
        float,
        typer.Option("--slr", help="Sea level rise increment in m."),
    ] = 0.0,
    decay_buffer: Annotated[
        float,
        typer.Option("--decay-buffer", help="Coastal buffer before inland decay, in km."),
    ] = 3.0,
    elevation_save_file: Annotated[
        Path | None,
        typer.Option("--elevation-save-file", help="Reusable elevation file."),
    ] = None,
    parallel: Annotated[
        bool,
        typer.Option("--parallel", help="Run the fine strategy on a process pool."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Generate a storm surge hazard set from a wind hazard set."""
    _setup_logging(verbose)
    config = SurgeHazardConfig(
        slr_increment_m=slr,
        decay_buffer_km=decay_buffer,
        parallel=parallel,
    )

    try:
        hazard = load_hazard(wind_hazard)
        hazard, elevation_file = run_surge_pipeline(
            hazard,
            output,
            config,
            elevation_source=source,
            elevation_save_file=elevation_save_file,
        )
    except Exception as exc:
        console.print(f"[red]Surge generation failed:[/red] {exc}")
        raise typer.Exit(code=1) from None

    max_surge = float(hazard.intensity.max()) if hazard.intensity.nnz else 0.0
    console.print()
    table = Table(title="Storm Surge Hazard Set")
    table.add_column("Property", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Events", str(hazard.n_events))
    table.add_row("Centroids", str(hazard.n_centroids))
    table.add_row("Max surge (m)", f"{max_surge:.2f}")
    table.add_row("Matrix density", f"{hazard.matrix_density:.4f}")
    table.add_row("Elevation file", str(elevation_file) if elevation_file else "-")
    console.print(table)
    console.print(f"\n{hazard.surgefield_comment}")
    console.print(f"Hazard set: [bold]{hazard.filename}[/bold]")


@app.command()
def decay(
    tracks_file: Annotated[
        Path, typer.Argument(help="Historical tracks CSV, one row per track point.")
    ],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the parameters as JSON."),
    ] = None,
    stride: Annotated[
        int | None,
        typer.Option("--stride", help="Use every n-th track only."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Fit central pressure decay over land per storm category."""
    _setup_logging(verbose)
    config = SurgeHazardConfig()

    try:
        tracks = load_tracks(tracks_file)
        annotator = None
        if any(t.on_land is None for t in tracks):
            annotator = ElevationLandAnnotator(coarse_source(config), config.coarse_padding_deg)
        table = fit_pressure_decay(tracks, config, land_annotator=annotator, stride=stride)
    except Exception as exc:
        console.print(f"[red]Decay fit failed:[/red] {exc}")
        raise typer.Exit(code=1) from None

    result = Table(title="Central Pressure Decay over Land")
    result.add_column("Category", style="bold")
    result.add_column("A", justify="right")
    result.add_column("S", justify="right")
    result.add_column("Samples", justify="right")
    result.add_column("Borrowed from", style="dim")
    for row in table.to_frame().itertuples(index=False):
        borrowed = row.borrowed_from or "-"
        result.add_row(
            row.category,
            f"{row.decay_rate:.4f}" if np.isfinite(row.decay_rate) else "-",
            f"{row.pressure_ratio:.4f}" if np.isfinite(row.pressure_ratio) else "-",
            str(row.samples),
            borrowed,
        )
    console.print(result)

    if output is not None:
        export_decay_json(table, output)
        console.print(f"\nJSON written to [bold]{output}[/bold]")
