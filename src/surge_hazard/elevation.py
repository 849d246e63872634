"""Attach ground elevation to hazard centroids.

Elevation comes, in order of precedence, from the hazard itself, from
caller-supplied values keyed by centroid id, or from one of two grid
sources: a coarse global grid (ETOPO1, interpolated at every centroid) or a
fine local grid (SRTM, partitioned onto the centroids so that the surge
engine can average over the samples of each centroid).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from surge_hazard.cache import (
    elevation_save_path,
    load_coarse_grid,
    load_fine_samples,
    save_coarse_grid,
    save_fine_samples,
)
from surge_hazard.config import ElevationSourceName, SurgeHazardConfig
from surge_hazard.fetchers.erddap import ElevationSource, coarse_source, fine_source
from surge_hazard.geo import (
    bilinear_interpolate,
    clamp_to_globe,
    grid_covers,
    is_degenerate,
    mapping_radius,
    padded_bounds,
)
from surge_hazard.models import ElevationData, ElevationGrid, FineElevationSamples, HazardSet
from surge_hazard.regrid import Regridder, regrid_to_centroids

logger = logging.getLogger(__name__)

COARSE_TAG = "ETOPO"
FINE_TAG = "SRTM"

_SOURCE_ALIASES: dict[str, ElevationSourceName] = {
    "coarse": "coarse",
    "etopo": "coarse",
    "fine": "fine",
    "srtm": "fine",
}


class ElevationUnavailableError(RuntimeError):
    """No elevation could be obtained for the hazard centroids."""


@dataclass
class AttachedElevation:
    """How the elevation now on the hazard was obtained."""

    origin: str  # "attached", "supplied", "coarse" or "fine"
    description: str
    save_file: Path | None = None
    fine_samples: FineElevationSamples | None = None


def resolve_source(name: str | None) -> ElevationSourceName | None:
    """Normalise a source selector; ``ETOPO``/``SRTM`` are accepted as aliases."""
    if name is None:
        return None
    try:
        return _SOURCE_ALIASES[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown elevation source {name!r}, expected one of {sorted(_SOURCE_ALIASES)}"
        ) from None


def ids_match(hazard: HazardSet, data: ElevationData) -> bool:
    """True if *data* is keyed by exactly the hazard's centroid ids, in order."""
    ids = np.asarray(data.centroid_id)
    return ids.shape == hazard.centroid_id.shape and bool(np.all(ids == hazard.centroid_id))


def attach_coarse(
    hazard: HazardSet,
    config: SurgeHazardConfig,
    source: ElevationSource,
    save_file: Path | None,
) -> ElevationGrid:
    """Interpolate the coarse grid at every centroid.

    Sets ``elevation_m`` (floored at sea level) and ``on_land``. A grid
    read from *save_file* is only reused if it spans all centroids. Raises
    :class:`ElevationUnavailableError` if the grid cannot be fetched.
    """
    grid = load_coarse_grid(save_file) if save_file is not None else None
    if grid is not None:
        extent = clamp_to_globe(padded_bounds(hazard.lon, hazard.lat, 0.0))
        if not grid_covers(grid, extent):
            logger.warning("%s does not cover the hazard centroids; rebuilding", save_file)
            grid = None
    if grid is None:
        bounds = clamp_to_globe(padded_bounds(hazard.lon, hazard.lat, config.coarse_padding_deg))
        if is_degenerate(bounds):
            raise ElevationUnavailableError(f"Degenerate elevation window {bounds}")
        grid = source.fetch(bounds)
        if grid is None or grid.is_empty:
            raise ElevationUnavailableError(f"No coarse elevation returned by {source!r}")
        if save_file is not None:
            save_coarse_grid(save_file, grid)

    elevation = bilinear_interpolate(grid, hazard.lon, hazard.lat)
    missing = np.isnan(elevation)
    if missing.any():
        logger.warning(
            "%d centroids outside the coarse elevation grid, treated as sea level",
            int(missing.sum()),
        )
        elevation[missing] = 0.0

    hazard.on_land = elevation >= 0
    hazard.elevation_m = np.maximum(elevation, 0.0)
    return grid


def build_fine_samples(
    hazard: HazardSet,
    config: SurgeHazardConfig,
    source: ElevationSource,
    regridder: Regridder = regrid_to_centroids,
) -> FineElevationSamples:
    """Fetch the fine grid and partition its samples onto the centroids."""
    bounds = clamp_to_globe(padded_bounds(hazard.lon, hazard.lat, config.fine_padding_deg))
    grid = source.fetch(bounds)
    if grid is None or grid.is_empty:
        raise ElevationUnavailableError(f"No fine elevation returned by {source!r}")

    lon, lat = np.meshgrid(grid.lon, grid.lat)
    lon, lat, height = lon.ravel(), lat.ravel(), np.asarray(grid.height, dtype=np.float64).ravel()

    # Reduce to the padded window, the provider may deliver whole tiles
    keep = (
        (lon > bounds.lon_min) & (lon < bounds.lon_max)
        & (lat > bounds.lat_min) & (lat < bounds.lat_max)
        & np.isfinite(height)
    )
    lon, lat, height = lon[keep], lat[keep], height[keep]
    if height.size == 0:
        raise ElevationUnavailableError("Fine elevation grid has no samples inside the window")

    radius = mapping_radius(hazard.lon, hazard.lat, fallback=config.fine_padding_deg)
    logger.info("Mapping %d fine samples onto %d centroids", height.size, hazard.n_centroids)
    t0 = time.perf_counter()
    elevation_m, centroid_index = regridder(lon, lat, height, hazard.lon, hazard.lat, radius)
    map_time = time.perf_counter() - t0

    return FineElevationSamples(
        lon=lon,
        lat=lat,
        height=height,
        centroid_index=np.asarray(centroid_index, dtype=np.int64),
        elevation_m=np.asarray(elevation_m, dtype=np.float64),
        source=grid.source,
        map_time_s=map_time,
    )


def attach_fine(
    hazard: HazardSet,
    config: SurgeHazardConfig,
    source: ElevationSource,
    save_file: Path | None,
    regridder: Regridder = regrid_to_centroids,
) -> FineElevationSamples:
    """Attach per-centroid elevation from the fine grid, reusing *save_file*."""
    samples = load_fine_samples(save_file) if save_file is not None else None
    if samples is not None and samples.elevation_m.size != hazard.n_centroids:
        logger.warning(
            "%s holds elevation for %d centroids, hazard has %d; rebuilding",
            save_file, samples.elevation_m.size, hazard.n_centroids,
        )
        samples = None
    if samples is None:
        samples = build_fine_samples(hazard, config, source, regridder)
        if save_file is not None:
            save_fine_samples(save_file, samples)

    hazard.elevation_m = samples.elevation_m.copy()
    return samples


def _save_file(
    explicit: str | Path | None, hazard_set_file: str | Path, tag: str, config: SurgeHazardConfig,
) -> Path | None:
    # Without a hazard set name there is nothing to key a reusable file on
    if explicit:
        return Path(explicit)
    if not str(hazard_set_file):
        return None
    return elevation_save_path(hazard_set_file, tag, config.results_dir)


def attach_elevation(
    hazard: HazardSet,
    config: SurgeHazardConfig,
    hazard_set_file: str | Path = "",
    elevation_source: str | None = None,
    elevation_data: ElevationData | None = None,
    elevation_save_file: str | Path | None = None,
    coarse: ElevationSource | None = None,
    fine: ElevationSource | None = None,
    regridder: Regridder = regrid_to_centroids,
) -> AttachedElevation:
    """Make sure *hazard* carries ``elevation_m`` and report where it came from.

    Naming a source explicitly discards any elevation already on the hazard.
    Without one, existing elevation is kept, then *elevation_data* is used if
    its ids match the centroids, and finally the coarse grid is fetched.
    Grids are only read from or written to disk when *hazard_set_file* or
    *elevation_save_file* names them.
    """
    selected = resolve_source(elevation_source)
    if selected is not None:
        hazard.elevation_m = None  # force re-calculation

    if hazard.elevation_m is None and elevation_data is not None:
        if ids_match(hazard, elevation_data):
            if selected is not None:
                logger.info("Supplied elevation data takes precedence over the %s source", selected)
            hazard.elevation_m = np.asarray(elevation_data.elevation_m, dtype=np.float64)
            hazard.validate()
            return AttachedElevation(
                "supplied", "created based on TC using proxy surge height and elevation_m"
            )
        logger.warning(
            "Supplied elevation ids do not match the hazard centroids, using %s instead",
            selected or "coarse",
        )

    if hazard.elevation_m is not None:
        return AttachedElevation(
            "attached", "created based on TC using proxy surge height and elevation_m"
        )

    if selected == "fine":
        save_file = _save_file(elevation_save_file, hazard_set_file, FINE_TAG, config)
        samples = attach_fine(hazard, config, fine or fine_source(config), save_file, regridder)
        return AttachedElevation(
            "fine",
            "created based on TC using proxy surge height and SRTM "
            f"{samples.source} (mapping took {samples.map_time_s:f} sec.)",
            save_file=save_file,
            fine_samples=samples,
        )

    save_file = _save_file(elevation_save_file, hazard_set_file, COARSE_TAG, config)
    grid = attach_coarse(hazard, config, coarse or coarse_source(config), save_file)
    return AttachedElevation(
        "coarse",
        f"created based on TC using proxy surge height and ETOPO bathymetry {grid.source}",
        save_file=save_file,
    )
