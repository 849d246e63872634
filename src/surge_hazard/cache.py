"""Reusable elevation files, keyed by the hazard set they were built for."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from surge_hazard.models import ElevationGrid, FineElevationSamples

logger = logging.getLogger(__name__)

NO_SAVE_MARKERS = ("NO_SAVE", "NOSAVE")


def is_no_save(name: str | Path | None) -> bool:
    """True if *name* carries one of the sentinels that disable saving."""
    if name is None:
        return False
    return any(marker in str(name) for marker in NO_SAVE_MARKERS)


def elevation_save_path(hazard_set_file: str | Path, tag: str, results_dir: Path) -> Path:
    """Default elevation file for a hazard set, e.g. ``_ETOPO_TCNA_today.npz``.

    ``_prob`` and ``_hist`` are stripped from the hazard set name so that
    probabilistic and historic sets over the same centroids share one file.
    """
    stem = Path(hazard_set_file).stem.replace("_prob", "").replace("_hist", "")
    name = f"_{tag}_{stem}"
    while "__" in name:
        name = name.replace("__", "_")
    return Path(results_dir) / f"{name}.npz"


def _as_npz(path: Path) -> Path:
    return path if path.suffix == ".npz" else path.with_name(path.name + ".npz")


def save_coarse_grid(path: Path, grid: ElevationGrid) -> Path | None:
    """Write *grid* to *path* unless the path carries a NO_SAVE sentinel."""
    if is_no_save(path):
        logger.debug("Not saving coarse elevation (%s)", path)
        return None
    path = _as_npz(Path(path))
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        path, lon=grid.lon, lat=grid.lat, height=grid.height, source=np.array(grid.source)
    )
    logger.info("Saved coarse elevation for reuse as %s (delete to re-create)", path)
    return path


def load_coarse_grid(path: Path) -> ElevationGrid | None:
    """Read a grid written by :func:`save_coarse_grid`, or None if absent."""
    path = _as_npz(Path(path))
    if not path.exists():
        return None
    with np.load(path) as data:
        try:
            grid = ElevationGrid(
                lon=data["lon"], lat=data["lat"], height=data["height"], source=str(data["source"])
            )
        except KeyError:
            logger.warning("%s is not a coarse elevation file, ignoring it", path)
            return None
    logger.info("Reading coarse elevation from %s", path)
    return grid


def save_fine_samples(path: Path, samples: FineElevationSamples) -> Path | None:
    """Write fine samples and their centroid mapping unless NO_SAVE is set."""
    if is_no_save(path):
        logger.debug("Not saving fine elevation (%s)", path)
        return None
    path = _as_npz(Path(path))
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        path,
        lon=samples.lon,
        lat=samples.lat,
        height=samples.height,
        centroid_index=samples.centroid_index,
        elevation_m=samples.elevation_m,
        source=np.array(samples.source),
        map_time_s=np.array(samples.map_time_s),
    )
    logger.info("Saved fine elevation for reuse as %s (delete to re-create)", path)
    return path


def load_fine_samples(path: Path) -> FineElevationSamples | None:
    """Read samples written by :func:`save_fine_samples`, or None if absent."""
    path = _as_npz(Path(path))
    if not path.exists():
        return None
    with np.load(path) as data:
        try:
            samples = FineElevationSamples(
                lon=data["lon"],
                lat=data["lat"],
                height=data["height"],
                centroid_index=data["centroid_index"],
                elevation_m=data["elevation_m"],
                source=str(data["source"]),
                map_time_s=float(data["map_time_s"]),
            )
        except KeyError:
            logger.warning("%s is not a fine elevation file, ignoring it", path)
            return None
    logger.info("Reading fine elevation from %s (delete to re-create)", path)
    return samples
