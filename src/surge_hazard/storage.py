"""Hazard set and track set storage."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
import pandas as pd
from scipy import sparse

from surge_hazard.cache import is_no_save
from surge_hazard.models import DecayParameterTable, HazardSet, Track

logger = logging.getLogger(__name__)

_OPTIONAL_ARRAYS = (
    "elevation_m",
    "distance2coast_km",
    "on_land",
    "event_id",
    "orig_event_flag",
    "frequency",
)
_META_FIELDS = (
    "orig_event_count",
    "peril_id",
    "units",
    "comment",
    "windfield_comment",
    "surgefield_comment",
    "creation_comment",
    "filename",
    "filename_source",
    "date",
    "matrix_density",
)

TRACK_COLUMNS = (
    "track_id",
    "time",
    "lon",
    "lat",
    "central_pressure",
    "environmental_pressure",
    "max_sustained_wind",
)


def hazard_set_path(name: str | Path, hazards_dir: Path) -> Path:
    """Complete a hazard set name: default directory and ``.npz`` extension."""
    path = Path(name)
    if path.suffix == "":
        path = path.with_name(path.name + ".npz")
    if path.parent == Path("."):
        path = Path(hazards_dir) / path
    return path


# ---------------------------------------------------------------------------
# Hazard sets
# ---------------------------------------------------------------------------


def _pack_csr(prefix: str, m: sparse.csr_matrix) -> dict[str, np.ndarray]:
    m = sparse.csr_matrix(m)
    return {
        f"{prefix}_data": m.data,
        f"{prefix}_indices": m.indices,
        f"{prefix}_indptr": m.indptr,
        f"{prefix}_shape": np.array(m.shape),
    }


def _unpack_csr(prefix: str, data: np.lib.npyio.NpzFile) -> sparse.csr_matrix:
    return sparse.csr_matrix(
        (data[f"{prefix}_data"], data[f"{prefix}_indices"], data[f"{prefix}_indptr"]),
        shape=tuple(data[f"{prefix}_shape"]),
    )


def save_hazard(hazard: HazardSet, path: str | Path) -> Path | None:
    """Write *hazard* to *path* (``.npz``); skipped for NO_SAVE names.

    Idempotent: overwrites an existing file of the same name.
    """
    if is_no_save(path):
        return None
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    arrays: dict[str, np.ndarray] = {
        "lon": hazard.lon,
        "lat": hazard.lat,
        "centroid_id": hazard.centroid_id,
        **_pack_csr("intensity", hazard.intensity),
    }
    if hazard.fraction is not None:
        arrays.update(_pack_csr("fraction", hazard.fraction))
    for name in _OPTIONAL_ARRAYS:
        values = getattr(hazard, name)
        if values is not None:
            arrays[name] = np.asarray(values)
    meta = {name: getattr(hazard, name) for name in _META_FIELDS}
    arrays["meta"] = np.array(json.dumps(meta))

    with open(path, "wb") as f:
        np.savez_compressed(f, **arrays)
    logger.info("Saved %s hazard set as %s", hazard.peril_id, path)
    return path


def load_hazard(path: str | Path) -> HazardSet:
    """Read a hazard set written by :func:`save_hazard`."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Hazard set not found: {path}")

    with np.load(path) as data:
        files = set(data.files)
        meta = json.loads(str(data["meta"])) if "meta" in files else {}
        optional = {name: data[name] for name in _OPTIONAL_ARRAYS if name in files}
        hazard = HazardSet(
            lon=data["lon"],
            lat=data["lat"],
            centroid_id=data["centroid_id"],
            intensity=_unpack_csr("intensity", data),
            fraction=_unpack_csr("fraction", data) if "fraction_data" in files else None,
            **optional,
            **{k: v for k, v in meta.items() if k in _META_FIELDS},
        )
    if not hazard.filename:
        hazard.filename = str(path)
    logger.info(
        "Loaded %s hazard set %s: %d events x %d centroids",
        hazard.peril_id, path, hazard.n_events, hazard.n_centroids,
    )
    return hazard


# ---------------------------------------------------------------------------
# Track sets
# ---------------------------------------------------------------------------


def tracks_from_frame(df: pd.DataFrame) -> list[Track]:
    """Split a one-row-per-point frame into tracks, keeping first-seen order.

    Required columns are :data:`TRACK_COLUMNS`; ``on_land``, ``name`` and
    ``orig_event_flag`` are optional.
    """
    missing = [col for col in TRACK_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"Track data missing columns: {missing}")

    df = df.copy()
    df["time"] = pd.to_datetime(df["time"])
    tracks: list[Track] = []
    for track_id, group in df.groupby("track_id", sort=False):
        group = group.sort_values("time")
        on_land = (
            group["on_land"].astype(bool).to_numpy() if "on_land" in group.columns else None
        )
        orig = bool(group["orig_event_flag"].iloc[0]) if "orig_event_flag" in group.columns else True
        name = str(group["name"].iloc[0]) if "name" in group.columns else str(track_id)
        tracks.append(
            Track(
                name=name,
                time=group["time"].to_numpy(dtype="datetime64[ns]"),
                lon=group["lon"].to_numpy(dtype="float64"),
                lat=group["lat"].to_numpy(dtype="float64"),
                central_pressure=group["central_pressure"].to_numpy(dtype="float64"),
                environmental_pressure=group["environmental_pressure"].to_numpy(dtype="float64"),
                max_sustained_wind=group["max_sustained_wind"].to_numpy(dtype="float64"),
                on_land=on_land,
                orig_event_flag=orig,
            )
        )
    return tracks


def load_tracks(path: str | Path) -> list[Track]:
    """Read a CSV track set (one row per track point)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Track set not found: {path}")
    tracks = tracks_from_frame(pd.read_csv(path))
    logger.info("Loaded %d tracks from %s", len(tracks), path)
    return tracks


def export_decay_json(table: DecayParameterTable, output_path: Path, indent: int = 2) -> Path:
    """Export decay parameters to a JSON file, one record per category."""
    records = table.to_frame().to_dict(orient="records")
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(records, f, indent=indent, ensure_ascii=False, default=float)
    return output_path
