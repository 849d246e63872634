"""Data models for surge hazard sets, elevation grids and cyclone tracks."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy import sparse

CATEGORY_NAMES: tuple[str, ...] = (
    "Tropical Depression",
    "Tropical Storm",
    "Hurricane Cat. 1",
    "Hurricane Cat. 2",
    "Hurricane Cat. 3",
    "Hurricane Cat. 4",
    "Hurricane Cat. 5",
)


@dataclass
class HazardSet:
    """Event x centroid hazard footprints, modified in place by the surge engine.

    Column ``j`` of ``intensity`` and ``fraction`` belongs to centroid ``j``
    (``lon[j]``, ``lat[j]``, ``centroid_id[j]``). A zero intensity means no
    hazard at all.
    """

    lon: np.ndarray
    lat: np.ndarray
    centroid_id: np.ndarray
    intensity: sparse.csr_matrix
    fraction: sparse.csr_matrix | None = None
    elevation_m: np.ndarray | None = None
    distance2coast_km: np.ndarray | None = None  # negative over the ocean
    on_land: np.ndarray | None = None
    event_id: np.ndarray | None = None
    orig_event_flag: np.ndarray | None = None
    orig_event_count: int | None = None
    frequency: np.ndarray | None = None
    peril_id: str = "TC"
    units: str = "m/s"
    comment: str = ""
    windfield_comment: str | None = None
    surgefield_comment: str | None = None
    creation_comment: str | None = None
    filename: str = ""
    filename_source: str = ""
    date: str = ""
    matrix_density: float | None = None

    def __post_init__(self) -> None:
        self.lon = np.asarray(self.lon, dtype=np.float64)
        self.lat = np.asarray(self.lat, dtype=np.float64)
        self.centroid_id = np.asarray(self.centroid_id)
        self.intensity = sparse.csr_matrix(self.intensity, dtype=np.float64)
        if self.fraction is not None:
            self.fraction = sparse.csr_matrix(self.fraction, dtype=np.float64)
        self.validate()

    @property
    def n_events(self) -> int:
        return int(self.intensity.shape[0])

    @property
    def n_centroids(self) -> int:
        return int(self.lon.size)

    def validate(self) -> None:
        """Raise ValueError if per-centroid arrays and matrices disagree in size."""
        n = self.lon.size
        if self.lat.size != n or self.centroid_id.size != n:
            raise ValueError(
                f"lon/lat/centroid_id sizes differ: {n}, {self.lat.size}, {self.centroid_id.size}"
            )
        if self.intensity.shape[1] != n:
            raise ValueError(
                f"intensity has {self.intensity.shape[1]} columns for {n} centroids"
            )
        if self.fraction is not None and self.fraction.shape != self.intensity.shape:
            raise ValueError(
                f"fraction shape {self.fraction.shape} != intensity shape {self.intensity.shape}"
            )
        for name in ("elevation_m", "distance2coast_km", "on_land"):
            values = getattr(self, name)
            if values is not None and np.asarray(values).size != n:
                raise ValueError(f"{name} has {np.asarray(values).size} values for {n} centroids")


@dataclass
class ElevationGrid:
    """Rectangular elevation grid; ``height[i, j]`` sits at ``(lon[j], lat[i])``.

    Both axes are ascending. Heights are metres above sea level, negative
    over water (bathymetry).
    """

    lon: np.ndarray
    lat: np.ndarray
    height: np.ndarray
    source: str = ""

    @property
    def is_empty(self) -> bool:
        return self.height.size == 0


@dataclass
class FineElevationSamples:
    """Fine-resolution samples partitioned onto hazard centroids.

    ``centroid_index[k]`` is the centroid sample ``k`` was mapped to, or -1
    when it lies outside every centroid's mapping radius.
    """

    lon: np.ndarray
    lat: np.ndarray
    height: np.ndarray
    centroid_index: np.ndarray
    elevation_m: np.ndarray  # per centroid
    source: str = ""
    map_time_s: float = 0.0


@dataclass(frozen=True)
class ElevationData:
    """Elevation supplied by the caller, keyed by centroid id."""

    centroid_id: np.ndarray
    elevation_m: np.ndarray


@dataclass
class Track:
    """A single tropical cyclone track.

    Wind speeds are in knots, pressures in hPa. ``on_land`` is filled by a
    land annotator and may be None on input.
    """

    name: str
    time: np.ndarray  # datetime64[ns]
    lon: np.ndarray
    lat: np.ndarray
    central_pressure: np.ndarray
    environmental_pressure: np.ndarray
    max_sustained_wind: np.ndarray
    on_land: np.ndarray | None = None
    orig_event_flag: bool = True

    def __len__(self) -> int:
        return int(np.asarray(self.time).size)


@dataclass
class DecayParameterTable:
    """Pressure decay parameters per storm category.

    Relative pressure after landfall follows ``y(x) = S - (S-1) * exp(-A*x)``
    with ``A = decay_rate[cat]`` and ``S = pressure_ratio[cat]``.
    """

    decay_rate: np.ndarray
    pressure_ratio: np.ndarray
    sample_counts: np.ndarray
    borrowed_from: dict[int, int] = field(default_factory=dict)

    def as_array(self) -> np.ndarray:
        """Return the (n_categories, 2) table ``[A, S]``."""
        return np.column_stack([self.decay_rate, self.pressure_ratio])

    def relative_pressure(self, category: int, hours: np.ndarray | float) -> np.ndarray:
        """Evaluate the fitted decay curve of *category* at *hours* after landfall."""
        a = self.decay_rate[category]
        s = self.pressure_ratio[category]
        return s - (s - 1.0) * np.exp(-a * np.asarray(hours, dtype=np.float64))

    def to_frame(self) -> pd.DataFrame:
        names = [
            CATEGORY_NAMES[i] if i < len(CATEGORY_NAMES) else f"Category {i}"
            for i in range(self.decay_rate.size)
        ]
        return pd.DataFrame(
            {
                "category": list(names),
                "decay_rate": self.decay_rate,
                "pressure_ratio": self.pressure_ratio,
                "samples": self.sample_counts,
                "borrowed_from": [
                    names[self.borrowed_from[i]] if i in self.borrowed_from else ""
                    for i in range(self.decay_rate.size)
                ],
            }
        )
