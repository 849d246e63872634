"""Shared fixtures for surge_hazard tests."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from surge_hazard.config import SurgeHazardConfig
from surge_hazard.geo import Bounds
from surge_hazard.models import ElevationGrid, HazardSet, Track


class StaticElevationSource:
    """Serves a fixed grid and records the windows it was asked for."""

    def __init__(self, grid: ElevationGrid | None) -> None:
        self.grid = grid
        self.calls: list[Bounds] = []

    def fetch(self, bounds: Bounds) -> ElevationGrid | None:
        self.calls.append(bounds)
        return self.grid


@pytest.fixture
def default_config(tmp_path: Path) -> SurgeHazardConfig:
    """Config with defaults, writing to tmp_path."""
    return SurgeHazardConfig(
        hazards_dir=tmp_path / "hazards",
        results_dir=tmp_path / "results",
    )


@pytest.fixture
def wind_hazard() -> HazardSet:
    """Two events over four coastal centroids (m/s)."""
    intensity = sparse.csr_matrix(
        np.array(
            [
                [30.0, 0.0, 50.0, 20.0],
                [0.0, 40.0, 60.0, 0.0],
            ]
        )
    )
    return HazardSet(
        lon=np.array([-80.0, -79.9, -79.8, -79.7]),
        lat=np.array([25.0, 25.0, 25.1, 25.1]),
        centroid_id=np.array([1, 2, 3, 4]),
        intensity=intensity,
        event_id=np.array([1, 2]),
        orig_event_flag=np.array([True, False]),
        frequency=np.array([0.5, 0.5]),
        filename="TCNA_today_prob.npz",
    )


@pytest.fixture
def flat_grid() -> ElevationGrid:
    """3x3 coarse grid around the wind_hazard centroids, 2 m everywhere."""
    return ElevationGrid(
        lon=np.array([-81.0, -80.0, -79.0]),
        lat=np.array([24.0, 25.0, 26.0]),
        height=np.full((3, 3), 2.0),
        source="etopo180",
    )


@pytest.fixture
def sloped_grid() -> ElevationGrid:
    """Grid rising eastwards from -4 m to 4 m."""
    return ElevationGrid(
        lon=np.array([-81.0, -80.0, -79.0]),
        lat=np.array([24.0, 26.0]),
        height=np.array([[-4.0, 0.0, 4.0], [-4.0, 0.0, 4.0]]),
        source="etopo180",
    )


def make_track(
    on_land: list[bool] | None,
    pressure: list[float],
    wind: list[float] | None = None,
    env: float = 1010.0,
    name: str = "TRACK",
    orig: bool = True,
) -> Track:
    """Hourly track along the equator with the given flags and pressures."""
    n = len(pressure)
    return Track(
        name=name,
        time=pd.date_range("2020-09-01", periods=n, freq="h").to_numpy(),
        lon=np.linspace(-80.0, -79.0, n),
        lat=np.full(n, 25.0),
        central_pressure=np.asarray(pressure, dtype=np.float64),
        environmental_pressure=np.full(n, env),
        max_sustained_wind=np.asarray(wind if wind is not None else [50.0] * n, dtype=np.float64),
        on_land=None if on_land is None else np.asarray(on_land, dtype=bool),
        orig_event_flag=orig,
    )


@pytest.fixture
def landfall_track() -> Track:
    """Tropical storm (50 kn) crossing land for three hours."""
    return make_track(
        on_land=[False, False, True, True, True, False],
        pressure=[990.0, 990.0, 995.0, 1000.0, 1003.0, 1004.0],
    )


@pytest.fixture
def track_factory():
    return make_track


@pytest.fixture
def static_source():
    return StaticElevationSource
