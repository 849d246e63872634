"""Configuration model for surge hazard generation and pressure decay fitting."""

from __future__ import annotations

import math
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

ElevationSourceName = Literal["coarse", "fine"]


class SurgeHazardConfig(BaseSettings):
    """All run-wide parameters for the surge and decay computations.

    Values can be set via constructor arguments, environment variables
    prefixed with SURGE_HAZARD_, or defaults. An instance is passed into
    every entry point; nothing reads shared module state.
    """

    model_config = {"env_prefix": "SURGE_HAZARD_"}

    # Surge conversion
    decay_buffer_km: float = Field(
        default=3.0, ge=0.0,
        description="Distance subtracted from distance to coast before inland decay applies.",
    )
    slr_increment_m: float = Field(
        default=0.0, description="Sea level rise increment added to every surge height (m)."
    )
    centroid_inland_max_dist_km: float = Field(
        default=50.0, gt=0.0, description="Centroids farther inland than this get no surge."
    )
    height_precision_m: float = Field(
        default=0.05, ge=0.0, description="Surge heights up to this value are dropped (m)."
    )
    height_decay_m_km: float = Field(
        default=0.2, ge=0.0, description="Inland decay of surge height in m per km."
    )
    max_surge_height_m: float = Field(
        default=10.0, gt=0.0, description="Upper clamp for surge height (m)."
    )

    # Elevation sources
    coarse_padding_deg: float = Field(
        default=1.0, ge=0.0, description="Coarse grid padding around the centroids (deg)."
    )
    fine_padding_deg: float = Field(
        default=0.1, ge=0.0, description="Fine grid padding around the centroids (deg)."
    )
    erddap_url: str = Field(
        default="https://coastwatch.pfeg.noaa.gov/erddap",
        description="ERDDAP server serving the elevation grids.",
    )
    coarse_dataset: str = Field(default="etopo180", description="Coarse griddap dataset id.")
    coarse_variable: str = Field(default="altitude", description="Coarse height variable.")
    fine_dataset: str = Field(default="srtm15plus", description="Fine griddap dataset id.")
    fine_variable: str = Field(default="z", description="Fine height variable.")
    fine_stride: int = Field(default=1, ge=1, description="Fine grid sampling stride.")
    request_timeout: int = Field(
        default=120, ge=5, le=600, description="HTTP request timeout in seconds."
    )

    # Storage
    hazards_dir: Path = Field(
        default=Path("hazards"), description="Directory for hazard set files."
    )
    results_dir: Path = Field(
        default=Path.home() / ".cache" / "surge-hazard",
        description="Directory for reusable elevation files.",
    )

    # Execution
    parallel: bool = Field(
        default=False, description="Run the fine elevation strategy on a process pool."
    )
    max_workers: int | None = Field(
        default=None, ge=1, description="Process pool size (None lets the executor decide)."
    )

    # Pressure decay
    landfall_thresholds_kn: tuple[float, ...] = Field(
        default=(34.0, 64.0, 83.0, 96.0, 113.0, 135.0, math.inf),
        description="Upper wind bounds (kn) of the seven storm categories.",
    )
    timestep_h: float = Field(
        default=1.0, gt=0.0, description="Uniform track timestep used before fitting (h)."
    )
    pressure_relative_to_environment: bool = Field(
        default=True,
        description="Decay towards environmental pressure, else towards the last central pressure.",
    )
