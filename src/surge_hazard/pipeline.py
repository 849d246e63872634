"""Pipeline orchestrator: attach elevation -> convert wind to surge -> save."""

from __future__ import annotations

import logging
from pathlib import Path

from surge_hazard.config import SurgeHazardConfig
from surge_hazard.elevation import attach_elevation
from surge_hazard.fetchers.erddap import ElevationSource
from surge_hazard.models import ElevationData, HazardSet
from surge_hazard.regrid import Regridder, regrid_to_centroids
from surge_hazard.storage import hazard_set_path, save_hazard
from surge_hazard.surge import convert_to_surge

logger = logging.getLogger(__name__)


def run_surge_pipeline(
    hazard: HazardSet,
    hazard_set_file: str | Path,
    config: SurgeHazardConfig,
    elevation_source: str | None = None,
    elevation_data: ElevationData | None = None,
    elevation_save_file: str | Path | None = None,
    coarse: ElevationSource | None = None,
    fine: ElevationSource | None = None,
    regridder: Regridder = regrid_to_centroids,
) -> tuple[HazardSet, Path | None]:
    """Build a storm surge hazard set from a tropical cyclone wind hazard set.

    Steps:
    1. Attach elevation (existing, supplied, coarse or fine grid)
    2. Convert wind footprints to surge footprints in place
    3. Save the surge set unless *hazard_set_file* carries a NO_SAVE sentinel

    Returns the modified hazard and the elevation file used (None when the
    elevation did not come from a grid). Elevation failures propagate and
    nothing is saved.
    """
    target = hazard_set_path(hazard_set_file, config.hazards_dir)

    # Step 1: Elevation
    attached = attach_elevation(
        hazard,
        config,
        hazard_set_file=target,
        elevation_source=elevation_source,
        elevation_data=elevation_data,
        elevation_save_file=elevation_save_file,
        coarse=coarse,
        fine=fine,
        regridder=regridder,
    )
    logger.info("Elevation for %d centroids: %s", hazard.n_centroids, attached.origin)

    # Step 2: Surge conversion
    convert_to_surge(hazard, config, attached)
    hazard.filename = str(target)

    # Step 3: Save
    saved = save_hazard(hazard, target)
    if saved is None:
        logger.info("Surge hazard set not saved (%s)", hazard_set_file)

    return hazard, attached.save_file
