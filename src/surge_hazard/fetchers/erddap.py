"""Elevation grids from ERDDAP griddap servers (ETOPO1 and SRTM15+)."""

from __future__ import annotations

import io
import logging
from typing import Protocol

import pandas as pd
from requests import Session

from surge_hazard.config import SurgeHazardConfig
from surge_hazard.geo import Bounds
from surge_hazard.http import create_session
from surge_hazard.models import ElevationGrid

logger = logging.getLogger(__name__)


class ElevationSource(Protocol):
    """Anything that returns an elevation grid for a lon/lat window."""

    def fetch(self, bounds: Bounds) -> ElevationGrid | None: ...


def build_griddap_url(
    base_url: str, dataset: str, variable: str, bounds: Bounds, stride: int = 1,
) -> str:
    """griddap CSV request for *variable* over *bounds* (latitude first)."""
    return (
        f"{base_url.rstrip('/')}/griddap/{dataset}.csv?{variable}"
        f"[({bounds.lat_min:.4f}):{stride}:({bounds.lat_max:.4f})]"
        f"[({bounds.lon_min:.4f}):{stride}:({bounds.lon_max:.4f})]"
    )


def parse_griddap_csv(content: bytes, source: str = "") -> ElevationGrid | None:
    """Parse a griddap CSV body into an :class:`ElevationGrid`.

    The body has a header row, a units row, then one ``lat,lon,value`` row
    per grid node. Returns None for bodies without data rows.
    """
    try:
        df = pd.read_csv(io.BytesIO(content), skiprows=[1])
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as exc:
        logger.warning("Unreadable griddap response from %s: %s", source, exc)
        return None
    if df.shape[1] < 3 or df.empty:
        logger.warning("griddap response from %s has no data rows", source)
        return None

    lat_col, lon_col, val_col = df.columns[:3]
    df = df.apply(pd.to_numeric, errors="coerce").dropna(subset=[lat_col, lon_col])
    table = df.pivot_table(index=lat_col, columns=lon_col, values=val_col, dropna=False)
    table = table.sort_index(axis=0).sort_index(axis=1)
    return ElevationGrid(
        lon=table.columns.to_numpy(dtype="float64"),
        lat=table.index.to_numpy(dtype="float64"),
        height=table.to_numpy(dtype="float64"),
        source=source,
    )


class ErddapElevationSource:
    """Elevation source backed by one ERDDAP griddap dataset.

    Network and HTTP failures are logged and reported as None, never raised.
    """

    def __init__(
        self,
        dataset: str,
        variable: str,
        base_url: str,
        stride: int = 1,
        timeout: int = 120,
        session: Session | None = None,
    ) -> None:
        self.dataset = dataset
        self.variable = variable
        self.base_url = base_url
        self.stride = stride
        self.timeout = timeout
        self.session = session if session is not None else create_session()

    def __repr__(self) -> str:
        return f"ErddapElevationSource({self.dataset!r}, {self.variable!r})"

    def fetch(self, bounds: Bounds) -> ElevationGrid | None:
        url = build_griddap_url(self.base_url, self.dataset, self.variable, bounds, self.stride)
        logger.info(
            "Fetching %s elevation for lon [%.2f, %.2f], lat [%.2f, %.2f]",
            self.dataset, bounds.lon_min, bounds.lon_max, bounds.lat_min, bounds.lat_max,
        )
        try:
            resp = self.session.get(url, timeout=self.timeout)
            if resp.status_code != 200:
                logger.warning("%s request returned %d", self.dataset, resp.status_code)
                return None
        except Exception:
            logger.warning("Failed to fetch %s elevation", self.dataset, exc_info=True)
            return None

        grid = parse_griddap_csv(resp.content, source=url)
        if grid is not None:
            logger.info("%s grid: %d x %d nodes", self.dataset, grid.lat.size, grid.lon.size)
        return grid


def coarse_source(config: SurgeHazardConfig, session: Session | None = None) -> ErddapElevationSource:
    """ETOPO1 (about 1.9 km) global relief, the fast default."""
    return ErddapElevationSource(
        config.coarse_dataset, config.coarse_variable, config.erddap_url,
        timeout=config.request_timeout, session=session,
    )


def fine_source(config: SurgeHazardConfig, session: Session | None = None) -> ErddapElevationSource:
    """SRTM15+ relief, dense enough to estimate the flooded fraction per centroid."""
    return ErddapElevationSource(
        config.fine_dataset, config.fine_variable, config.erddap_url,
        stride=config.fine_stride, timeout=config.request_timeout, session=session,
    )
