"""Geographic utilities: bounding boxes, grid interpolation and mapping radii."""

from __future__ import annotations

import math
from typing import NamedTuple

import numpy as np
from scipy.spatial import cKDTree

from surge_hazard.models import ElevationGrid

# Valid request window of the global elevation grids
LON_LIMITS = (-179.0, 179.0)
LAT_LIMITS = (-60.95, 89.0)


class Bounds(NamedTuple):
    """Rectangular lon/lat window in degrees."""

    lon_min: float
    lon_max: float
    lat_min: float
    lat_max: float


def padded_bounds(lon: np.ndarray, lat: np.ndarray, padding_deg: float) -> Bounds:
    """Bounding box of the points, widened by *padding_deg* on every side."""
    if np.size(lon) == 0:
        raise ValueError("Cannot build a bounding box around zero points")
    return Bounds(
        float(np.min(lon)) - padding_deg,
        float(np.max(lon)) + padding_deg,
        float(np.min(lat)) - padding_deg,
        float(np.max(lat)) + padding_deg,
    )


def clamp_to_globe(bounds: Bounds) -> Bounds:
    """Clamp *bounds* to the window the global grids can serve."""
    return Bounds(
        max(bounds.lon_min, LON_LIMITS[0]),
        min(bounds.lon_max, LON_LIMITS[1]),
        max(bounds.lat_min, LAT_LIMITS[0]),
        min(bounds.lat_max, LAT_LIMITS[1]),
    )


def is_degenerate(bounds: Bounds) -> bool:
    """True if the window has no extent after clamping."""
    return bounds.lon_min >= bounds.lon_max or bounds.lat_min >= bounds.lat_max


def grid_covers(grid: ElevationGrid, bounds: Bounds) -> bool:
    """True if the grid axes span the whole of *bounds*."""
    if grid.is_empty:
        return False
    return (
        float(np.min(grid.lon)) <= bounds.lon_min
        and float(np.max(grid.lon)) >= bounds.lon_max
        and float(np.min(grid.lat)) <= bounds.lat_min
        and float(np.max(grid.lat)) >= bounds.lat_max
    )


def bilinear_interpolate(grid: ElevationGrid, lon: np.ndarray, lat: np.ndarray) -> np.ndarray:
    """Bilinear interpolation of ``grid.height`` at the given points.

    Points outside the grid are NaN. A grid with a single row or column
    degenerates to linear interpolation along the other axis.
    """
    lon = np.atleast_1d(np.asarray(lon, dtype=np.float64))
    lat = np.atleast_1d(np.asarray(lat, dtype=np.float64))
    gx = np.asarray(grid.lon, dtype=np.float64)
    gy = np.asarray(grid.lat, dtype=np.float64)
    h = np.asarray(grid.height, dtype=np.float64)

    out = np.full(lon.shape, np.nan)
    inside = (lon >= gx[0]) & (lon <= gx[-1]) & (lat >= gy[0]) & (lat <= gy[-1])
    if not inside.any():
        return out

    x = lon[inside]
    y = lat[inside]
    nx, ny = gx.size, gy.size

    # Index of the lower-left corner, clamped so c0 + 1 stays on the grid
    c0 = np.clip(np.searchsorted(gx, x, side="right") - 1, 0, max(nx - 2, 0))
    r0 = np.clip(np.searchsorted(gy, y, side="right") - 1, 0, max(ny - 2, 0))
    c1 = np.minimum(c0 + 1, nx - 1)
    r1 = np.minimum(r0 + 1, ny - 1)

    dx = np.where(c1 > c0, gx[c1] - gx[c0], 1.0)
    dy = np.where(r1 > r0, gy[r1] - gy[r0], 1.0)
    tc = np.where(c1 > c0, (x - gx[c0]) / dx, 0.0)
    tr = np.where(r1 > r0, (y - gy[r0]) / dy, 0.0)

    out[inside] = (
        h[r0, c0] * (1 - tc) * (1 - tr)
        + h[r0, c1] * tc * (1 - tr)
        + h[r1, c0] * (1 - tc) * tr
        + h[r1, c1] * tc * tr
    )
    return out


def mapping_radius(lon: np.ndarray, lat: np.ndarray, fallback: float) -> np.ndarray:
    """Per-centroid radius (deg) within which fine samples belong to it.

    Half the distance to the nearest other centroid, widened by sqrt(2) so
    that the corners of a regular grid cell are still covered. Centroids
    without a distinct neighbour use the smallest positive radius found, or
    *fallback* for a single centroid.
    """
    points = np.column_stack([np.asarray(lon, dtype=np.float64), np.asarray(lat, dtype=np.float64)])
    if points.shape[0] < 2:
        return np.full(points.shape[0], float(fallback))

    dist, _ = cKDTree(points).query(points, k=2)
    radius = dist[:, 1] / 2 * math.sqrt(2)
    positive = radius[radius > 0]
    floor = float(positive.min()) if positive.size else float(fallback)
    return np.where(radius > 0, radius, floor)
