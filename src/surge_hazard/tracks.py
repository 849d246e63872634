"""Track preparation: uniform timestep, on-land flags and landfall segments."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

import numpy as np
import pandas as pd

from surge_hazard.fetchers.erddap import ElevationSource
from surge_hazard.geo import bilinear_interpolate, clamp_to_globe, padded_bounds
from surge_hazard.models import Track

logger = logging.getLogger(__name__)

LandAnnotator = Callable[[list[Track]], list[Track]]

_NUMERIC_FIELDS = (
    "lon",
    "lat",
    "central_pressure",
    "environmental_pressure",
    "max_sustained_wind",
)


@dataclass(frozen=True)
class LandfallSegment:
    """Indices of one landfall: ``before`` is the last point over sea."""

    before: int
    sea_return: int

    @property
    def steps_on_land(self) -> int:
        return self.sea_return - (self.before + 1)


def equal_timestep(tracks: list[Track], step_h: float = 1.0) -> list[Track]:
    """Resample every track to a uniform *step_h* timestep.

    Numeric fields are interpolated linearly in time; on-land flags are
    carried forward from the latest original point.
    """
    freq = pd.Timedelta(hours=step_h)
    resampled: list[Track] = []
    for track in tracks:
        if len(track) < 2:
            resampled.append(track)
            continue
        times = pd.DatetimeIndex(track.time)
        new_times = pd.date_range(times[0], times[-1], freq=freq)
        x_old = times.asi8.astype(np.float64)
        x_new = new_times.asi8.astype(np.float64)

        fields = {
            name: np.interp(x_new, x_old, np.asarray(getattr(track, name), dtype=np.float64))
            for name in _NUMERIC_FIELDS
        }
        on_land = None
        if track.on_land is not None:
            latest = np.searchsorted(x_old, x_new, side="right") - 1
            on_land = np.asarray(track.on_land, dtype=bool)[latest]

        resampled.append(
            replace(track, time=new_times.to_numpy(), on_land=on_land, **fields)
        )
    return resampled


class ElevationLandAnnotator:
    """Flag track points whose coarse elevation is at or above sea level."""

    def __init__(self, source: ElevationSource, padding_deg: float = 1.0) -> None:
        self.source = source
        self.padding_deg = padding_deg

    def __call__(self, tracks: list[Track]) -> list[Track]:
        if not tracks:
            return tracks
        lon = np.concatenate([t.lon for t in tracks])
        lat = np.concatenate([t.lat for t in tracks])
        grid = self.source.fetch(clamp_to_globe(padded_bounds(lon, lat, self.padding_deg)))
        if grid is None or grid.is_empty:
            raise RuntimeError(f"No elevation returned by {self.source!r} for on-land flags")

        annotated = []
        for track in tracks:
            height = bilinear_interpolate(grid, track.lon, track.lat)
            annotated.append(replace(track, on_land=np.nan_to_num(height, nan=-1.0) >= 0))
        return annotated


def landfall_segments(on_land: np.ndarray) -> list[LandfallSegment]:
    """Pair each landfall with the following return to sea.

    A landfall is a sea -> land transition. A track still over land at its
    end returns to sea one past its last point. Time spent over land before
    the first landfall is ignored.
    """
    flags = np.asarray(on_land, dtype=np.int8)
    if flags.size < 2:
        return []
    step = np.diff(flags)
    land = np.flatnonzero(step == 1) + 1
    sea = np.flatnonzero(step == -1) + 1
    following = np.searchsorted(sea, land, side="right")
    return [
        LandfallSegment(
            before=int(lf - 1),
            sea_return=int(sea[k]) if k < sea.size else int(flags.size),
        )
        for lf, k in zip(land, following)
    ]
