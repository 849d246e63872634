"""Empirical central pressure decay after landfall, fitted on historical tracks.

Relative pressure after landfall is modelled as

    y(x) = S - (S - 1) * exp(-A * x)

with y = 1 at the last point over sea, x the number of timesteps since
then (counting that point as 1), and S the ratio between environmental
pressure and landfall pressure. For every sample the closed form
A = ln((S - 1) / (S - y)) / x is evaluated and averaged per storm category.
"""

from __future__ import annotations

import logging

import numpy as np

from surge_hazard.config import SurgeHazardConfig
from surge_hazard.models import CATEGORY_NAMES, DecayParameterTable, Track
from surge_hazard.tracks import LandAnnotator, equal_timestep, landfall_segments

logger = logging.getLogger(__name__)

# Bounds applied to the pressure ratio S
ENV_PRESSURE_FLOOR_HPA = 1010.0
LANDFALL_PRESSURE_CAP_HPA = 1009.0


class DecayFitError(ValueError):
    """No storm category has a single usable landfall sample."""


def wind_category(wind_kn: float, thresholds: tuple[float, ...]) -> int | None:
    """Index of the first category whose upper bound exceeds *wind_kn*."""
    below = np.flatnonzero(wind_kn < np.asarray(thresholds, dtype=np.float64))
    return int(below[0]) if below.size else None


def pressure_ratio(
    track: Track, landfall_pressure: float, relative_to_environment: bool = True,
) -> float:
    """S for one landfall: the asymptote of the relative pressure curve."""
    if relative_to_environment:
        env_end = float(np.asarray(track.environmental_pressure)[-1])
        return float(
            np.fmax(ENV_PRESSURE_FLOOR_HPA, env_end)
            / np.fmin(LANDFALL_PRESSURE_CAP_HPA, landfall_pressure)
        )
    return float(np.asarray(track.central_pressure)[-1] / landfall_pressure)


def collect_landfall_samples(
    tracks: list[Track],
    thresholds: tuple[float, ...],
    relative_to_environment: bool = True,
    stride: int = 1,
) -> list[tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """Gather ``(x, y, S)`` samples per category from every landfall.

    Tracks must carry on-land flags. Only every *stride*-th track is used.
    Zero or negative pressures count as missing.
    """
    xs: list[list[np.ndarray]] = [[] for _ in thresholds]
    ys: list[list[np.ndarray]] = [[] for _ in thresholds]
    ss: list[list[np.ndarray]] = [[] for _ in thresholds]

    for track in tracks[::stride]:
        if track.on_land is None:
            raise ValueError(f"Track {track.name} has no on-land flags")
        pressure = np.asarray(track.central_pressure, dtype=np.float64).copy()
        pressure[~(pressure > 0)] = np.nan
        wind = np.asarray(track.max_sustained_wind, dtype=np.float64)

        for seg in landfall_segments(track.on_land):
            cat = wind_category(wind[seg.before], thresholds)
            if cat is None:
                continue
            series = pressure[seg.before : seg.sea_return]
            s = pressure_ratio(track, pressure[seg.before], relative_to_environment)
            xs[cat].append(np.arange(1, series.size + 1, dtype=np.float64))
            ys[cat].append(series / series[0])
            ss[cat].append(np.full(series.size, s))

    def _cat(parts: list[np.ndarray]) -> np.ndarray:
        return np.concatenate(parts) if parts else np.empty(0)

    return [(_cat(x), _cat(y), _cat(s)) for x, y, s in zip(xs, ys, ss)]


def fit_bucket(x: np.ndarray, y: np.ndarray, s: np.ndarray) -> tuple[float, float, int]:
    """Closed-form fit of one category; returns ``(A, S, n_valid)``.

    Samples with S <= 1 or S - y <= 0 have no real solution and are
    skipped. A category without valid samples gives NaN parameters.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    s = np.asarray(s, dtype=np.float64)
    with np.errstate(invalid="ignore"):
        valid = np.isfinite(y) & np.isfinite(s) & (x > 0) & (s > 1) & (s - y > 0)
    n = int(valid.sum())
    if n == 0:
        return float("nan"), float("nan"), 0
    a = np.log((s[valid] - 1) / (s[valid] - y[valid])) / x[valid]
    return float(a.mean()), float(s[valid].mean()), n


def nearest_valid_index(index: int, valid: np.ndarray) -> int | None:
    """Closest position to *index* whose flag is set; ties go to the lower one."""
    candidates = np.flatnonzero(np.asarray(valid, dtype=bool))
    if candidates.size == 0:
        return None
    return int(candidates[np.argmin(np.abs(candidates - index))])


def borrow_missing(decay_rate: np.ndarray, ratio: np.ndarray) -> dict[int, int]:
    """Fill NaN categories in place from their nearest fitted category.

    Returns ``{borrower: lender}``. Raises :class:`DecayFitError` if no
    category was fitted at all.
    """
    fitted = ~np.isnan(decay_rate)
    if not fitted.any():
        raise DecayFitError("No landfall samples in any storm category, cannot fit decay")

    borrowed: dict[int, int] = {}
    for cat in np.flatnonzero(~fitted):
        lender = nearest_valid_index(int(cat), fitted)
        if lender is None:
            raise DecayFitError(f"No fitted category to lend to {_category_name(int(cat))}")
        decay_rate[cat] = decay_rate[lender]
        ratio[cat] = ratio[lender]
        borrowed[int(cat)] = lender
        logger.warning(
            "No historical track in %s, taking decay parameters from %s",
            _category_name(int(cat)), _category_name(lender),
        )
    return borrowed


def _category_name(cat: int) -> str:
    return CATEGORY_NAMES[cat] if cat < len(CATEGORY_NAMES) else f"Category {cat}"


def fit_pressure_decay(
    tracks: list[Track],
    config: SurgeHazardConfig,
    land_annotator: LandAnnotator | None = None,
    stride: int | None = None,
) -> DecayParameterTable:
    """Fit pressure decay parameters per storm category on historical tracks.

    Steps:
    1. Resample tracks to ``config.timestep_h``
    2. Flag points over land (via *land_annotator*, else existing flags)
    3. Bucket every landfall by the wind just before it
    4. Fit A and S per bucket, borrow from the nearest bucket where empty

    Non-historical tracks in the input only raise a warning; every track is
    then used (*stride* overrides this, e.g. to take one track per ensemble).
    """
    n_hist = sum(1 for t in tracks if t.orig_event_flag)
    if n_hist < len(tracks):
        logger.warning(
            "Not all tracks are historical (%d of %d), using every track as if historical",
            n_hist, len(tracks),
        )
    stride = stride or 1

    tracks = equal_timestep(tracks, config.timestep_h)
    if land_annotator is not None:
        tracks = land_annotator(tracks)
    elif any(t.on_land is None for t in tracks):
        raise ValueError("Tracks carry no on-land flags and no land annotator was given")

    thresholds = tuple(config.landfall_thresholds_kn)
    samples = collect_landfall_samples(
        tracks, thresholds, config.pressure_relative_to_environment, stride
    )

    n_cat = len(thresholds)
    decay_rate = np.full(n_cat, np.nan)
    ratio = np.full(n_cat, np.nan)
    counts = np.zeros(n_cat, dtype=np.int64)
    for cat, (x, y, s) in enumerate(samples):
        decay_rate[cat], ratio[cat], counts[cat] = fit_bucket(x, y, s)
        logger.info(
            "%s: %d valid samples, A=%.4f, S=%.4f",
            _category_name(cat), counts[cat], decay_rate[cat], ratio[cat],
        )

    borrowed = borrow_missing(decay_rate, ratio)
    return DecayParameterTable(
        decay_rate=decay_rate, pressure_ratio=ratio, sample_counts=counts, borrowed_from=borrowed,
    )
