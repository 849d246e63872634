"""Convert tropical cyclone wind footprints into storm surge footprints.

Wind speed maps onto surge height with a linear fit to two points of the
SLOSH model (60 mph -> 6 ft, 140 mph -> 18 ft). Ground elevation is then
subtracted, either directly per centroid (coarse grid) or averaged over the
fine samples of each centroid, which also yields the flooded fraction.
Surge decays by 0.2 m per km inland and vanishes beyond a maximum inland
distance.

References:
    Nicholls, R. J. (2006). Storm surges in coastal areas. Natural disaster
    hot spots case studies. World Bank.
    Brecht, H. et al. (2012). Sea-level rise and storm surges: high stakes
    for a small number of developing countries. The Journal of Environment
    and Development 21, 120-138.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ProcessPoolExecutor
from datetime import datetime
from typing import Literal

import numpy as np
from scipy import sparse

from surge_hazard.config import SurgeHazardConfig
from surge_hazard.elevation import AttachedElevation, ElevationUnavailableError
from surge_hazard.models import FineElevationSamples, HazardSet

logger = logging.getLogger(__name__)

MPH_TO_MS = 0.44704
WIND_THRESHOLD_MS = 60 * MPH_TO_MS  # 26.8224
SURGE_SLOPE = 0.1023  # m surge per m/s wind
SURGE_OFFSET_M = 1.8288  # 6 ft
SURGE_PERIL_ID = "TS"

# Decay large enough to wipe out any surge
_SUPPRESSIVE_DECAY_M = 100.0

# Cap on the events x samples block evaluated at once per centroid
_MAX_BLOCK = 2_000_000

Sweep = Literal["events", "centroids"]


def wind_to_surge(wind_ms: np.ndarray, slr_increment_m: float = 0.0) -> np.ndarray:
    """Surge height (m) for wind speeds (m/s); constant below 60 mph."""
    wind_ms = np.asarray(wind_ms, dtype=np.float64)
    return SURGE_SLOPE * np.maximum(wind_ms - WIND_THRESHOLD_MS, 0.0) + SURGE_OFFSET_M + slr_increment_m


def convert_intensity(intensity: sparse.spmatrix, slr_increment_m: float = 0.0) -> sparse.csr_matrix:
    """Apply :func:`wind_to_surge` to the stored nonzero entries only."""
    surge = sparse.csr_matrix(intensity, dtype=np.float64, copy=True)
    surge.eliminate_zeros()
    surge.data = wind_to_surge(surge.data, slr_increment_m)
    return surge


def buffered_distance(distance2coast_km: np.ndarray, decay_buffer_km: float) -> np.ndarray:
    """Distance to coast with the buffer removed, never below zero."""
    return np.maximum(np.asarray(distance2coast_km, dtype=np.float64) - decay_buffer_km, 0.0)


def inland_decay(distance_km: np.ndarray, height_decay_m_km: float) -> np.ndarray:
    """Surge reduction (m) at the given inland distances."""
    return np.maximum(np.asarray(distance_km, dtype=np.float64) * height_decay_m_km, 0.0)


def coarse_decay(hazard: HazardSet, config: SurgeHazardConfig) -> np.ndarray:
    """Per-centroid decay for the coarse strategy, suppressive where surge must vanish."""
    elevation = np.asarray(hazard.elevation_m, dtype=np.float64)
    if hazard.distance2coast_km is None:
        decay = np.zeros(hazard.n_centroids)
        decay[elevation > config.max_surge_height_m] = _SUPPRESSIVE_DECAY_M
        return decay

    distance = np.asarray(hazard.distance2coast_km, dtype=np.float64)
    decay = inland_decay(buffered_distance(distance, config.decay_buffer_km), config.height_decay_m_km)
    decay[(elevation > 0) & (distance > config.centroid_inland_max_dist_km)] = _SUPPRESSIVE_DECAY_M
    return decay


def choose_sweep(n_events: int, n_centroids: int) -> Sweep:
    """Iterate along the shorter axis so that each step touches more entries.

    Purely a performance choice, both sweeps give identical results.
    """
    return "events" if n_events < n_centroids else "centroids"


def _log_progress(i: int, n: int, label: str) -> None:
    step = max(n // 10, 1)
    if (i + 1) % step == 0 or i + 1 == n:
        logger.info("  %d of %d %s (%.0f%%)", i + 1, n, label, 100.0 * (i + 1) / n)


def subtract_coarse(
    intensity: sparse.spmatrix,
    elevation_m: np.ndarray,
    decay_m: np.ndarray,
    height_precision_m: float,
    sweep: Sweep | None = None,
) -> sparse.csr_matrix:
    """Subtract elevation, precision margin and decay from the stored surge entries."""
    n_events, n_centroids = intensity.shape
    sweep = sweep or choose_sweep(n_events, n_centroids)
    elevation_m = np.asarray(elevation_m, dtype=np.float64)
    decay_m = np.asarray(decay_m, dtype=np.float64)
    logger.info("Subtracting elevation, sweeping over %s", sweep)

    if sweep == "events":
        m = sparse.csr_matrix(intensity, dtype=np.float64, copy=True)
        for i in range(n_events):
            sl = slice(m.indptr[i], m.indptr[i + 1])
            cols = m.indices[sl]
            m.data[sl] = np.maximum(
                m.data[sl] - elevation_m[cols] - height_precision_m - decay_m[cols], 0.0
            )
            _log_progress(i, n_events, "events")
    else:
        m = sparse.csc_matrix(intensity, dtype=np.float64, copy=True)
        for j in range(n_centroids):
            sl = slice(m.indptr[j], m.indptr[j + 1])
            m.data[sl] = np.maximum(
                m.data[sl] - elevation_m[j] - height_precision_m - decay_m[j], 0.0
            )
            _log_progress(j, n_centroids, "centroids")

    result = m.tocsr()
    result.eliminate_zeros()
    return result


def fine_location_surge(
    event_surge: np.ndarray, sample_heights: np.ndarray, decay_m: float,
) -> tuple[np.ndarray, np.ndarray]:
    """Surge and flooded fraction at one centroid from its fine samples.

    For each event the surge is the mean water depth over the samples that
    are flooded, and the fraction is the share of flooded samples. Decay is
    subtracted afterwards, the fraction is left as is.
    """
    event_surge = np.asarray(event_surge, dtype=np.float64)
    heights = np.asarray(sample_heights, dtype=np.float64)
    n_samples = heights.size
    surge = np.zeros(event_surge.size)
    fraction = np.zeros(event_surge.size)
    if n_samples == 0 or event_surge.size == 0:
        return surge, fraction

    block = max(_MAX_BLOCK // n_samples, 1)
    for start in range(0, event_surge.size, block):
        stop = start + block
        depth = np.maximum(event_surge[start:stop, None] - heights[None, :], 0.0)
        flooded = np.count_nonzero(depth > 0, axis=1)
        total = depth.sum(axis=1)
        surge[start:stop] = np.divide(
            total, flooded, out=np.zeros(total.size), where=flooded > 0
        )
        fraction[start:stop] = flooded / n_samples

    return np.maximum(surge - decay_m, 0.0), fraction


def _fine_location_task(args: tuple[np.ndarray, np.ndarray, float]) -> tuple[np.ndarray, np.ndarray]:
    return fine_location_surge(*args)


def _samples_by_centroid(samples: FineElevationSamples, positions: np.ndarray) -> list[np.ndarray]:
    """Fine sample heights grouped per centroid position."""
    index = np.asarray(samples.centroid_index)
    order = np.argsort(index, kind="stable")
    sorted_index = index[order]
    lo = np.searchsorted(sorted_index, positions, side="left")
    hi = np.searchsorted(sorted_index, positions, side="right")
    heights = np.asarray(samples.height, dtype=np.float64)
    return [heights[order[a:b]] for a, b in zip(lo, hi)]


def subtract_fine(
    hazard: HazardSet,
    intensity: sparse.spmatrix,
    samples: FineElevationSamples,
    config: SurgeHazardConfig,
) -> tuple[sparse.csr_matrix, sparse.csr_matrix]:
    """Fine strategy: average over the samples of each low-lying coastal centroid.

    Only centroids with ``0 < elevation < max_surge_height_m`` (and within
    the inland limit, if distances are known) are treated; other entries
    keep their raw surge and are handled by :func:`apply_limits`.
    """
    elevation = np.asarray(hazard.elevation_m, dtype=np.float64)
    selected = (elevation > 0) & (elevation < config.max_surge_height_m)
    if hazard.distance2coast_km is not None:
        distance = np.asarray(hazard.distance2coast_km, dtype=np.float64)
        logger.info(
            "Restricting to centroids in elevation range ]0..%g] m and closer than %g km "
            "to coast with a decay of %.1f m/km inland",
            config.max_surge_height_m, config.centroid_inland_max_dist_km, config.height_decay_m_km,
        )
        selected &= distance <= config.centroid_inland_max_dist_km
        decay = inland_decay(
            buffered_distance(distance, config.decay_buffer_km), config.height_decay_m_km
        )
    else:
        logger.info("Restricting to centroids in elevation range ]0..%g] m", config.max_surge_height_m)
        decay = np.zeros(hazard.n_centroids)

    positions = np.flatnonzero(selected)
    m = sparse.csc_matrix(intensity, dtype=np.float64, copy=True)
    m.sort_indices()
    frac = m.copy()
    frac.data[:] = 1.0

    heights = _samples_by_centroid(samples, positions)
    tasks = []
    for pos, h in zip(positions, heights):
        if h.size == 0:
            h = elevation[pos : pos + 1]
        tasks.append((m.data[m.indptr[pos] : m.indptr[pos + 1]], h, float(decay[pos])))

    logger.info(
        "Generating %d surge fields at %d low-lying/coastal (of total %d) centroids%s",
        hazard.n_events, positions.size, hazard.n_centroids,
        " (parallel)" if config.parallel else "",
    )
    if config.parallel and tasks:
        chunksize = max(len(tasks) // (4 * (config.max_workers or 8)), 1)
        with ProcessPoolExecutor(max_workers=config.max_workers) as executor:
            results = list(executor.map(_fine_location_task, tasks, chunksize=chunksize))
    else:
        results = []
        for k, task in enumerate(tasks):
            results.append(_fine_location_task(task))
            _log_progress(k, len(tasks), "centroids")

    # Each centroid writes only its own column slice, the sparsity pattern is unchanged
    for pos, (surge, fraction) in zip(positions, results):
        sl = slice(m.indptr[pos], m.indptr[pos + 1])
        m.data[sl] = surge
        frac.data[sl] = fraction

    return m.tocsr(), frac.tocsr()


def apply_limits(
    hazard: HazardSet, intensity: sparse.spmatrix, config: SurgeHazardConfig,
) -> sparse.csr_matrix:
    """Clamp surge to [0, max] and clear high ground and far inland centroids."""
    m = sparse.csr_matrix(intensity, dtype=np.float64, copy=True)
    m.data = np.clip(np.nan_to_num(m.data, nan=0.0), 0.0, config.max_surge_height_m)

    cleared = np.asarray(hazard.elevation_m, dtype=np.float64) >= config.max_surge_height_m
    if hazard.distance2coast_km is not None:
        cleared |= np.asarray(hazard.distance2coast_km) > config.centroid_inland_max_dist_km
    m.data[cleared[m.indices]] = 0.0
    m.eliminate_zeros()
    return m


def _support(m: sparse.csr_matrix) -> sparse.csr_matrix:
    ones = m.copy()
    ones.data = np.ones_like(ones.data)
    return ones


def finalize(
    hazard: HazardSet,
    intensity: sparse.csr_matrix,
    fraction: sparse.csr_matrix | None,
    description: str,
    creation_comment: str,
) -> HazardSet:
    """Write the surge matrices and metadata onto *hazard*."""
    intensity = sparse.csr_matrix(intensity)
    intensity.eliminate_zeros()
    if fraction is None:
        fraction = _support(intensity)
    else:
        fraction = sparse.csr_matrix(fraction.multiply(_support(intensity)))
        fraction.eliminate_zeros()

    if hazard.filename:
        hazard.filename_source = hazard.filename
    hazard.intensity = intensity
    hazard.fraction = fraction
    hazard.peril_id = SURGE_PERIL_ID
    hazard.units = "m"
    now = datetime.now()
    hazard.date = now.isoformat(timespec="seconds")
    hazard.comment = f"TS hazard event set, generated {now:%d-%b-%Y %H:%M:%S}"
    hazard.windfield_comment = None
    hazard.surgefield_comment = description
    hazard.creation_comment = creation_comment
    n_cells = intensity.shape[0] * intensity.shape[1]
    hazard.matrix_density = intensity.nnz / n_cells if n_cells else 0.0

    if hazard.orig_event_count is None:
        if hazard.orig_event_flag is not None:
            logger.info("orig_event_count inferred from orig_event_flag")
            hazard.orig_event_count = int(np.count_nonzero(hazard.orig_event_flag))
        else:
            logger.warning("Hazard has no orig_event_flag")
    hazard.validate()
    return hazard


def convert_to_surge(
    hazard: HazardSet,
    config: SurgeHazardConfig,
    attached: AttachedElevation | None = None,
) -> HazardSet:
    """Turn the wind hazard into a surge hazard, in place.

    The fine strategy is used when *attached* carries fine samples,
    otherwise elevation is subtracted directly per centroid. A hazard that
    already holds surge is returned unchanged.
    """
    if hazard.peril_id == SURGE_PERIL_ID:
        logger.warning("Hazard already holds storm surge, not converting it again")
        return hazard
    if hazard.elevation_m is None:
        raise ElevationUnavailableError("Hazard carries no elevation, attach it first")
    hazard.validate()
    if hazard.distance2coast_km is not None:
        logger.warning("Inland decay with distance to coast is not fully validated yet")

    description = (
        attached.description if attached is not None
        else "created based on TC using proxy surge height and elevation_m"
    )
    hazard.fraction = None  # any wind fraction is meaningless for surge

    intensity = convert_intensity(hazard.intensity, config.slr_increment_m)

    t0 = time.perf_counter()
    fraction: sparse.csr_matrix | None = None
    if attached is not None and attached.fine_samples is not None:
        intensity, fraction = subtract_fine(hazard, intensity, attached.fine_samples, config)
    else:
        if hazard.distance2coast_km is not None:
            logger.info(
                "Restricting to centroids closer than %g km to coast with a decay of %.1f m/km inland",
                config.centroid_inland_max_dist_km, config.height_decay_m_km,
            )
        intensity = subtract_coarse(
            intensity, hazard.elevation_m, coarse_decay(hazard, config), config.height_precision_m,
        )
    intensity = apply_limits(hazard, intensity, config)
    elapsed = time.perf_counter() - t0

    n_events = hazard.n_events
    summary = (
        f"generating {n_events} surge fields took {elapsed / 60:3.2f} min "
        f"({elapsed / max(n_events, 1):3.2f} sec/event)"
    )
    logger.info(summary)

    finalize(hazard, intensity, fraction, description, summary)
    max_surge = float(hazard.intensity.max()) if hazard.intensity.nnz else 0.0
    logger.info("TS: max surge height %.3f m", max_surge)
    return hazard
