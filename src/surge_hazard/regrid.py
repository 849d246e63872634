"""Default regridding service: partition fine samples onto hazard centroids."""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np
from scipy.spatial import cKDTree

logger = logging.getLogger(__name__)


class Regridder(Protocol):
    """Maps fine samples onto target points.

    Returns ``(target_values, sample_to_target)``; ``sample_to_target[k]``
    is -1 for samples not assigned to any target.
    """

    def __call__(
        self,
        sample_lon: np.ndarray,
        sample_lat: np.ndarray,
        sample_values: np.ndarray,
        target_lon: np.ndarray,
        target_lat: np.ndarray,
        max_distance: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray]: ...


def regrid_to_centroids(
    sample_lon: np.ndarray,
    sample_lat: np.ndarray,
    sample_values: np.ndarray,
    target_lon: np.ndarray,
    target_lat: np.ndarray,
    max_distance: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """Assign every sample to its nearest target within that target's radius.

    A target's value is the mean of its samples. Targets that received no
    sample take the value of the sample closest to them.
    """
    sample_values = np.asarray(sample_values, dtype=np.float64)
    n_targets = np.size(target_lon)
    if sample_values.size == 0:
        return np.full(n_targets, np.nan), np.empty(0, dtype=np.int64)

    samples = np.column_stack([sample_lon, sample_lat])
    targets = np.column_stack([target_lon, target_lat])
    max_distance = np.broadcast_to(np.asarray(max_distance, dtype=np.float64), (n_targets,))

    dist, nearest = cKDTree(targets).query(samples)
    sample_to_target = np.where(dist <= max_distance[nearest], nearest, -1).astype(np.int64)

    mapped = sample_to_target >= 0
    counts = np.bincount(sample_to_target[mapped], minlength=n_targets)
    sums = np.bincount(sample_to_target[mapped], weights=sample_values[mapped], minlength=n_targets)

    values = np.empty(n_targets)
    has_samples = counts > 0
    values[has_samples] = sums[has_samples] / counts[has_samples]
    if not has_samples.all():
        _, closest = cKDTree(samples).query(targets[~has_samples])
        values[~has_samples] = sample_values[closest]
        logger.debug(
            "%d of %d centroids without own samples, using nearest sample",
            int((~has_samples).sum()), n_targets,
        )
    return values, sample_to_target
