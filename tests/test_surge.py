"""Tests for the wind to surge conversion engine."""

from __future__ import annotations

import copy
import logging

import numpy as np
import pytest
from scipy import sparse

from surge_hazard.config import SurgeHazardConfig
from surge_hazard.elevation import AttachedElevation, ElevationUnavailableError
from surge_hazard.models import FineElevationSamples
from surge_hazard.surge import (
    WIND_THRESHOLD_MS,
    apply_limits,
    choose_sweep,
    coarse_decay,
    convert_intensity,
    convert_to_surge,
    fine_location_surge,
    subtract_coarse,
    wind_to_surge,
)

RAW_30 = 0.1023 * (30.0 - 26.8224) + 1.8288
RAW_40 = 0.1023 * (40.0 - 26.8224) + 1.8288


class TestWindToSurge:
    def test_threshold_is_60_mph(self):
        assert WIND_THRESHOLD_MS == pytest.approx(26.8224)

    def test_above_threshold(self):
        assert wind_to_surge(np.array([30.0]))[0] == pytest.approx(RAW_30)

    def test_below_threshold_is_constant(self):
        result = wind_to_surge(np.array([5.0, 20.0, 26.8224]))
        np.testing.assert_allclose(result, 1.8288)

    def test_slr_added_below_threshold(self):
        assert wind_to_surge(np.array([20.0]), slr_increment_m=0.5)[0] == pytest.approx(2.3288)

    def test_monotonic_in_wind(self):
        surge = wind_to_surge(np.linspace(0, 90, 50))
        assert np.all(np.diff(surge) >= 0)


class TestConvertIntensity:
    def test_zeros_stay_zero(self, wind_hazard):
        surge = convert_intensity(wind_hazard.intensity)
        assert surge.nnz == wind_hazard.intensity.nnz
        assert surge[0, 1] == 0.0

    def test_input_untouched(self, wind_hazard):
        before = wind_hazard.intensity.toarray().copy()
        convert_intensity(wind_hazard.intensity)
        np.testing.assert_array_equal(wind_hazard.intensity.toarray(), before)

    def test_stored_zeros_dropped(self):
        m = sparse.csr_matrix((np.array([0.0, 30.0]), np.array([0, 1]), np.array([0, 2])), shape=(1, 2))
        surge = convert_intensity(m)
        assert surge.nnz == 1


class TestChooseSweep:
    def test_fewer_events(self):
        assert choose_sweep(2, 100) == "events"

    def test_fewer_centroids(self):
        assert choose_sweep(100, 2) == "centroids"


class TestCoarseStrategy:
    def test_scenario_one_metre_elevation(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.ones(4)
        convert_to_surge(wind_hazard, default_config)
        assert wind_hazard.intensity[0, 0] == pytest.approx(1.1037, abs=1e-3)
        assert wind_hazard.intensity[0, 0] == pytest.approx(RAW_30 - 1.0 - 0.05)

    def test_sweeps_agree(self, wind_hazard):
        surge = convert_intensity(wind_hazard.intensity)
        elevation = np.array([1.0, 0.5, 2.0, 0.0])
        decay = np.array([0.0, 0.2, 0.4, 0.0])
        by_events = subtract_coarse(surge, elevation, decay, 0.05, sweep="events")
        by_centroids = subtract_coarse(surge, elevation, decay, 0.05, sweep="centroids")
        np.testing.assert_allclose(by_events.toarray(), by_centroids.toarray())

    def test_sparsity_never_grows(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.ones(4)
        nnz_before = wind_hazard.intensity.nnz
        convert_to_surge(wind_hazard, default_config)
        assert wind_hazard.intensity.nnz <= nnz_before
        assert wind_hazard.intensity[1, 0] == 0.0

    def test_high_ground_gets_no_surge(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.array([10.0, 1.0, 12.0, 1.0])
        convert_to_surge(wind_hazard, default_config)
        dense = wind_hazard.intensity.toarray()
        assert np.all(dense[:, 0] == 0)
        assert np.all(dense[:, 2] == 0)
        assert dense[1, 1] > 0

    def test_surge_below_ground_is_dropped(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.full(4, 5.0)
        convert_to_surge(wind_hazard, default_config)
        # 20 m/s gives 1.83 m of surge, well below 5 m of ground
        assert wind_hazard.intensity[0, 3] == 0.0

    def test_clamped_to_max_height(self, wind_hazard, default_config):
        wind_hazard.intensity = sparse.csr_matrix(np.array([[150.0, 0, 0, 0], [0, 0, 0, 0]]))
        wind_hazard.elevation_m = np.zeros(4)
        convert_to_surge(wind_hazard, default_config)
        assert wind_hazard.intensity[0, 0] == pytest.approx(10.0)

    def test_negative_elevation_keeps_full_surge(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.array([-3.0, 0.0, 0.0, 0.0])
        convert_to_surge(wind_hazard, default_config)
        assert wind_hazard.intensity[0, 0] == pytest.approx(RAW_30 + 3.0 - 0.05)


class TestInlandDecay:
    def test_beyond_inland_limit_cleared(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.ones(4)
        wind_hazard.distance2coast_km = np.array([1.0, 60.0, 2.0, 4.0])
        convert_to_surge(wind_hazard, default_config)
        assert np.all(wind_hazard.intensity.toarray()[:, 1] == 0)

    def test_decay_starts_after_buffer(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.ones(4)
        wind_hazard.distance2coast_km = np.array([1.0, 2.0, 2.0, 4.0])
        convert_to_surge(wind_hazard, default_config)
        assert wind_hazard.intensity[0, 0] == pytest.approx(RAW_30 - 1.05)
        # 4 km inland, 1 km past the 3 km buffer
        assert wind_hazard.intensity[0, 3] == pytest.approx(1.8288 - 1.05 - 0.2)

    def test_smaller_buffer_never_increases_surge(self, wind_hazard):
        wind_hazard.elevation_m = np.full(4, 0.5)
        wind_hazard.distance2coast_km = np.array([2.0, 5.0, 8.0, 20.0])
        narrow = copy.deepcopy(wind_hazard)
        convert_to_surge(wind_hazard, SurgeHazardConfig(decay_buffer_km=5.0))
        convert_to_surge(narrow, SurgeHazardConfig(decay_buffer_km=0.0))
        assert np.all(narrow.intensity.toarray() <= wind_hazard.intensity.toarray() + 1e-12)
        assert narrow.intensity.sum() < wind_hazard.intensity.sum()

    def test_hazard_distance_not_modified(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.ones(4)
        distance = np.array([1.0, 60.0, 2.0, 4.0])
        wind_hazard.distance2coast_km = distance.copy()
        convert_to_surge(wind_hazard, default_config)
        np.testing.assert_array_equal(wind_hazard.distance2coast_km, distance)

    def test_suppressive_decay_without_distance(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.array([11.0, 0.0, 0.0, 0.0])
        decay = coarse_decay(wind_hazard, default_config)
        assert decay[0] >= 100.0
        assert np.all(decay[1:] == 0)

    def test_suppressive_decay_far_inland(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.array([1.0, 1.0, 0.0, 1.0])
        wind_hazard.distance2coast_km = np.array([51.0, 3.0, 80.0, 8.0])
        decay = coarse_decay(wind_hazard, default_config)
        assert decay[0] >= 100.0
        assert decay[1] == 0.0
        # at sea level the decay stays distance based
        assert decay[2] == pytest.approx((80.0 - 3.0) * 0.2)
        assert decay[3] == pytest.approx(1.0)


class TestFineStrategy:
    def test_location_mean_and_fraction(self):
        surge, fraction = fine_location_surge(np.array([2.0]), np.array([0.5, 1.0, 3.0]), 0.0)
        assert surge[0] == pytest.approx(1.25)
        assert fraction[0] == pytest.approx(2 / 3)

    def test_location_decay_leaves_fraction(self):
        surge, fraction = fine_location_surge(np.array([2.0]), np.array([0.5, 1.0, 3.0]), 0.5)
        assert surge[0] == pytest.approx(0.75)
        assert fraction[0] == pytest.approx(2 / 3)

    def test_location_dry(self):
        surge, fraction = fine_location_surge(np.array([1.0, 0.2]), np.array([2.0, 3.0]), 0.0)
        np.testing.assert_array_equal(surge, 0.0)
        np.testing.assert_array_equal(fraction, 0.0)

    def _samples(self) -> FineElevationSamples:
        return FineElevationSamples(
            lon=np.array([-80.0, -80.0, -79.8, -79.7]),
            lat=np.array([25.0, 25.01, 25.1, 25.1]),
            height=np.array([0.5, 2.5, 1.0, 1.0]),
            centroid_index=np.array([0, 0, 2, 3]),
            elevation_m=np.array([1.5, 1.0, 1.0, 1.0]),
            source="srtm15plus",
        )

    def test_fine_conversion(self, wind_hazard, default_config):
        samples = self._samples()
        wind_hazard.elevation_m = samples.elevation_m.copy()
        attached = AttachedElevation("fine", "fine test", fine_samples=samples)
        convert_to_surge(wind_hazard, default_config, attached)

        assert wind_hazard.intensity[0, 0] == pytest.approx(RAW_30 - 0.5)
        assert wind_hazard.fraction[0, 0] == pytest.approx(0.5)
        # centroid 1 has no samples and falls back to its own elevation
        assert wind_hazard.intensity[1, 1] == pytest.approx(RAW_40 - 1.0)
        assert wind_hazard.fraction[1, 1] == pytest.approx(1.0)
        assert wind_hazard.surgefield_comment == "fine test"

    def test_fraction_support_matches_intensity(self, wind_hazard, default_config):
        samples = self._samples()
        wind_hazard.elevation_m = samples.elevation_m.copy()
        convert_to_surge(
            wind_hazard, default_config, AttachedElevation("fine", "", fine_samples=samples)
        )
        intensity = wind_hazard.intensity.toarray()
        fraction = wind_hazard.fraction.toarray()
        np.testing.assert_array_equal(intensity > 0, fraction > 0)

    def test_centroid_at_inland_limit_is_treated(self, wind_hazard, default_config):
        samples = FineElevationSamples(
            lon=np.array([-80.0, -79.9, -79.8, -79.7]),
            lat=np.full(4, 25.0),
            height=np.full(4, 9.0),
            centroid_index=np.arange(4),
            elevation_m=np.full(4, 9.0),
            source="srtm15plus",
        )
        wind_hazard.elevation_m = samples.elevation_m.copy()
        wind_hazard.distance2coast_km = np.array([49.9, 50.0, 50.0, 1.0])
        convert_to_surge(
            wind_hazard, default_config, AttachedElevation("fine", "", fine_samples=samples)
        )
        # 60 m/s gives about 5.2 m of surge, below the 9 m ground
        assert wind_hazard.intensity[1, 2] == 0.0
        assert wind_hazard.intensity.nnz == 0

    def test_parallel_matches_serial(self, wind_hazard):
        samples = self._samples()
        wind_hazard.elevation_m = samples.elevation_m.copy()
        other = copy.deepcopy(wind_hazard)
        attached = AttachedElevation("fine", "", fine_samples=samples)
        convert_to_surge(wind_hazard, SurgeHazardConfig(parallel=False), attached)
        convert_to_surge(other, SurgeHazardConfig(parallel=True, max_workers=2), attached)
        np.testing.assert_allclose(wind_hazard.intensity.toarray(), other.intensity.toarray())
        np.testing.assert_allclose(wind_hazard.fraction.toarray(), other.fraction.toarray())


class TestApplyLimits:
    def test_nan_and_negative_cleared(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.zeros(4)
        m = sparse.csr_matrix(np.array([[np.nan, 0, -1.0, 3.0], [0, 20.0, 0, 0]]))
        limited = apply_limits(wind_hazard, m, default_config)
        dense = limited.toarray()
        assert dense[0, 0] == 0.0
        assert dense[0, 2] == 0.0
        assert dense[0, 3] == 3.0
        assert dense[1, 1] == 10.0


class TestConvertToSurge:
    def test_metadata(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.ones(4)
        convert_to_surge(wind_hazard, default_config)
        assert wind_hazard.peril_id == "TS"
        assert wind_hazard.units == "m"
        assert wind_hazard.filename_source == "TCNA_today_prob.npz"
        assert wind_hazard.comment.startswith("TS hazard event set, generated")
        assert wind_hazard.windfield_comment is None
        assert wind_hazard.creation_comment.startswith("generating 2 surge fields took")
        assert wind_hazard.orig_event_count == 1
        assert wind_hazard.matrix_density == pytest.approx(wind_hazard.intensity.nnz / 8)

    def test_fraction_is_support(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.ones(4)
        convert_to_surge(wind_hazard, default_config)
        np.testing.assert_array_equal(
            wind_hazard.fraction.toarray(), (wind_hazard.intensity.toarray() > 0).astype(float)
        )

    def test_second_conversion_is_noop(self, wind_hazard, default_config, caplog):
        wind_hazard.elevation_m = np.ones(4)
        convert_to_surge(wind_hazard, default_config)
        first = wind_hazard.intensity.toarray().copy()
        with caplog.at_level(logging.WARNING):
            convert_to_surge(wind_hazard, default_config)
        np.testing.assert_array_equal(wind_hazard.intensity.toarray(), first)
        assert "already holds storm surge" in caplog.text

    def test_missing_elevation_raises(self, wind_hazard, default_config):
        with pytest.raises(ElevationUnavailableError):
            convert_to_surge(wind_hazard, default_config)

    def test_slr_raises_surge(self, wind_hazard):
        wind_hazard.elevation_m = np.ones(4)
        raised = copy.deepcopy(wind_hazard)
        convert_to_surge(wind_hazard, SurgeHazardConfig())
        convert_to_surge(raised, SurgeHazardConfig(slr_increment_m=0.5))
        assert raised.intensity[0, 0] == pytest.approx(wind_hazard.intensity[0, 0] + 0.5)

    def test_surge_within_bounds(self, wind_hazard, default_config):
        wind_hazard.elevation_m = np.array([0.0, 3.0, 1.0, 9.0])
        convert_to_surge(wind_hazard, default_config)
        data = wind_hazard.intensity.data
        assert np.all(data > 0)
        assert np.all(data <= 10.0)
