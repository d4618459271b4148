"""
Tests for the robust statistics helpers.
"""

import math

import pytest

from utils.stats import clamp, clamp01, find_clusters, kmeans_1d, mean, median, mode, percentile, variance


class TestReductions:
    """Tests for median/mean/variance on clean and degenerate input."""

    def test_empty_input_returns_default(self):
        """Empty sequences return the default instead of NaN."""
        assert median([]) == 0.0
        assert median([], default=12.0) == 12.0
        assert mean([], default=3.0) == 3.0
        assert variance([]) == 0.0

    def test_non_finite_values_ignored(self):
        """NaN and infinity are dropped before reducing."""
        assert median([1.0, math.nan, 3.0, math.inf]) == 2.0
        assert mean([2.0, math.nan]) == 2.0

    def test_population_variance(self):
        """Variance is the population variance."""
        assert variance([1.0, 3.0]) == pytest.approx(1.0)
        assert variance([5.0, 5.0, 5.0]) == 0.0


class TestPercentile:
    """Tests for the nearest-rank percentile."""

    def test_nearest_rank_floor(self):
        """Index is floor(n * q) into the sorted data."""
        data = [4.0, 1.0, 3.0, 2.0]
        assert percentile(data, 0.25) == 2.0
        assert percentile(data, 0.5) == 3.0
        assert percentile(data, 0.0) == 1.0

    def test_upper_bound_clamped(self):
        """q = 1 returns the maximum, not an out-of-range index."""
        assert percentile([1.0, 2.0, 3.0], 1.0) == 3.0

    def test_two_element_p25_is_smaller(self):
        """p25 of two values is the smaller one."""
        assert percentile([0.9, 0.1], 0.25) == 0.1

    def test_empty_returns_default(self):
        assert percentile([], 0.5, default=7.0) == 7.0


class TestClamp:
    def test_clamp_bounds(self):
        assert clamp(5, 0, 3) == 3
        assert clamp(-1, 0, 3) == 0
        assert clamp(2, 0, 3) == 2

    def test_clamp01(self):
        assert clamp01(1.7) == 1.0
        assert clamp01(-0.2) == 0.0


class TestMode:
    """Tests for the most-common-value helper."""

    def test_most_common(self):
        assert mode([3, 2, 3, 1]) == 3

    def test_tie_resolves_to_first_seen(self):
        """Ties go to the value encountered first."""
        assert mode([2, 3, 3, 2]) == 2

    def test_empty_default(self):
        assert mode([], default="default") == "default"


class TestKMeans:
    """Tests for two-cluster 1-D k-means."""

    def test_separates_bimodal_data(self):
        """Kerning gaps and word gaps end up in different clusters."""
        small, large = kmeans_1d([0.05, 0.1, 0.08, 1.0, 1.1, 0.95])
        assert small == pytest.approx(0.0767, abs=1e-3)
        assert large == pytest.approx(1.0167, abs=1e-3)

    def test_constant_data(self):
        """All-equal data yields equal centroids."""
        assert kmeans_1d([0.5, 0.5, 0.5]) == (0.5, 0.5)

    def test_empty(self):
        assert kmeans_1d([]) == (0.0, 0.0)


class TestFindClusters:
    """Tests for tolerance clustering of margins and x positions."""

    def test_chains_consecutive_values(self):
        """Values chain while each is within tolerance of its predecessor."""
        assert find_clusters([72, 74, 76, 300, 302], tolerance=3) == [74.0, 301.0]

    def test_singletons_dropped(self):
        """Clusters below min_members are dropped."""
        assert find_clusters([10, 100, 101], tolerance=5) == [100.5]
        assert find_clusters([10, 100, 101], tolerance=5, min_members=1) == [10.0, 100.5]

    def test_empty(self):
        assert find_clusters([], tolerance=5) == []
