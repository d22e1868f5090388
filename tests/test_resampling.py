"""
Tests for rarefaction and bootstrap resampling.
"""

import numpy as np
import pytest

from cochlea_disparity.chrono import ChronoSubsetter, _make_subset
from cochlea_disparity.errors import InsufficientDataError
from cochlea_disparity.resampling import (
    RarefactionMode,
    draw_replicate,
    rarefaction_target,
    resample,
)


@pytest.fixture
def subsets(make_point_subset):
    return [
        make_point_subset("a", [[0, 0], [1, 0], [0, 1], [1, 1], [2, 2]]),
        make_point_subset("b", [[5, 5], [6, 5], [5, 6]]),
    ]


class TestRarefaction:

    def test_target_is_smallest(self, subsets):
        assert rarefaction_target(subsets) == 3

    def test_equal_sizes(self, subsets):
        replicates = resample(subsets, n_replicates=20, seed=3)
        assert set(replicates) == {"a", "b"}
        for reps in replicates.values():
            assert len(reps) == 20
            assert all(rep.size == 3 for rep in reps)

    def test_without_replacement(self, subsets):
        replicates = resample(subsets, n_replicates=50, seed=3)
        for rep in replicates["a"]:
            assert len(set(rep.identifiers)) == rep.size

    def test_smallest_subset_fully_drawn(self, subsets):
        replicates = resample(subsets, n_replicates=5, seed=3)
        for rep in replicates["b"]:
            assert sorted(rep.identifiers) == ["b0", "b1", "b2"]

    def test_reproducible(self, subsets):
        first = resample(subsets, n_replicates=10, seed=11)
        second = resample(subsets, n_replicates=10, seed=11)
        for name in first:
            for x, y in zip(first[name], second[name]):
                assert x.identifiers == y.identifiers
                np.testing.assert_array_equal(x.values, y.values)

    def test_bootstrap_target(self, subsets):
        replicates = resample(subsets, n_replicates=5, mode="bootstrap resampling",
                              seed=3, target=8)
        assert all(rep.size == 8 for rep in replicates["b"])

    def test_rarefaction_target_too_large(self, subsets):
        with pytest.raises(InsufficientDataError):
            resample(subsets, n_replicates=5, seed=3, target=4)

    def test_empty_subset(self, subsets):
        empty = _make_subset("c", [], n_axes=2)
        with pytest.raises(InsufficientDataError):
            resample(subsets + [empty], seed=3)

    def test_no_subsets(self):
        with pytest.raises(InsufficientDataError):
            rarefaction_target([])

    def test_duplicate_names(self, subsets):
        with pytest.raises(ValueError):
            resample([subsets[0], subsets[0]], seed=3)

    def test_mode_names(self):
        assert RarefactionMode("bootstrap resampling").replace
        assert not RarefactionMode("min-size rarefaction").replace


class TestSplitElements:

    def test_one_observation_per_element(self, nested_tree, nested_ordination):
        subset = ChronoSubsetter(nested_tree, nested_ordination).slice_at(2.5, "equal.split")
        identifiers, values = draw_replicate(subset, 2, False, np.random.default_rng(0))
        assert len(identifiers) == 2
        assert values.shape == (2, 2)
        assert set(identifiers) <= {"n4", "n5", "C"}

    def test_split_frequencies_follow_weights(self, nested_tree, nested_ordination):
        subset = ChronoSubsetter(nested_tree, nested_ordination).slice_at(2.5, "gradual.split")
        rng = np.random.default_rng(5)
        draws = [
            draw_replicate(subset, 2, False, rng)[0]
            for _ in range(3000)
        ]
        # the n4 -> C branch resolves to C with probability 1/6
        share_c = np.mean([("C" in ids) for ids in draws])
        assert share_c == pytest.approx(1 / 6, abs=0.03)
