"""
End-to-end run from landmark files to subset comparisons on mock data.
"""

import numpy as np
import pandas as pd
import pytest

from cochlea_disparity.analysis import compare_subsets
from cochlea_disparity.ancestral import combine_tips_and_nodes, estimate_ancestral_states
from cochlea_disparity.chrono import ChronoSubsetter
from cochlea_disparity.data_loading import create_mock_landmarks, load_landmarks
from cochlea_disparity.disparity import compute_disparity, summarize_disparity
from cochlea_disparity.ordination import ordinate
from cochlea_disparity.procrustes import generalized_procrustes, to_shape_matrix
from cochlea_disparity.resampling import resample
from cochlea_disparity.tree import Tree

# Root 3; (A,B,C) 2; (A,B) 1; (D,E,F) 2.5; (D,E) 1.5; tips 0
NEWICK = "(((A:1,B:1):1,C:2):1,((D:1.5,E:1.5):1,F:2.5):0.5);"


@pytest.fixture
def ordinated(tmp_path):
    tree = Tree.from_newick(NEWICK)
    create_mock_landmarks(tmp_path, tree.tips, n_landmarks=10, seed=3)
    landmarks, ids = load_landmarks(tmp_path, n_landmarks=10)

    aligned = generalized_procrustes(landmarks)
    tips = to_shape_matrix(aligned.coords, ids)
    nodes = estimate_ancestral_states(tree, tips)
    ordination = ordinate(combine_tips_and_nodes(tips, nodes), n_components=5)
    return tree, ordination


def test_time_bins(ordinated):
    tree, ordination = ordinated
    subsetter = ChronoSubsetter(tree, ordination, seed=0)
    bins = subsetter.discrete(subsetter.equal_width_bins(2))
    assert [b.size for b in bins] == [3, 8]

    records = compute_disparity(resample(bins, n_replicates=20, seed=0))
    summary = summarize_disparity(bins, records)
    assert (summary['lower'] >= 0).all()
    assert (summary['n'] == [3, 8]).all()

    comparison = compare_subsets(records)
    assert len(comparison) == 1
    assert 0.0 <= comparison['p_value'].iloc[0] <= 1.0


@pytest.mark.parametrize("model", ["acctran", "proximity", "gradual.split"])
def test_time_slices(ordinated, model):
    tree, ordination = ordinated
    subsetter = ChronoSubsetter(tree, ordination, seed=0)
    slices = subsetter.continuous(2.5, 0.5, model=model)
    assert [s.time for s in slices] == [2.5, 2.0, 1.5, 1.0, 0.5, 0.0]
    assert all(s.size > 0 for s in slices)

    records = compute_disparity(resample(slices, n_replicates=10, seed=0))
    summary = summarize_disparity(slices, records)
    assert np.all(summary['mean'] >= 0)
    assert list(summary['n']) == [s.size for s in slices]


def test_four_tip_scenario(star_tree):
    """Star tree, lengths 1,1,2,2, one trait 0..3, two bins rarefied to one element."""
    tips = pd.DataFrame({'x': [0.0, 1.0, 2.0, 3.0]}, index=['A', 'B', 'C', 'D'])
    nodes = estimate_ancestral_states(star_tree, tips)
    weights = 1.0 / np.array([1.0, 1.0, 2.0, 2.0])
    assert nodes.loc['n5', 'x'] == pytest.approx(weights @ tips['x'].to_numpy() / weights.sum())

    ordination = ordinate(combine_tips_and_nodes(tips, nodes))
    subsetter = ChronoSubsetter(star_tree, ordination, seed=0)
    bins = subsetter.discrete(subsetter.equal_width_bins(2))
    assert len(bins) == 2
    assert [b.identifiers for b in bins] == [('n5',), ('A', 'B', 'C', 'D')]

    replicates = resample(bins, n_replicates=1, seed=0)
    assert all(len(reps[0].identifiers) == 1 for reps in replicates.values())

    records = compute_disparity(replicates)
    assert [r.subset for r in records] == [b.name for b in bins]
    for record in records:
        assert np.isscalar(record.value)
        assert record.value >= 0.0
