"""
Tests for Brownian-motion ancestral state estimation.
"""

import numpy as np
import pandas as pd
import pytest

from cochlea_disparity.ancestral import (
    brownian_rate,
    combine_tips_and_nodes,
    estimate_ancestral_states,
)
from cochlea_disparity.errors import DegenerateTreeError, InputShapeMismatchError
from cochlea_disparity.tree import Tree


def tip_frame(values, labels, columns=('x',)):
    return pd.DataFrame(np.asarray(values, dtype=float).reshape(len(labels), -1),
                        index=labels, columns=list(columns))


class TestEstimate:

    def test_star_tree_weighted_mean(self, star_tree):
        """The root of a star is the 1/length weighted mean of its tips."""
        tips = tip_frame([0, 1, 2, 3], ['A', 'B', 'C', 'D'])
        nodes = estimate_ancestral_states(star_tree, tips)
        assert list(nodes.index) == ['n5']
        assert nodes.loc['n5', 'x'] == pytest.approx(3.5 / 3)

    def test_single_branch(self):
        tree = Tree.from_newick("(A:1);")
        nodes = estimate_ancestral_states(tree, tip_frame([4.2], ['A']))
        assert nodes.iloc[0, 0] == pytest.approx(4.2)

    def test_nested_tree(self):
        tree = Tree.from_newick("((A:1,B:1):1,C:2);")
        nodes = estimate_ancestral_states(tree, tip_frame([0, 2, 4], ['A', 'B', 'C']))
        assert nodes.loc['n4', 'x'] == pytest.approx(16 / 7)
        assert nodes.loc['n5', 'x'] == pytest.approx(10 / 7)

    def test_columns_solved_independently(self, star_tree):
        tips = tip_frame([[0, 10], [1, 10], [2, 10], [3, 10]], ['A', 'B', 'C', 'D'],
                         columns=('x', 'y'))
        nodes = estimate_ancestral_states(star_tree, tips)
        assert nodes.loc['n5', 'x'] == pytest.approx(3.5 / 3)
        assert nodes.loc['n5', 'y'] == pytest.approx(10.0)

    def test_tip_order_irrelevant(self, star_tree):
        tips = tip_frame([0, 1, 2, 3], ['A', 'B', 'C', 'D'])
        shuffled = tips.loc[['D', 'B', 'A', 'C']]
        pd.testing.assert_frame_equal(
            estimate_ancestral_states(star_tree, tips),
            estimate_ancestral_states(star_tree, shuffled)
        )

    def test_zero_branch_length(self):
        tree = Tree.from_newick("((A:0,B:1):1,C:2);")
        with pytest.raises(DegenerateTreeError):
            estimate_ancestral_states(tree, tip_frame([0, 1, 2], ['A', 'B', 'C']))

    def test_corrected_tree_solves(self):
        tree = Tree.from_newick("((A:0,B:1):1,C:2);").correct_zero_lengths()
        nodes = estimate_ancestral_states(tree, tip_frame([0, 1, 2], ['A', 'B', 'C']))
        assert np.all(np.isfinite(nodes.to_numpy()))

    def test_missing_tip(self, star_tree):
        with pytest.raises(InputShapeMismatchError):
            estimate_ancestral_states(star_tree, tip_frame([0, 1, 2], ['A', 'B', 'C']))


class TestRatesAndCombine:

    def test_rate_zero_without_change(self, star_tree):
        tips = tip_frame([1, 1, 1, 1], ['A', 'B', 'C', 'D'])
        nodes = estimate_ancestral_states(star_tree, tips)
        rates = brownian_rate(star_tree, combine_tips_and_nodes(tips, nodes))
        assert rates['x'] == pytest.approx(0.0)

    def test_rate_positive(self, nested_tree):
        tips = tip_frame([0, 2, 4], ['A', 'B', 'C'])
        nodes = estimate_ancestral_states(nested_tree, tips)
        rates = brownian_rate(nested_tree, combine_tips_and_nodes(tips, nodes))
        assert rates['x'] > 0

    def test_combine_order(self, star_tree):
        tips = tip_frame([0, 1, 2, 3], ['A', 'B', 'C', 'D'])
        nodes = estimate_ancestral_states(star_tree, tips)
        combined = combine_tips_and_nodes(tips, nodes)
        assert list(combined.index) == ['A', 'B', 'C', 'D', 'n5']
        assert combined.index.name == 'id'

    def test_combine_column_mismatch(self, star_tree):
        tips = tip_frame([0, 1, 2, 3], ['A', 'B', 'C', 'D'])
        nodes = estimate_ancestral_states(star_tree, tips).rename(columns={'x': 'y'})
        with pytest.raises(ValueError):
            combine_tips_and_nodes(tips, nodes)
