"""Shared fixtures: small dated trees and hand-built ordinations."""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from cochlea_disparity.chrono import _make_subset
from cochlea_disparity.ordination import OrdinationResult
from cochlea_disparity.tree import Tree


# Ages: n4 (root) 3, n5 2, A 1, B 0, C 0
NESTED_NEWICK = "((A:1,B:2):1,C:3);"

STAR_NEWICK = "(A:1,B:1,C:2,D:2);"


@pytest.fixture
def nested_tree():
    return Tree.from_newick(NESTED_NEWICK)


@pytest.fixture
def star_tree():
    return Tree.from_newick(STAR_NEWICK)


@pytest.fixture
def nested_ordination():
    scores = pd.DataFrame(
        {
            'PC1': [1.0, 2.0, 3.0, 0.0, 1.0],
            'PC2': [0.0, 2.0, -1.0, 0.0, 1.0],
        },
        index=pd.Index(['A', 'B', 'C', 'n4', 'n5'], name='id')
    )
    return OrdinationResult(
        scores=scores,
        explained_variance_ratio=pd.Series([0.7, 0.3], index=['PC1', 'PC2']),
        components=np.eye(2)
    )


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def make_point_subset():
    """Factory for subsets of single-observation elements."""

    def build(name, values):
        contributions = [
            [(np.asarray(v, dtype=float), 1.0, f"{name}{i}")] for i, v in enumerate(values)
        ]
        return _make_subset(name, contributions, n_axes=len(values[0]))

    return build
