"""
Maximum-likelihood ancestral state estimation under Brownian motion.

For each trait column the joint ML estimate of the internal node values
minimises sum((x_child - x_parent)^2 / length) over all edges. Setting the
gradient to zero gives a sparse linear system in the internal nodes:
each internal node equals the 1/length weighted mean of its neighbours.
Columns share the system matrix but are solved independently.
"""

import numpy as np
import pandas as pd
from scipy import sparse
from scipy.sparse.linalg import spsolve
import logging

from .errors import DegenerateTreeError
from .tree import Tree

logger = logging.getLogger(__name__)


def check_branch_lengths(tree: Tree) -> None:
    """
    Fail fast on edges that make the Brownian likelihood undefined.

    Args:
        tree: Phylogeny

    Raises:
        DegenerateTreeError: If any edge has length <= 0
    """
    for parent, child in tree.edges():
        length = tree.nodes[child].length
        if not length > 0:
            raise DegenerateTreeError(
                f"Edge {tree.nodes[parent].label} -> {tree.nodes[child].label} "
                f"has length {length}; apply the zero-length correction first"
            )


def estimate_ancestral_states(
    tree: Tree,
    tip_values: pd.DataFrame
) -> pd.DataFrame:
    """
    Estimate internal node values for every trait column.

    Args:
        tree: Phylogeny with strictly positive branch lengths
        tip_values: DataFrame indexed by tip label, one column per trait

    Returns:
        DataFrame indexed by internal node label (tree numbering order),
        same columns as ``tip_values``
    """
    check_branch_lengths(tree)
    tree.match_tips(tip_values.index)

    internal = [node.index for node in tree.nodes if not node.is_tip]
    position = {index: i for i, index in enumerate(internal)}
    n_internal = len(internal)
    n_traits = tip_values.shape[1]

    if n_internal == 0:
        return pd.DataFrame(columns=tip_values.columns, index=pd.Index([], name="id"), dtype=float)

    tips = tip_values.to_numpy(dtype=float)
    tip_row = {label: i for i, label in enumerate(tip_values.index)}

    rows, cols, data = [], [], []
    rhs = np.zeros((n_internal, n_traits))

    for parent, child in tree.edges():
        weight = 1.0 / tree.nodes[child].length
        p = position[parent]
        rows.append(p)
        cols.append(p)
        data.append(weight)

        if tree.nodes[child].is_tip:
            rhs[p] += weight * tips[tip_row[tree.nodes[child].label]]
        else:
            c = position[child]
            rows.extend([c, p, c])
            cols.extend([c, c, p])
            data.extend([weight, -weight, -weight])

    system = sparse.csr_matrix((data, (rows, cols)), shape=(n_internal, n_internal))
    states = np.reshape(spsolve(system.tocsc(), rhs), (n_internal, n_traits))

    logger.info(
        f"Estimated ancestral states: {n_internal} nodes x {n_traits} traits"
    )

    return pd.DataFrame(
        states,
        index=pd.Index([tree.nodes[i].label for i in internal], name="id"),
        columns=tip_values.columns
    )


def brownian_rate(tree: Tree, states: pd.DataFrame) -> pd.Series:
    """
    ML Brownian rate (sigma^2) per trait given tip and node values.

    Args:
        tree: Phylogeny with positive branch lengths
        states: Values for every tree node (tips and internal), indexed by label

    Returns:
        Series of rates indexed by trait column
    """
    check_branch_lengths(tree)
    values = states.loc[tree.labels].to_numpy(dtype=float)
    edges = list(tree.edges())
    contrasts = np.array([
        (values[c] - values[p]) ** 2 / tree.nodes[c].length for p, c in edges
    ])
    return pd.Series(contrasts.sum(axis=0) / len(edges), index=states.columns, name="sigma2")


def combine_tips_and_nodes(
    tip_values: pd.DataFrame,
    node_values: pd.DataFrame
) -> pd.DataFrame:
    """
    Stack tip and node rows into the shape matrix used for ordination.

    Args:
        tip_values: Tip rows
        node_values: Internal node rows with the same columns

    Returns:
        DataFrame with tip rows first, then node rows
    """
    if list(tip_values.columns) != list(node_values.columns):
        raise ValueError("Tip and node matrices have different columns")
    combined = pd.concat([tip_values, node_values])
    combined.index.name = "id"
    return combined
