"""
Rarefaction and bootstrap resampling of subsets.

Every subset is redrawn to the same size (the smallest subset size) a
fixed number of times, so disparity comparisons are not driven by the
number of elements per subset.
"""

import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from .chrono import Subset
from .errors import InsufficientDataError
from .utils import make_rng

logger = logging.getLogger(__name__)


class RarefactionMode(str, Enum):
    """How replicate draws are taken from a subset."""
    MIN_SIZE = "min-size rarefaction"  # without replacement
    BOOTSTRAP = "bootstrap resampling"  # with replacement

    @property
    def replace(self) -> bool:
        return self is RarefactionMode.BOOTSTRAP


@dataclass(frozen=True)
class BootstrapReplicate:
    """One resampled draw of one subset."""
    subset: str
    index: int
    identifiers: Tuple[str, ...]
    values: np.ndarray

    @property
    def size(self) -> int:
        return len(self.identifiers)


def rarefaction_target(subsets: Sequence[Subset]) -> int:
    """
    Smallest subset size across an analysis.

    Args:
        subsets: All subsets of the analysis

    Returns:
        Target replicate size

    Raises:
        InsufficientDataError: If there are no subsets or one is empty
    """
    if len(subsets) == 0:
        raise InsufficientDataError("No subsets to resample")
    empty = [s.name for s in subsets if s.is_empty]
    if empty:
        raise InsufficientDataError(f"Subsets with no elements: {empty}")
    return min(s.size for s in subsets)


def draw_replicate(
    subset: Subset,
    size: int,
    replace: bool,
    rng: np.random.Generator
) -> Tuple[Tuple[str, ...], np.ndarray]:
    """
    Draw ``size`` elements from a subset.

    Elements with several observations (split branch models) resolve to
    one observation, chosen with the observation weights as probabilities.

    Args:
        subset: Subset to draw from
        size: Number of elements to draw
        replace: Draw with replacement
        rng: Random generator

    Returns:
        Tuple of (identifiers, values)
    """
    elements = subset.element_indices()
    if not replace and size > len(elements):
        raise InsufficientDataError(
            f"Cannot draw {size} elements without replacement from '{subset.name}' "
            f"({len(elements)} elements)"
        )

    rows = []
    for e in rng.choice(len(elements), size=size, replace=replace):
        observations = elements[e]
        if len(observations) == 1:
            rows.append(observations[0])
        else:
            p = subset.weights[observations] / subset.weights[observations].sum()
            rows.append(rng.choice(observations, p=p))

    rows = np.asarray(rows, dtype=int)
    return tuple(subset.identifiers[r] for r in rows), subset.values[rows].copy()


def resample(
    subsets: Sequence[Subset],
    n_replicates: int = 100,
    mode="min-size rarefaction",
    seed=None,
    target: Optional[int] = None
) -> Dict[str, List[BootstrapReplicate]]:
    """
    Produce equally sized replicates for every subset.

    Args:
        subsets: Subsets of one analysis
        n_replicates: Number of replicates per subset
        mode: RarefactionMode or its name
        seed: Seed or Generator for the draws
        target: Replicate size (default: rarefaction_target)

    Returns:
        Dict of subset name -> list of BootstrapReplicate
    """
    mode = RarefactionMode(mode)
    if n_replicates < 1:
        raise ValueError(f"n_replicates must be positive, got {n_replicates}")

    names = [s.name for s in subsets]
    if len(set(names)) != len(names):
        raise ValueError(f"Subset names are not unique: {names}")

    minimum = rarefaction_target(subsets)
    if target is None:
        target = minimum
    elif not mode.replace and target > minimum:
        raise InsufficientDataError(
            f"Rarefaction target {target} exceeds the smallest subset ({minimum})"
        )

    rng = make_rng(seed)
    replicates = {}
    for subset in subsets:
        replicates[subset.name] = [
            BootstrapReplicate(subset.name, i, *draw_replicate(subset, target, mode.replace, rng))
            for i in range(n_replicates)
        ]

    logger.info(
        f"Resampled {len(subsets)} subsets: {n_replicates} replicates of "
        f"{target} elements ({mode.value})"
    )
    return replicates
