"""
Chronological subsetting of tips, nodes and branches.

Two strategies:
- Discrete time bins: every tip/node falls in the bin containing its age.
- Continuous time slices: every branch crossing a slice contributes an
  element whose value follows one of six branch models.

Ages are times before present; the root is the oldest point.
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple
import logging

from .errors import InputShapeMismatchError, SubsetBoundaryError
from .ordination import OrdinationResult
from .tree import AGE_TOL, Tree
from .utils import make_rng

logger = logging.getLogger(__name__)


class SliceModel(str, Enum):
    """Policies for the value of a branch crossing a time slice."""
    ACCTRAN = "acctran"
    DELTRAN = "deltran"
    RANDOM = "random"
    PROXIMITY = "proximity"
    EQUAL_SPLIT = "equal.split"
    GRADUAL_SPLIT = "gradual.split"


class Endpoint(NamedTuple):
    label: str
    value: np.ndarray


# (value, weight, source identifier)
Contribution = Tuple[np.ndarray, float, str]


def _acctran(ancestor: Endpoint, descendant: Endpoint, proximity: float, rng) -> List[Contribution]:
    return [(ancestor.value, 1.0, ancestor.label)]


def _deltran(ancestor: Endpoint, descendant: Endpoint, proximity: float, rng) -> List[Contribution]:
    return [(descendant.value, 1.0, descendant.label)]


def _random(ancestor: Endpoint, descendant: Endpoint, proximity: float, rng) -> List[Contribution]:
    chosen = descendant if rng.random() < 0.5 else ancestor
    return [(chosen.value, 1.0, chosen.label)]


def _proximity(ancestor: Endpoint, descendant: Endpoint, proximity: float, rng) -> List[Contribution]:
    value = (1.0 - proximity) * ancestor.value + proximity * descendant.value
    return [(value, 1.0, f"{ancestor.label}-{descendant.label}")]


def _equal_split(ancestor: Endpoint, descendant: Endpoint, proximity: float, rng) -> List[Contribution]:
    return [
        (ancestor.value, 0.5, ancestor.label),
        (descendant.value, 0.5, descendant.label),
    ]


def _gradual_split(ancestor: Endpoint, descendant: Endpoint, proximity: float, rng) -> List[Contribution]:
    return [
        (ancestor.value, 1.0 - proximity, ancestor.label),
        (descendant.value, proximity, descendant.label),
    ]


# Each model maps (ancestor, descendant, proximity to the descendant, rng)
# to the observations the branch contributes.
MODEL_FUNCTIONS: Dict[SliceModel, Callable[..., List[Contribution]]] = {
    SliceModel.ACCTRAN: _acctran,
    SliceModel.DELTRAN: _deltran,
    SliceModel.RANDOM: _random,
    SliceModel.PROXIMITY: _proximity,
    SliceModel.EQUAL_SPLIT: _equal_split,
    SliceModel.GRADUAL_SPLIT: _gradual_split,
}


@dataclass(frozen=True)
class Subset:
    """
    A named group of ordinated observations.

    Observations that share a ``groups`` id come from one sampled element
    (a branch under a split model contributes two observations); their
    ``weights`` sum to one and act as draw probabilities when resampling.
    """
    name: str
    identifiers: Tuple[str, ...]
    values: np.ndarray
    weights: np.ndarray
    groups: np.ndarray
    time: Optional[float] = None
    interval: Optional[Tuple[float, float]] = None
    model: Optional[SliceModel] = None

    def __post_init__(self):
        for array in (self.values, self.weights, self.groups):
            array.flags.writeable = False

    @property
    def size(self) -> int:
        """Number of sampled elements (not observations)."""
        return len(np.unique(self.groups))

    @property
    def is_empty(self) -> bool:
        return len(self.identifiers) == 0

    def element_indices(self) -> List[np.ndarray]:
        """Observation indices of every element, in element order."""
        return [np.flatnonzero(self.groups == g) for g in np.unique(self.groups)]


def _make_subset(
    name: str,
    contributions: List[List[Contribution]],
    n_axes: int,
    **tags
) -> Subset:
    identifiers, values, weights, groups = [], [], [], []
    for group, element in enumerate(contributions):
        for value, weight, source in element:
            identifiers.append(source)
            values.append(value)
            weights.append(weight)
            groups.append(group)
    return Subset(
        name=name,
        identifiers=tuple(identifiers),
        values=np.array(values, dtype=float).reshape(len(values), n_axes),
        weights=np.array(weights, dtype=float),
        groups=np.array(groups, dtype=int),
        **tags
    )


class ChronoSubsetter:
    """
    Build time subsets of a tree whose tips and nodes have been ordinated.

    Args:
        tree: Dated phylogeny
        ordination: Scores for every tree tip and internal node
        seed: Seed for the ``random`` slice model
    """

    def __init__(self, tree: Tree, ordination: OrdinationResult, seed=None):
        missing = [label for label in tree.labels if label not in ordination.scores.index]
        if missing:
            raise InputShapeMismatchError(
                f"Ordination has no scores for tree nodes {missing[:10]}"
            )
        self.tree = tree
        self.ordination = ordination
        self.ages = tree.ages
        self._scores = ordination.scores.loc[tree.labels].to_numpy()
        self._rng = make_rng(seed)

    @property
    def n_axes(self) -> int:
        return self._scores.shape[1]

    @property
    def youngest_age(self) -> float:
        return float(self.ages.min())

    def _endpoint(self, index: int) -> Endpoint:
        return Endpoint(self.tree.nodes[index].label, self._scores[index])

    def equal_width_bins(self, n_bins: int) -> np.ndarray:
        """
        Boundaries of ``n_bins`` equal-width bins spanning the tree depth.

        Args:
            n_bins: Number of bins

        Returns:
            Strictly decreasing ages from the root age to the youngest tip
        """
        if n_bins < 1:
            raise SubsetBoundaryError(f"Need at least one bin, got {n_bins}")
        return np.linspace(self.tree.root_age, self.youngest_age, n_bins + 1)

    def discrete(
        self,
        boundaries: Sequence[float],
        names: Optional[Sequence[str]] = None,
        include_nodes: bool = True
    ) -> List[Subset]:
        """
        Partition tips (and optionally nodes) into time bins.

        A bin covers ``(younger, older]``; the youngest bin also includes
        its lower boundary so every element lands in exactly one bin.

        Args:
            boundaries: Strictly decreasing bin boundary ages
            names: Optional bin names (one per bin)
            include_nodes: Also assign internal nodes

        Returns:
            One Subset per bin, oldest first
        """
        boundaries = np.asarray(boundaries, dtype=float)
        if boundaries.ndim != 1 or len(boundaries) < 2:
            raise SubsetBoundaryError("Time bins need at least two boundaries")
        if np.any(np.diff(boundaries) >= 0):
            raise SubsetBoundaryError(
                f"Bin boundaries must be strictly decreasing ages, got {boundaries.tolist()}"
            )
        n_bins = len(boundaries) - 1
        if names is not None and len(names) != n_bins:
            raise SubsetBoundaryError(f"{len(names)} bin names for {n_bins} bins")
        if names is None:
            names = [f"{boundaries[i]:g}-{boundaries[i + 1]:g}" for i in range(n_bins)]

        members: List[List[int]] = [[] for _ in range(n_bins)]
        for node in self.tree.nodes:
            if not node.is_tip and not include_nodes:
                continue
            members[self._bin_of(node.label, boundaries)].append(node.index)

        subsets = []
        for i, indices in enumerate(members):
            contributions = [[(self._scores[j], 1.0, self.tree.nodes[j].label)] for j in indices]
            subsets.append(_make_subset(
                names[i],
                contributions,
                self.n_axes,
                interval=(float(boundaries[i]), float(boundaries[i + 1]))
            ))
            logger.debug(f"Bin {names[i]}: {len(indices)} elements")

        logger.info(
            f"Discrete subsets: {n_bins} bins, sizes {[s.size for s in subsets]}"
        )
        return subsets

    def _bin_of(self, label: str, boundaries: np.ndarray) -> int:
        age = float(self.ages[label])
        if age > boundaries[0] + AGE_TOL or age < boundaries[-1] - AGE_TOL:
            raise SubsetBoundaryError(
                f"'{label}' (age {age:.4f}) lies outside the bins "
                f"{boundaries[0]:g}-{boundaries[-1]:g}"
            )
        for i in range(len(boundaries) - 1):
            if age > boundaries[i + 1] + AGE_TOL:
                return i
        return len(boundaries) - 2

    def slice_at(self, age: float, model="acctran") -> Subset:
        """
        Sample the tree at one point in time.

        Tips and nodes sitting exactly at ``age`` count as themselves;
        every branch strictly crossing ``age`` contributes one element
        whose value follows ``model``.

        Args:
            age: Slice age
            model: SliceModel or its name

        Returns:
            Subset (empty when ``age`` is outside the tree's time range)
        """
        model = SliceModel(model)
        name = f"{age:g}"

        if age > self.tree.root_age + AGE_TOL or age < self.youngest_age - AGE_TOL:
            logger.debug(f"Slice {name} is outside the tree's time range")
            return _make_subset(name, [], self.n_axes, time=float(age), model=model)

        ages = self.ages.to_numpy()
        contribution = MODEL_FUNCTIONS[model]
        elements = []

        for node in self.tree.nodes:
            if abs(ages[node.index] - age) <= AGE_TOL:
                elements.append([(self._scores[node.index], 1.0, node.label)])

        for parent, child in self.tree.edges():
            older, younger = ages[parent], ages[child]
            if younger + AGE_TOL < age < older - AGE_TOL:
                proximity = (older - age) / (older - younger)
                elements.append(contribution(
                    self._endpoint(parent), self._endpoint(child), proximity, self._rng
                ))

        return _make_subset(name, elements, self.n_axes, time=float(age), model=model)

    def slice_times(self, times: Sequence[float], model="acctran") -> List[Subset]:
        """Slice the tree at each of the given ages."""
        subsets = [self.slice_at(t, model) for t in times]
        logger.info(
            f"Time slices ({SliceModel(model).value}): {len(subsets)} slices, "
            f"sizes {[s.size for s in subsets]}"
        )
        return subsets

    def continuous(self, t0: float, step: float, model="acctran") -> List[Subset]:
        """
        Equidistant time slices from ``t0`` to the present.

        Args:
            t0: Age of the first slice
            step: Time between slices
            model: SliceModel or its name

        Returns:
            One Subset per slice, oldest first
        """
        if step <= 0:
            raise SubsetBoundaryError(f"Slice step must be positive, got {step}")
        if t0 < 0:
            raise SubsetBoundaryError(f"t0 must be an age before present, got {t0}")
        if t0 > self.tree.root_age + AGE_TOL:
            raise SubsetBoundaryError(
                f"t0 = {t0} is older than the tree root ({self.tree.root_age:.4f})"
            )
        n_steps = int(np.floor(t0 / step + 1e-9))
        times = t0 - step * np.arange(n_steps + 1)
        return self.slice_times(times, model)


def group_subsets(
    ordination: OrdinationResult,
    metadata: pd.DataFrame,
    column: str
) -> List[Subset]:
    """
    Subsets of tips grouped by a metadata column (e.g. family).

    Args:
        ordination: Scores with the metadata taxa among its rows
        metadata: DataFrame indexed by taxon
        column: Grouping column

    Returns:
        One Subset per group value, in sorted order
    """
    if column not in metadata.columns:
        raise ValueError(f"Metadata has no column '{column}'")
    missing = [t for t in metadata.index if t not in ordination.scores.index]
    if missing:
        raise InputShapeMismatchError(f"Taxa without ordination scores: {missing}")

    subsets = []
    for group, rows in metadata.groupby(column, sort=True):
        contributions = [
            [(ordination.scores.loc[taxon].to_numpy(), 1.0, taxon)] for taxon in rows.index
        ]
        subsets.append(_make_subset(str(group), contributions, ordination.scores.shape[1]))
    return subsets
