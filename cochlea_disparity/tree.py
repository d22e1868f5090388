"""
Dated phylogeny held as an arena of node records.

Nodes are indexed by integer with parent/children indices instead of
object links. Numbering follows the usual phylogenetics convention: tips
are 1..n in tree order, internal nodes n+1.. in preorder, the root being
n+1. Internal nodes are labelled ``n<number>``.
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass, field, replace
from io import StringIO
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union
import logging

from Bio import Phylo

from .errors import DegenerateTreeError, InputShapeMismatchError

logger = logging.getLogger(__name__)

# Tolerance when comparing ages in time units
AGE_TOL = 1e-8


@dataclass(frozen=True)
class TreeNode:
    """One node of the arena."""
    index: int
    label: str
    parent: int  # -1 for the root
    children: Tuple[int, ...]
    length: float  # length of the edge to the parent, 0 for the root
    depth: float  # distance from the root

    @property
    def is_tip(self) -> bool:
        return len(self.children) == 0

    @property
    def is_root(self) -> bool:
        return self.parent < 0


@dataclass(frozen=True)
class Tree:
    """
    Rooted phylogeny with branch lengths and an absolute time scale.

    Attributes:
        nodes: Node records; ``nodes[i].index == i``
        fixed_root_age: Age of the root; None means the tree depth, so the
            youngest tip sits at age 0
    """
    nodes: Tuple[TreeNode, ...]
    fixed_root_age: Optional[float] = None
    _lookup: Dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        lookup = {node.label: node.index for node in self.nodes}
        if len(lookup) != len(self.nodes):
            labels = [node.label for node in self.nodes]
            clashes = sorted({label for label in labels if labels.count(label) > 1})
            raise DegenerateTreeError(
                f"Tree node labels are not unique: {', '.join(clashes)} "
                f"(internal nodes are labelled n<number>, so tips may not use that form)"
            )
        object.__setattr__(self, "_lookup", lookup)

        if self.fixed_root_age is not None and self.fixed_root_age < self.depth - AGE_TOL:
            raise DegenerateTreeError(
                f"Root age {self.fixed_root_age} is younger than the tree depth {self.depth:.4f}"
            )

    @classmethod
    def from_newick(
        cls,
        newick: str,
        root_age: Optional[float] = None
    ) -> "Tree":
        """
        Build a tree from a Newick string.

        Args:
            newick: Newick text with branch lengths
            root_age: Absolute age of the root (None -> tree depth)

        Returns:
            Tree
        """
        phylo = Phylo.read(StringIO(newick.strip()), "newick")
        return cls._from_phylo(phylo, root_age)

    @classmethod
    def read(
        cls,
        path: Union[str, Path],
        root_age: Optional[float] = None
    ) -> "Tree":
        """
        Read a Newick file.

        Args:
            path: Path to the tree file
            root_age: Absolute age of the root (None -> tree depth)

        Returns:
            Tree
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Tree file not found: {path}")

        logger.info(f"Loading phylogeny from {path}")
        tree = cls._from_phylo(Phylo.read(str(path), "newick"), root_age)
        logger.info(
            f"Loaded tree: {tree.n_tips} tips, {len(tree.internal_nodes)} internal nodes, "
            f"root age {tree.root_age:.3f}"
        )
        return tree

    @classmethod
    def _from_phylo(cls, phylo, root_age: Optional[float]) -> "Tree":
        terminals = phylo.get_terminals()
        internals = [c for c in phylo.find_clades(order="preorder") if not c.is_terminal()]

        names = [t.name for t in terminals]
        if any(name is None or name == "" for name in names):
            raise DegenerateTreeError("Tree has unnamed tips")
        if len(set(names)) != len(names):
            clashes = sorted({name for name in names if names.count(name) > 1})
            raise DegenerateTreeError(f"Tree has duplicated tip names: {', '.join(clashes)}")

        n_tips = len(terminals)
        index = {id(c): i for i, c in enumerate(terminals)}
        index.update({id(c): n_tips + i for i, c in enumerate(internals)})

        parents = {}
        for clade in internals:
            for child in clade.clades:
                parents[id(child)] = index[id(clade)]

        records = [None] * len(index)
        for clade in terminals + internals:
            i = index[id(clade)]
            is_root = clade is phylo.root
            length = 0.0 if is_root or clade.branch_length is None else float(clade.branch_length)
            if length < 0:
                raise DegenerateTreeError(f"Negative branch length on '{clade.name or i + 1}'")
            records[i] = TreeNode(
                index=i,
                label=clade.name if clade.is_terminal() else f"n{i + 1}",
                parent=-1 if is_root else parents[id(clade)],
                children=tuple(index[id(c)] for c in clade.clades),
                length=length,
                depth=0.0
            )

        return cls(nodes=_with_depths(records), fixed_root_age=root_age)

    @property
    def n_tips(self) -> int:
        return sum(1 for node in self.nodes if node.is_tip)

    @property
    def root(self) -> TreeNode:
        return next(node for node in self.nodes if node.is_root)

    @property
    def tips(self) -> List[str]:
        return [node.label for node in self.nodes if node.is_tip]

    @property
    def internal_nodes(self) -> List[str]:
        return [node.label for node in self.nodes if not node.is_tip]

    @property
    def labels(self) -> List[str]:
        return [node.label for node in self.nodes]

    @property
    def depth(self) -> float:
        """Maximum root-to-tip distance."""
        return max(node.depth for node in self.nodes)

    @property
    def root_age(self) -> float:
        return self.depth if self.fixed_root_age is None else float(self.fixed_root_age)

    @property
    def ages(self) -> pd.Series:
        """Age (time before present) of every node, indexed by label."""
        return pd.Series(
            [self.root_age - node.depth for node in self.nodes],
            index=self.labels,
            name="age"
        )

    def index_of(self, label: str) -> int:
        try:
            return self._lookup[label]
        except KeyError:
            raise KeyError(f"No node labelled '{label}'") from None

    def node(self, label: str) -> TreeNode:
        return self.nodes[self.index_of(label)]

    def age(self, label: str) -> float:
        return self.root_age - self.node(label).depth

    def edges(self) -> Iterator[Tuple[int, int]]:
        """Yield (parent, child) index pairs for every edge."""
        for node in self.nodes:
            if not node.is_root:
                yield node.parent, node.index

    def branch_lengths(self) -> np.ndarray:
        return np.array([self.nodes[c].length for _, c in self.edges()])

    def correct_zero_lengths(self, fraction: float = 0.01) -> "Tree":
        """
        Replace zero-length edges with a fraction of the mean edge length.

        Args:
            fraction: Share of the mean branch length given to each
                zero-length edge

        Returns:
            New Tree; the original is left untouched
        """
        lengths = self.branch_lengths()
        if len(lengths) == 0 or not np.any(lengths > 0):
            raise DegenerateTreeError("Tree has no positive branch length to rescale from")

        fill = fraction * float(np.mean(lengths))
        n_zero = int(np.sum(lengths == 0))
        if n_zero == 0:
            return self

        records = [
            replace(node, length=fill) if not node.is_root and node.length == 0 else node
            for node in self.nodes
        ]
        logger.info(f"Replaced {n_zero} zero-length branches with length {fill:.6f}")
        return replace(self, nodes=_with_depths(records))

    def match_tips(self, labels: Sequence[str]) -> None:
        """
        Check that data rows and tree tips describe the same taxa.

        Args:
            labels: Row identifiers of the tip data
        """
        tips = set(self.tips)
        rows = set(labels)
        if tips != rows:
            raise InputShapeMismatchError(
                f"Tips without data: {sorted(tips - rows)}; "
                f"data rows not in tree: {sorted(rows - tips)}"
            )


def _with_depths(records: List[TreeNode]) -> Tuple[TreeNode, ...]:
    """Recompute root distances with a preorder walk over the arena."""
    records = list(records)
    root = next(node.index for node in records if node.is_root)
    stack = [root]
    records[root] = replace(records[root], depth=0.0)
    while stack:
        parent = records[stack.pop()]
        for child in parent.children:
            records[child] = replace(records[child], depth=parent.depth + records[child].length)
            stack.append(child)
    return tuple(records)
