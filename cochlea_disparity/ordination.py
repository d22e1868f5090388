"""
Principal component ordination of the combined tip and node shape matrix.
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import logging

from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrdinationResult:
    """
    Orthogonal score axes of an ordination.

    Attributes:
        scores: DataFrame indexed by row identifier, columns PC1..PCk
        explained_variance_ratio: Fraction of variance per axis
        components: Loadings (k, n_features)
    """
    scores: pd.DataFrame
    explained_variance_ratio: pd.Series
    components: np.ndarray

    def __post_init__(self):
        self.components.flags.writeable = False

    @property
    def axes(self):
        return list(self.scores.columns)

    def matrix(self, identifiers=None) -> np.ndarray:
        """Score rows as a plain array, optionally restricted to identifiers."""
        if identifiers is None:
            return self.scores.to_numpy()
        return self.scores.loc[list(identifiers)].to_numpy()


def ordinate(
    shape_matrix: pd.DataFrame,
    n_components: Optional[int] = None,
    scale: bool = False,
    random_state: int = 42
) -> OrdinationResult:
    """
    Run PCA over the shape matrix.

    Args:
        shape_matrix: DataFrame (n_rows, n_features) indexed by row identifier
        n_components: Number of axes to keep (None for all)
        scale: Standardise features before PCA
        random_state: Seed passed to the PCA solver

    Returns:
        OrdinationResult
    """
    if shape_matrix.ndim != 2 or shape_matrix.shape[0] < 2:
        raise ValueError(f"Need at least 2 rows to ordinate, got shape {shape_matrix.shape}")

    features = shape_matrix.to_numpy(dtype=float)

    if scale:
        features = StandardScaler().fit_transform(features)

    max_components = min(features.shape)
    if n_components is not None and n_components > max_components:
        logger.warning(
            f"n_components ({n_components}) > {max_components}, keeping {max_components}"
        )
        n_components = max_components

    pca = PCA(n_components=n_components, random_state=random_state)
    scores = pca.fit_transform(features)

    columns = [f"PC{i + 1}" for i in range(scores.shape[1])]
    logger.info(
        f"PCA: {features.shape} -> {scores.shape}, "
        f"PC1 {pca.explained_variance_ratio_[0]:.2%}, "
        f"total {np.sum(pca.explained_variance_ratio_):.2%}"
    )

    return OrdinationResult(
        scores=pd.DataFrame(scores, index=shape_matrix.index.copy(), columns=columns),
        explained_variance_ratio=pd.Series(
            pca.explained_variance_ratio_, index=columns, name="explained_variance_ratio"
        ),
        components=pca.components_.copy()
    )


def write_ordination_scores(
    result: OrdinationResult,
    path: Union[str, Path],
    precision: int = 8
) -> Path:
    """
    Persist the scores table as CSV keyed by row identifier.

    Args:
        result: Ordination to write
        path: Output CSV path
        precision: Decimal places kept

    Returns:
        Written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    table = result.scores.round(precision).rename_axis("id")
    table.to_csv(path)
    logger.info(f"Saved ordination scores ({table.shape[0]} rows) to {path}")
    return path


def read_ordination_scores(path: Union[str, Path]) -> pd.DataFrame:
    """
    Load a scores table written by write_ordination_scores.

    Args:
        path: CSV path

    Returns:
        DataFrame indexed by row identifier
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Ordination scores not found: {path}")
    return pd.read_csv(path, index_col="id", dtype={"id": str}, float_precision="round_trip")


def load_ordination(
    scores_path: Union[str, Path],
    variance_path: Optional[Union[str, Path]] = None
) -> OrdinationResult:
    """
    Rebuild an OrdinationResult from exported tables.

    Loadings are not exported, so ``components`` is empty.

    Args:
        scores_path: CSV written by write_ordination_scores
        variance_path: Optional CSV written by write_variance_explained

    Returns:
        OrdinationResult
    """
    scores = read_ordination_scores(scores_path)
    if variance_path is not None and Path(variance_path).exists():
        ratio = pd.read_csv(variance_path, index_col="axis")["explained_variance_ratio"]
    else:
        ratio = pd.Series(np.nan, index=scores.columns, name="explained_variance_ratio")
    return OrdinationResult(
        scores=scores,
        explained_variance_ratio=ratio,
        components=np.empty((0, scores.shape[1]))
    )


def write_variance_explained(result: OrdinationResult, path: Union[str, Path]) -> Path:
    """Save the per-axis variance table."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    table = result.explained_variance_ratio.to_frame()
    table["cumulative"] = table["explained_variance_ratio"].cumsum()
    table.index.name = "axis"
    table.to_csv(path)
    return path
