"""
Disparity metric and per-subset summaries.

Disparity is the sum of per-axis variances of the ordinated rows.
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging

from .chrono import Subset
from .resampling import BootstrapReplicate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DisparityRecord:
    """Metric value of one replicate of one subset."""
    subset: str
    replicate: int
    value: float


def sum_of_variances(matrix: np.ndarray, weights: Optional[np.ndarray] = None) -> float:
    """
    Sum of the per-column sample variances.

    With weights the reliability-weighted unbiased variance is used. A
    single row or identical rows give 0.

    Args:
        matrix: Rows x axes
        weights: Optional per-row weights

    Returns:
        Disparity value
    """
    matrix = np.atleast_2d(np.asarray(matrix, dtype=float))
    if matrix.shape[0] < 2:
        return 0.0

    if weights is None:
        return float(np.sum(np.var(matrix, axis=0, ddof=1)))

    weights = np.asarray(weights, dtype=float)
    if weights.shape != (matrix.shape[0],):
        raise ValueError(f"weights shape {weights.shape} does not match {matrix.shape[0]} rows")

    v1 = weights.sum()
    v2 = np.sum(weights ** 2)
    denominator = v1 - v2 / v1
    if denominator <= 0:
        return 0.0
    mean = weights @ matrix / v1
    return float(np.sum(weights @ (matrix - mean) ** 2) / denominator)


def compute_disparity(
    replicates: Dict[str, List[BootstrapReplicate]]
) -> List[DisparityRecord]:
    """
    Apply the metric to every replicate.

    Args:
        replicates: Output of resampling.resample

    Returns:
        Flat list of DisparityRecord
    """
    records = [
        DisparityRecord(name, rep.index, sum_of_variances(rep.values))
        for name, reps in replicates.items()
        for rep in reps
    ]
    logger.info(f"Computed disparity for {len(records)} replicates")
    return records


def observed_disparity(subsets: Sequence[Subset]) -> pd.Series:
    """Disparity of each full subset, split observations weighted."""
    return pd.Series(
        {s.name: sum_of_variances(s.values, s.weights) for s in subsets},
        name="observed"
    )


def records_to_frame(records: Sequence[DisparityRecord]) -> pd.DataFrame:
    return pd.DataFrame(
        [(r.subset, r.replicate, r.value) for r in records],
        columns=["subset", "replicate", "disparity"]
    )


def summarize_disparity(
    subsets: Sequence[Subset],
    records: Sequence[DisparityRecord],
    quantiles: Sequence[float] = (2.5, 97.5)
) -> pd.DataFrame:
    """
    Summary table of observed and rarefied disparity per subset.

    Args:
        subsets: Subsets of the analysis
        records: Replicate disparity records
        quantiles: Lower and upper percentile bounds

    Returns:
        DataFrame with columns subset, time, n, observed, mean, median,
        lower, upper (one row per subset, subset order preserved)
    """
    lower_q, upper_q = quantiles
    observed = observed_disparity(subsets)
    frame = records_to_frame(records)
    grouped = frame.groupby("subset")["disparity"]

    rows = []
    for subset in subsets:
        row = {
            'subset': subset.name,
            'time': subset.time if subset.time is not None else (
                np.mean(subset.interval) if subset.interval is not None else np.nan
            ),
            'n': subset.size,
            'observed': observed[subset.name],
        }
        if subset.name in grouped.groups:
            values = grouped.get_group(subset.name).to_numpy()
            row.update({
                'mean': np.mean(values),
                'median': np.median(values),
                'lower': np.percentile(values, lower_q),
                'upper': np.percentile(values, upper_q),
            })
        else:
            row.update({'mean': np.nan, 'median': np.nan, 'lower': np.nan, 'upper': np.nan})
        rows.append(row)

    return pd.DataFrame(rows)
