"""
Empirical validation of the disparity metric.

The ordinated matrix is reduced in graded steps under different shifts
and the metric's response is recorded:
- random: rows removed at random; the expected metric should not move.
- size.increase: rows closest to the centroid removed (space expands).
- size.decrease: rows farthest from the centroid removed (space contracts).
A metric that captures trait-space size should respond monotonically to
the size shifts.
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Callable, Sequence
import logging

from scipy import stats

from .disparity import sum_of_variances
from .utils import make_rng, validate_array

logger = logging.getLogger(__name__)

SHIFTS = ("random", "size.increase", "size.decrease")


@dataclass(frozen=True)
class MetricTestResult:
    """
    Attributes:
        responses: Long table (shift, retained, replicate, disparity)
        baseline: Metric on the unreduced matrix
        summary: Per shift regression of disparity on retained proportion
    """
    responses: pd.DataFrame
    baseline: float
    summary: pd.DataFrame


def reduce_matrix(
    matrix: np.ndarray,
    shift: str,
    retained: float,
    rng: np.random.Generator
) -> np.ndarray:
    """
    Keep a proportion of rows according to a shift.

    Args:
        matrix: Rows x axes
        shift: One of SHIFTS
        retained: Proportion of rows kept, in (0, 1]
        rng: Random generator (random shift and distance ties)

    Returns:
        Reduced matrix (at least 2 rows)
    """
    if shift not in SHIFTS:
        raise ValueError(f"Unknown shift: {shift}")
    if not 0 < retained <= 1:
        raise ValueError(f"retained must be in (0, 1], got {retained}")

    n_rows = matrix.shape[0]
    keep = min(n_rows, max(2, int(round(n_rows * retained))))

    if shift == "random":
        rows = rng.choice(n_rows, size=keep, replace=False)
        return matrix[rows]

    distances = np.linalg.norm(matrix - matrix.mean(axis=0), axis=1)
    # Random jitter only breaks ties between equal distances
    order = np.lexsort((rng.random(n_rows), distances))
    if shift == "size.increase":
        return matrix[order[n_rows - keep:]]
    return matrix[order[:keep]]


def run_metric_test(
    matrix: np.ndarray,
    shifts: Sequence[str] = SHIFTS,
    steps: int = 10,
    replicates: int = 3,
    metric: Callable[[np.ndarray], float] = sum_of_variances,
    seed=None
) -> MetricTestResult:
    """
    Record the metric's response to graded reductions of the matrix.

    Args:
        matrix: Full ordinated matrix (rows x axes)
        shifts: Shifts to apply
        steps: Number of retained proportions, evenly spaced in (0, 1]
        replicates: Replicates per shift and proportion
        metric: Disparity metric
        seed: Seed or Generator

    Returns:
        MetricTestResult
    """
    matrix = np.asarray(matrix, dtype=float)
    validate_array(matrix, expected_ndim=2, name="matrix")
    if matrix.shape[0] < 4:
        raise ValueError(f"Metric test needs at least 4 rows, got {matrix.shape[0]}")
    if steps < 2 or replicates < 1:
        raise ValueError("Need steps >= 2 and replicates >= 1")

    rng = make_rng(seed)
    proportions = np.linspace(1.0 / steps, 1.0, steps)
    baseline = metric(matrix)

    rows = []
    for shift in shifts:
        for retained in proportions:
            for replicate in range(replicates):
                reduced = reduce_matrix(matrix, shift, retained, rng)
                rows.append((shift, retained, replicate, metric(reduced)))

    responses = pd.DataFrame(rows, columns=["shift", "retained", "replicate", "disparity"])

    summary = []
    for shift, group in responses.groupby("shift", sort=False):
        fit = stats.linregress(group["retained"], group["disparity"])
        summary.append({
            'shift': shift,
            'slope': fit.slope,
            'r_squared': fit.rvalue ** 2,
            'p_value': fit.pvalue,
        })

    logger.info(
        f"Metric test: {len(shifts)} shifts x {steps} steps x {replicates} replicates, "
        f"baseline {baseline:.4f}"
    )
    return MetricTestResult(responses=responses, baseline=baseline, summary=pd.DataFrame(summary))


def mean_response(result: MetricTestResult, shift: str) -> pd.Series:
    """Replicate mean of the metric per retained proportion."""
    selected = result.responses[result.responses["shift"] == shift]
    if selected.empty:
        raise ValueError(f"Shift '{shift}' was not tested")
    return selected.groupby("retained")["disparity"].mean().sort_index()


def is_monotonic(result: MetricTestResult, shift: str) -> bool:
    """True when the replicate means never change direction across magnitudes."""
    diffs = np.diff(mean_response(result, shift).to_numpy())
    return bool(np.all(diffs >= 0) or np.all(diffs <= 0))


def baseline_difference(result: MetricTestResult, shift: str = "random") -> pd.DataFrame:
    """
    Compare responses at each magnitude against the unreduced baseline.

    Args:
        result: Metric test output
        shift: Shift to inspect

    Returns:
        DataFrame (retained, mean, relative_difference, p_value) with a
        one-sample t-test of replicates against the baseline
    """
    selected = result.responses[result.responses["shift"] == shift]
    rows = []
    for retained, group in selected.groupby("retained"):
        values = group["disparity"].to_numpy()
        if len(values) > 1 and np.std(values) > 0:
            p_value = stats.ttest_1samp(values, result.baseline).pvalue
        else:
            p_value = np.nan
        rows.append({
            'retained': retained,
            'mean': values.mean(),
            'relative_difference': (values.mean() - result.baseline) / result.baseline,
            'p_value': p_value,
        })
    return pd.DataFrame(rows)
