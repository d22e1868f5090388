"""
Statistical comparison of disparity across subsets.

Fits a linear model of replicate disparity on subset identity and tests
every pair of subsets with a Bonferroni correction.
"""

import itertools
import numpy as np
import pandas as pd
from typing import Dict, Sequence
import logging

import statsmodels.api as sm
import statsmodels.formula.api as smf
from statsmodels.stats.multitest import multipletests

from .disparity import DisparityRecord, records_to_frame
from .errors import InsufficientDataError

logger = logging.getLogger(__name__)


def _fit_subset_model(records: Sequence[DisparityRecord]):
    """OLS of disparity on categorical subset, levels in first-seen order."""
    frame = records_to_frame(records)
    levels = list(dict.fromkeys(frame["subset"]))

    if len(levels) < 2:
        raise InsufficientDataError(
            f"Need at least 2 subsets with replicates to compare, got {len(levels)}"
        )

    frame["subset"] = pd.Categorical(frame["subset"], categories=levels)
    fit = smf.ols("disparity ~ C(subset)", data=frame).fit()
    return fit, levels


def compare_subsets(
    records: Sequence[DisparityRecord],
    alpha: float = 0.05
) -> pd.DataFrame:
    """
    Pairwise disparity contrasts between subsets.

    The first subset is the model's reference level; each pairwise
    contrast is a t-test on the fitted group means. Significance uses the
    deflated threshold alpha / number of comparisons.

    Args:
        records: Replicate disparity records of one analysis
        alpha: Family-wise significance level

    Returns:
        DataFrame with columns comparison, subset_a, subset_b, estimate,
        std_error, t, p_value, p_corrected, significant
    """
    fit, levels = _fit_subset_model(records)
    n_params = len(fit.params)
    if n_params != len(levels):
        raise InsufficientDataError(
            f"Model has {n_params} parameters for {len(levels)} subsets"
        )

    rows = []
    for a, b in itertools.combinations(range(len(levels)), 2):
        # Intercept is the reference mean; parameter i is level i - reference
        contrast = np.zeros(n_params)
        if a > 0:
            contrast[a] += 1.0
        if b > 0:
            contrast[b] -= 1.0
        result = fit.t_test(contrast)
        rows.append({
            'comparison': f"{levels[a]} : {levels[b]}",
            'subset_a': levels[a],
            'subset_b': levels[b],
            'estimate': float(np.ravel(result.effect)[0]),
            'std_error': float(np.ravel(result.sd)[0]),
            't': float(np.ravel(result.tvalue)[0]),
            'p_value': float(np.ravel(result.pvalue)[0]),
        })

    table = pd.DataFrame(rows)
    n_comparisons = len(table)
    threshold = alpha / n_comparisons

    _, corrected, _, _ = multipletests(
        table['p_value'].fillna(1.0), alpha=alpha, method='bonferroni'
    )
    table['p_corrected'] = np.where(table['p_value'].isna(), np.nan, corrected)
    table['significant'] = table['p_value'] < threshold
    table.attrs['alpha'] = alpha
    table.attrs['threshold'] = threshold

    logger.info(
        f"Compared {len(levels)} subsets: {n_comparisons} contrasts, "
        f"{int(table['significant'].sum())} significant at alpha/m = {threshold:.2e}"
    )
    return table


def anova_table(records: Sequence[DisparityRecord]) -> pd.DataFrame:
    """
    Overall type-II ANOVA of disparity on subset.

    Args:
        records: Replicate disparity records

    Returns:
        statsmodels ANOVA table
    """
    fit, _ = _fit_subset_model(records)
    return sm.stats.anova_lm(fit, typ=2)


def compare_models(tables: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    """
    Stack per-model comparison tables with a model column.

    Args:
        tables: Mapping of model name -> compare_subsets output

    Returns:
        Combined DataFrame
    """
    if not tables:
        raise InsufficientDataError("No comparison tables to combine")
    frames = [table.assign(model=name) for name, table in tables.items()]
    combined = pd.concat(frames, ignore_index=True)
    columns = ['model'] + [c for c in combined.columns if c != 'model']
    return combined[columns]
