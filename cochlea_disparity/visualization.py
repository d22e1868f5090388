"""
Visualization utilities for the pipeline.

Provides plotting functions for ordinations, disparity through time and
the metric test.
"""

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from pathlib import Path
from typing import Dict, Optional, Sequence
import logging

from .metric_validation import MetricTestResult
from .ordination import OrdinationResult

logger = logging.getLogger(__name__)

sns.set_style("whitegrid")
plt.rcParams['figure.dpi'] = 100


def _finish(save_path: Optional[Path], description: str) -> None:
    plt.tight_layout()

    if save_path:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
        logger.info(f"Saved {description} to {save_path}")
    else:
        plt.show()

    plt.close()


def plot_ordination(
    ordination: OrdinationResult,
    tips: Sequence[str],
    groups: Optional[pd.Series] = None,
    axes: Sequence[str] = ("PC1", "PC2"),
    save_path: Optional[Path] = None,
    title: str = "Shape Space"
) -> None:
    """
    Scatter plot of two ordination axes, tips and nodes distinguished.

    Args:
        ordination: Ordination result
        tips: Tip identifiers (all other rows are drawn as nodes)
        groups: Optional tip grouping (e.g. family) for colours
        axes: Names of the two axes to draw
        save_path: Optional path to save figure
        title: Plot title
    """
    x_axis, y_axis = axes
    scores = ordination.scores
    is_tip = scores.index.isin(list(tips))

    fig, ax = plt.subplots(figsize=(10, 8))

    nodes = scores[~is_tip]
    ax.scatter(nodes[x_axis], nodes[y_axis], c='gray', marker='^', alpha=0.5, s=30, label='Nodes')

    tip_scores = scores[is_tip]
    if groups is not None:
        labels = groups.reindex(tip_scores.index)
        for group in pd.unique(labels.dropna()):
            mask = (labels == group).to_numpy()
            ax.scatter(tip_scores.loc[mask, x_axis], tip_scores.loc[mask, y_axis],
                       label=str(group), alpha=0.8, s=50)
    else:
        ax.scatter(tip_scores[x_axis], tip_scores[y_axis], alpha=0.8, s=50, label='Tips')

    ratio = ordination.explained_variance_ratio
    ax.set_xlabel(f"{x_axis} ({ratio[x_axis]:.1%})")
    ax.set_ylabel(f"{y_axis} ({ratio[y_axis]:.1%})")
    ax.set_title(title)
    ax.legend()
    ax.grid(True, alpha=0.3)

    _finish(save_path, "ordination plot")


def plot_disparity_through_time(
    summaries: Dict[str, pd.DataFrame],
    save_path: Optional[Path] = None,
    title: str = "Disparity Through Time"
) -> None:
    """
    Plot rarefied disparity against slice age, one line per model.

    Args:
        summaries: Mapping of model name -> summarize_disparity output
        save_path: Optional path to save figure
        title: Plot title
    """
    fig, ax = plt.subplots(figsize=(10, 6))
    palette = sns.color_palette("colorblind", len(summaries))

    for color, (model, summary) in zip(palette, summaries.items()):
        summary = summary.sort_values("time")
        ax.plot(summary["time"], summary["median"], color=color, linewidth=2, label=model)
        ax.fill_between(summary["time"], summary["lower"], summary["upper"],
                        color=color, alpha=0.2)

    ax.invert_xaxis()
    ax.set_xlabel('Time (Ma)')
    ax.set_ylabel('Sum of variances')
    ax.set_title(title)
    ax.legend()
    ax.grid(True, alpha=0.3)

    _finish(save_path, "disparity-through-time plot")


def plot_disparity_bins(
    summary: pd.DataFrame,
    save_path: Optional[Path] = None,
    title: str = "Disparity per Time Bin"
) -> None:
    """
    Point-and-interval plot of disparity per discrete subset.

    Args:
        summary: summarize_disparity output
        save_path: Optional path to save figure
        title: Plot title
    """
    fig, ax = plt.subplots(figsize=(10, 6))
    positions = np.arange(len(summary))
    errors = np.vstack([
        summary["median"] - summary["lower"],
        summary["upper"] - summary["median"],
    ])
    ax.errorbar(positions, summary["median"], yerr=errors, fmt='o', capsize=4)
    ax.scatter(positions, summary["observed"], marker='x', color='red', label='Observed')
    ax.set_xticks(positions)
    ax.set_xticklabels(summary["subset"], rotation=45, ha='right')
    ax.set_ylabel('Sum of variances')
    ax.set_title(title)
    ax.legend()
    ax.grid(True, alpha=0.3, axis='y')

    _finish(save_path, "time bin disparity plot")


def plot_metric_test(
    result: MetricTestResult,
    save_path: Optional[Path] = None,
    title: str = "Metric Response to Trait-Space Reduction"
) -> None:
    """
    Plot the metric against retained proportion for every shift.

    Args:
        result: run_metric_test output
        save_path: Optional path to save figure
        title: Plot title
    """
    fig, ax = plt.subplots(figsize=(8, 6))
    sns.lineplot(data=result.responses, x="retained", y="disparity", hue="shift",
                 errorbar=("pi", 95), marker='o', ax=ax)
    ax.axhline(result.baseline, color='black', linestyle='--', linewidth=1, label='Baseline')
    ax.invert_xaxis()
    ax.set_xlabel('Proportion of rows retained')
    ax.set_ylabel('Disparity')
    ax.set_title(title)
    ax.legend()

    _finish(save_path, "metric test plot")
