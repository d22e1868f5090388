#!/usr/bin/env python3
"""
Script 04: Disparity through time.

Subsets the ordinated tree into geological time bins and into continuous
time slices under every branch model, rarefies each analysis, computes
sum-of-variances disparity and compares subsets pairwise.
"""

import argparse
import sys
from pathlib import Path
import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from cochlea_disparity.config import load_config
from cochlea_disparity.utils import setup_logging, ensure_dir, log_banner, make_rng
from cochlea_disparity.tree import Tree
from cochlea_disparity.ordination import load_ordination
from cochlea_disparity.chrono import ChronoSubsetter, group_subsets
from cochlea_disparity.resampling import resample
from cochlea_disparity.disparity import compute_disparity, summarize_disparity, records_to_frame
from cochlea_disparity.analysis import compare_subsets, compare_models, anova_table
from cochlea_disparity.export import write_table, write_spreadsheet
from cochlea_disparity.visualization import plot_disparity_through_time, plot_disparity_bins

logger = setup_logging()


def run_analysis(name, subsets, config, rng, tables_dir):
    """Resample, measure and compare one set of subsets."""
    logger.info(f"Analysis '{name}': {len(subsets)} subsets")

    replicates = resample(
        subsets,
        n_replicates=config.get('resampling.n_replicates', 100),
        mode=config.get('resampling.mode', 'min-size rarefaction'),
        seed=rng
    )
    records = compute_disparity(replicates)
    summary = summarize_disparity(
        subsets, records, quantiles=config.get('resampling.quantiles', [2.5, 97.5])
    )
    comparison = compare_subsets(records, alpha=config.get('comparison.alpha', 0.05))

    precision = config.get('precision', 8)
    write_table(summary, tables_dir / f"disparity_{name}.csv", precision=precision)
    write_table(records_to_frame(records), tables_dir / f"replicates_{name}.csv", precision=precision)
    write_table(comparison, tables_dir / f"comparisons_{name}.csv", precision=precision)

    anova = anova_table(records)
    logger.info(
        f"'{name}' ANOVA: F={anova['F'].iloc[0]:.3f}, p={anova['PR(>F)'].iloc[0]:.3e}"
    )
    return summary, comparison


def main(config_path: str = None):
    """Main function."""
    config = load_config(config_path)
    rng = make_rng(config.get('random_seed', 42))

    processed_dir = ensure_dir(config.get('data.processed_data_dir', 'data/processed'))
    results_dir = ensure_dir(config.get('output.results_dir', 'results'))
    figures_dir = ensure_dir(config.get('output.figures_dir', 'results/figures'))
    tables_dir = ensure_dir(config.get('output.tables_dir', 'results/tables'))

    log_banner(logger, "Script 04: Disparity Through Time")

    scores_path = results_dir / "ordination_scores.csv"
    if not scores_path.exists():
        logger.error(f"Ordination scores not found: {scores_path}")
        logger.error("Run script 03_ordinate.py first")
        return

    ordination = load_ordination(scores_path, results_dir / "variance_explained.csv")
    logger.info(f"Loaded ordination scores: {ordination.scores.shape}")

    tree = Tree.read(config.get('data.tree_path'), root_age=config.get('tree.root_age'))
    tree = tree.correct_zero_lengths(config.get('tree.zero_length_fraction', 0.01))

    subsetter = ChronoSubsetter(tree, ordination, seed=rng)
    summaries = {}
    comparisons = {}

    # Discrete geological bins
    bins = subsetter.discrete(
        config.get('chrono.bins'),
        names=config.get('chrono.bin_names'),
        include_nodes=config.get('chrono.include_nodes', True)
    )
    summaries['bins'], comparisons['bins'] = run_analysis('bins', bins, config, rng, tables_dir)
    plot_disparity_bins(summaries['bins'], save_path=figures_dir / "disparity_bins.png")

    # Continuous time slices, one analysis per branch model
    slice_summaries = {}
    for model in config.get('chrono.models'):
        slices = subsetter.continuous(
            config.get('chrono.t0'),
            config.get('chrono.step'),
            model=model
        )
        summary, comparison = run_analysis(model, slices, config, rng, tables_dir)
        summaries[model] = summary
        comparisons[model] = comparison
        slice_summaries[model] = summary

    plot_disparity_through_time(slice_summaries, save_path=figures_dir / "disparity_through_time.png")

    # Extant groups from the specimen metadata
    metadata_path = processed_dir / "metadata.csv"
    group_col = config.get('landmarks.group_col')
    if metadata_path.exists():
        metadata = pd.read_csv(metadata_path, index_col=0)
        if group_col in metadata.columns:
            groups = group_subsets(ordination, metadata, group_col)
            summaries['groups'], comparisons['groups'] = run_analysis(
                'groups', groups, config, rng, tables_dir
            )

    precision = config.get('precision', 8)
    write_spreadsheet(comparisons, tables_dir / "comparisons.xlsx", precision=precision)
    write_spreadsheet(summaries, tables_dir / "disparity_summaries.xlsx", precision=precision)
    write_table(compare_models(comparisons), tables_dir / "comparisons_all_models.csv",
                precision=precision)

    log_banner(logger, "Disparity analysis complete!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Disparity through time")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config YAML file"
    )

    args = parser.parse_args()
    main(config_path=args.config)
