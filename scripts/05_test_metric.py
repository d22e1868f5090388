#!/usr/bin/env python3
"""
Script 05: Test the disparity metric.

Checks that sum of variances responds to trait-space size reductions and
stays flat under random reductions of the ordinated matrix.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from cochlea_disparity.config import load_config
from cochlea_disparity.utils import setup_logging, ensure_dir, log_banner
from cochlea_disparity.ordination import load_ordination
from cochlea_disparity.metric_validation import run_metric_test, is_monotonic, baseline_difference
from cochlea_disparity.export import write_table
from cochlea_disparity.visualization import plot_metric_test

logger = setup_logging()


def main(config_path: str = None):
    """Main function."""
    config = load_config(config_path)

    results_dir = ensure_dir(config.get('output.results_dir', 'results'))
    figures_dir = ensure_dir(config.get('output.figures_dir', 'results/figures'))
    tables_dir = ensure_dir(config.get('output.tables_dir', 'results/tables'))

    log_banner(logger, "Script 05: Test Metric")

    scores_path = results_dir / "ordination_scores.csv"
    if not scores_path.exists():
        logger.error(f"Ordination scores not found: {scores_path}")
        logger.error("Run script 03_ordinate.py first")
        return

    ordination = load_ordination(scores_path)
    shifts = config.get('metric_test.shifts')

    result = run_metric_test(
        ordination.matrix(),
        shifts=shifts,
        steps=config.get('metric_test.steps', 10),
        replicates=config.get('metric_test.replicates', 3),
        seed=config.get('random_seed', 42)
    )

    precision = config.get('precision', 8)
    write_table(result.responses, tables_dir / "metric_test_responses.csv", precision=precision)
    write_table(result.summary, tables_dir / "metric_test_summary.csv", precision=precision)

    for shift in shifts:
        if shift.startswith("size"):
            logger.info(f"{shift}: monotonic response = {is_monotonic(result, shift)}")
    if "random" in shifts:
        drift = baseline_difference(result, "random")
        logger.info(
            f"random: largest relative drift from baseline "
            f"{drift['relative_difference'].abs().max():.2%}"
        )

    plot_metric_test(result, save_path=figures_dir / "metric_test.png")

    log_banner(logger, "Metric test complete!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Test the disparity metric")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config YAML file"
    )

    args = parser.parse_args()
    main(config_path=args.config)
