#!/usr/bin/env python3
"""
Script 03: Ordinate tips and ancestral nodes.

Runs PCA over the combined shape matrix and exports the score table.
"""

import argparse
import sys
from pathlib import Path
import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from cochlea_disparity.config import load_config
from cochlea_disparity.utils import setup_logging, ensure_dir, log_banner
from cochlea_disparity.ordination import (
    ordinate,
    write_ordination_scores,
    write_variance_explained
)
from cochlea_disparity.tree import Tree
from cochlea_disparity.visualization import plot_ordination

logger = setup_logging()


def main(config_path: str = None):
    """Main function."""
    config = load_config(config_path)

    processed_dir = ensure_dir(config.get('data.processed_data_dir', 'data/processed'))
    results_dir = ensure_dir(config.get('output.results_dir', 'results'))
    figures_dir = ensure_dir(config.get('output.figures_dir', 'results/figures'))

    log_banner(logger, "Script 03: Ordinate")

    matrix_path = processed_dir / "shape_matrix.csv"
    if not matrix_path.exists():
        logger.error(f"Shape matrix not found: {matrix_path}")
        logger.error("Run script 02_estimate_ancestral_states.py first")
        return

    shape_matrix = pd.read_csv(matrix_path, index_col="id", float_precision="round_trip")
    logger.info(f"Loaded shape matrix: {shape_matrix.shape}")

    result = ordinate(
        shape_matrix,
        n_components=config.get('ordination.n_components'),
        scale=config.get('ordination.scale', False),
        random_state=config.get('random_seed', 42)
    )

    write_ordination_scores(result, results_dir / "ordination_scores.csv",
                            precision=config.get('precision', 8))
    write_variance_explained(result, results_dir / "variance_explained.csv")

    tree = Tree.read(config.get('data.tree_path'), root_age=config.get('tree.root_age'))
    groups = None
    metadata_path = processed_dir / "metadata.csv"
    if metadata_path.exists():
        metadata = pd.read_csv(metadata_path, index_col=0)
        group_col = config.get('landmarks.group_col')
        if group_col in metadata.columns:
            groups = metadata[group_col]

    plot_ordination(result, tree.tips, groups=groups,
                    save_path=figures_dir / "ordination_pc1_pc2.png")

    log_banner(logger, "Ordination complete!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Ordinate tips and nodes")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config YAML file"
    )

    args = parser.parse_args()
    main(config_path=args.config)
