#!/usr/bin/env python3
"""
Script 02: Estimate ancestral shapes.

Loads the dated phylogeny, corrects zero-length branches, and estimates
Brownian-motion ancestral values for every shape coordinate.
"""

import argparse
import sys
from pathlib import Path
import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from cochlea_disparity.config import load_config
from cochlea_disparity.utils import setup_logging, ensure_dir, log_banner
from cochlea_disparity.tree import Tree
from cochlea_disparity.ancestral import (
    estimate_ancestral_states,
    brownian_rate,
    combine_tips_and_nodes
)

logger = setup_logging()


def main(config_path: str = None):
    """Main function."""
    config = load_config(config_path)

    processed_dir = ensure_dir(config.get('data.processed_data_dir', 'data/processed'))

    log_banner(logger, "Script 02: Estimate Ancestral States")

    shapes_path = processed_dir / "tip_shapes.csv"
    if not shapes_path.exists():
        logger.error(f"Tip shapes not found: {shapes_path}")
        logger.error("Run script 01_align_landmarks.py first")
        return

    tip_shapes = pd.read_csv(shapes_path, index_col="id", float_precision="round_trip")
    logger.info(f"Loaded tip shapes: {tip_shapes.shape}")

    tree = Tree.read(config.get('data.tree_path'), root_age=config.get('tree.root_age'))
    tree = tree.correct_zero_lengths(config.get('tree.zero_length_fraction', 0.01))

    node_shapes = estimate_ancestral_states(tree, tip_shapes)
    shape_matrix = combine_tips_and_nodes(tip_shapes.loc[tree.tips], node_shapes)

    matrix_path = processed_dir / "shape_matrix.csv"
    shape_matrix.to_csv(matrix_path)
    logger.info(f"Saved tip + node shape matrix {shape_matrix.shape} to {matrix_path}")

    rates = brownian_rate(tree, shape_matrix)
    rates.to_csv(processed_dir / "brownian_rates.csv", header=True)
    logger.info(f"Mean Brownian rate across coordinates: {rates.mean():.4e}")

    ages_path = processed_dir / "node_ages.csv"
    tree.ages.rename_axis("id").to_csv(ages_path, header=True)
    logger.info(f"Saved node ages to {ages_path}")

    log_banner(logger, "Ancestral state estimation complete!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Estimate ancestral shapes")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config YAML file"
    )

    args = parser.parse_args()
    main(config_path=args.config)
