#!/usr/bin/env python3
"""
Script 01: Load and align cochlea landmarks.

Reads per-specimen landmark files, the sliding semilandmark table and the
specimen metadata, runs Procrustes superimposition, and saves the aligned
shape matrix for downstream analysis.
"""

import argparse
import sys
from pathlib import Path
import numpy as np
import pandas as pd

# Add package root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cochlea_disparity.config import load_config
from cochlea_disparity.utils import setup_logging, ensure_dir, log_banner
from cochlea_disparity.data_loading import (
    load_landmarks,
    load_sliders,
    load_metadata,
    create_mock_landmarks
)
from cochlea_disparity.procrustes import generalized_procrustes, to_shape_matrix
from cochlea_disparity.tree import Tree

logger = setup_logging()


def main(config_path: str = None, use_mock: bool = False):
    """Main function."""
    config = load_config(config_path)

    processed_dir = ensure_dir(config.get('data.processed_data_dir', 'data/processed'))
    landmarks_dir = config.get('data.landmarks_dir')
    n_landmarks = config.get('landmarks.n_landmarks')
    n_dim = config.get('landmarks.n_dim', 3)
    skip_header = config.get('landmarks.skip_header', 2)

    log_banner(logger, "Script 01: Align Landmarks")

    if use_mock:
        logger.info("Writing mock landmarks for the tips of the configured tree")
        tree = Tree.read(config.get('data.tree_path'))
        landmarks_dir = ensure_dir(processed_dir / "mock_landmarks")
        create_mock_landmarks(
            landmarks_dir,
            tree.tips,
            n_landmarks=n_landmarks,
            n_dim=n_dim,
            skip_header=skip_header,
            seed=config.get('random_seed', 42)
        )

    landmarks, specimen_ids = load_landmarks(
        landmarks_dir,
        n_landmarks=n_landmarks,
        n_dim=n_dim,
        skip_header=skip_header,
        pattern=config.get('data.landmark_pattern', '*.txt')
    )

    sliders = None
    sliders_path = config.get('data.sliders_path')
    if sliders_path is not None and Path(sliders_path).exists():
        sliders = load_sliders(sliders_path, n_landmarks)
    else:
        logger.warning(f"No sliding semilandmark table at {sliders_path}; all points fixed")

    metadata_path = config.get('data.metadata_path')
    if metadata_path is not None and Path(metadata_path).exists():
        metadata = load_metadata(
            metadata_path,
            specimen_ids,
            taxon_col=config.get('landmarks.taxon_col', 'Taxon')
        )
        metadata.to_csv(processed_dir / "metadata.csv")
        logger.info(f"Saved ordered metadata to {processed_dir / 'metadata.csv'}")

    logger.info("Running Procrustes superimposition...")
    result = generalized_procrustes(
        landmarks,
        sliders=sliders,
        max_iter=config.get('procrustes.max_iter', 100),
        tol=config.get('procrustes.tol', 1e-7)
    )

    aligned_path = processed_dir / "aligned_coords.npy"
    np.save(aligned_path, result.coords)
    logger.info(f"Saved aligned coordinates to {aligned_path}")

    shapes = to_shape_matrix(result.coords, specimen_ids)
    shapes_path = processed_dir / "tip_shapes.csv"
    shapes.to_csv(shapes_path)
    logger.info(f"Saved tip shape matrix {shapes.shape} to {shapes_path}")

    sizes = pd.DataFrame({'id': specimen_ids, 'centroid_size': result.centroid_sizes})
    sizes.to_csv(processed_dir / "centroid_sizes.csv", index=False)

    log_banner(logger, "Landmark alignment complete!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Align cochlea landmarks")
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config YAML file"
    )
    parser.add_argument(
        "--use-mock",
        action="store_true",
        help="Generate mock landmarks for the tree tips instead of reading real data"
    )

    args = parser.parse_args()
    main(config_path=args.config, use_mock=args.use_mock)
