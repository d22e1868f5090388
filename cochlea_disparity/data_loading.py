"""
Data loading utilities for cochlea landmark data.

Handles per-specimen landmark files, the sliding semilandmark table, and
specimen metadata.
"""

import numpy as np
import pandas as pd
from pathlib import Path
from typing import Union, List, Tuple
import logging

from .errors import AlignmentFailureError, InputShapeMismatchError
from .utils import make_rng

logger = logging.getLogger(__name__)


def read_landmark_file(
    path: Union[str, Path],
    n_landmarks: int,
    n_dim: int = 3,
    skip_header: int = 2
) -> np.ndarray:
    """
    Read one specimen's landmark coordinates.

    Expected format: ``skip_header`` header lines, then one whitespace
    separated row per landmark: landmark index followed by ``n_dim``
    coordinates.

    Args:
        path: Path to landmark file
        n_landmarks: Declared number of landmarks
        n_dim: Declared number of coordinate dimensions
        skip_header: Number of header lines to skip

    Returns:
        Coordinates array (n_landmarks, n_dim)
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Landmark file not found: {path}")

    try:
        df = pd.read_csv(path, sep=r"\s+", skiprows=skip_header, header=None)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise InputShapeMismatchError(f"{path.name}: malformed landmark table ({e})") from e

    if df.shape[0] != n_landmarks:
        raise InputShapeMismatchError(
            f"{path.name}: expected {n_landmarks} landmarks, found {df.shape[0]}"
        )
    if df.shape[1] != n_dim + 1:
        raise InputShapeMismatchError(
            f"{path.name}: expected index + {n_dim} coordinates per row, "
            f"found {df.shape[1]} columns"
        )

    coords = df.iloc[:, 1:].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)

    bad = ~np.all(np.isfinite(coords), axis=1)
    if np.any(bad):
        line = skip_header + int(np.flatnonzero(bad)[0]) + 1
        raise InputShapeMismatchError(
            f"{path.name}: non-numeric or missing coordinates on line {line}"
        )

    return coords


def load_landmarks(
    directory: Union[str, Path],
    n_landmarks: int,
    n_dim: int = 3,
    skip_header: int = 2,
    pattern: str = "*.txt"
) -> Tuple[np.ndarray, List[str]]:
    """
    Load every specimen file of a directory into a stacked array.

    Specimen identifiers are the file stems; files are read in sorted
    name order so the array order is reproducible.

    Args:
        directory: Directory with one landmark file per specimen
        n_landmarks: Declared number of landmarks
        n_dim: Declared number of coordinate dimensions
        skip_header: Number of header lines per file
        pattern: Glob pattern selecting landmark files

    Returns:
        Tuple of (landmarks, specimen_ids)
        - landmarks: (n_specimens, n_landmarks, n_dim) array
        - specimen_ids: list of specimen identifiers
    """
    directory = Path(directory)

    if not directory.is_dir():
        raise FileNotFoundError(f"Landmark directory not found: {directory}")

    files = sorted(directory.glob(pattern))

    if len(files) == 0:
        raise InputShapeMismatchError(
            f"No landmark files matching '{pattern}' in {directory}"
        )

    logger.info(f"Loading {len(files)} landmark files from {directory}")

    landmarks = np.stack([
        read_landmark_file(f, n_landmarks, n_dim=n_dim, skip_header=skip_header)
        for f in files
    ])
    specimen_ids = [f.stem for f in files]

    logger.info(
        f"Loaded {landmarks.shape[0]} specimens, "
        f"{landmarks.shape[1]} landmarks, {landmarks.shape[2]} dimensions"
    )

    return landmarks, specimen_ids


def load_sliders(
    path: Union[str, Path],
    n_landmarks: int
) -> np.ndarray:
    """
    Load the sliding semilandmark adjacency table.

    Each row is a (before, slider, after) triplet of 1-based landmark
    indices, as written by curve definition tools.

    Args:
        path: Path to CSV table (header optional)
        n_landmarks: Number of landmarks per specimen

    Returns:
        Integer array (n_sliders, 3) of 0-based landmark indices
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Sliders file not found: {path}")

    try:
        df = pd.read_csv(path, header=None, comment="#")
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise AlignmentFailureError(f"{path.name}: malformed sliding table ({e})") from e

    if df.shape[1] != 3:
        raise AlignmentFailureError(
            f"{path.name}: sliding table must have 3 columns, found {df.shape[1]}"
        )

    values = df.apply(pd.to_numeric, errors="coerce")

    # Drop a textual header row such as "before,slide,after"
    if len(values) > 0 and values.iloc[0].isna().all():
        values = values.iloc[1:]

    values = values.to_numpy(dtype=float)
    bad = ~np.all(np.isfinite(values) & (values == np.round(values)), axis=1)
    if np.any(bad):
        row = int(np.flatnonzero(bad)[0]) + 1
        raise AlignmentFailureError(
            f"{path.name}: row {row} is not three integer landmark indices"
        )

    sliders = values.astype(int) - 1

    bad = np.any((sliders < 0) | (sliders >= n_landmarks), axis=1)
    if np.any(bad):
        row = int(np.flatnonzero(bad)[0]) + 1
        raise AlignmentFailureError(
            f"{path.name}: row {row} references landmarks outside 1..{n_landmarks}"
        )

    logger.info(f"Loaded {len(sliders)} sliding semilandmarks from {path}")

    return sliders


def load_metadata(
    path: Union[str, Path],
    specimen_ids: List[str],
    taxon_col: str = "Taxon"
) -> pd.DataFrame:
    """
    Load specimen metadata and reorder it to the specimen array order.

    Args:
        path: Path to CSV file
        specimen_ids: Specimen identifiers in landmark array order
        taxon_col: Name of the taxon column used for the join

    Returns:
        DataFrame indexed by taxon, one row per specimen, same order as
        ``specimen_ids``
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Metadata file not found: {path}")

    logger.info(f"Loading specimen metadata from {path}")

    df = pd.read_csv(path)

    if taxon_col not in df.columns:
        raise ValueError(f"Taxon column '{taxon_col}' not found in {path.name}")

    if len(df) != len(specimen_ids):
        raise InputShapeMismatchError(
            f"{path.name}: {len(df)} metadata rows for {len(specimen_ids)} specimens"
        )

    duplicated = df[taxon_col][df[taxon_col].duplicated()].tolist()
    if duplicated:
        raise InputShapeMismatchError(f"{path.name}: duplicated taxa {duplicated}")

    df = df.set_index(taxon_col)
    missing = [s for s in specimen_ids if s not in df.index]
    if missing:
        raise InputShapeMismatchError(f"{path.name}: no metadata row for {missing}")

    return df.loc[list(specimen_ids)]


def create_mock_landmarks(
    directory: Union[str, Path],
    specimen_ids: List[str],
    n_landmarks: int = 20,
    n_dim: int = 3,
    skip_header: int = 2,
    noise: float = 0.05,
    seed: int = 42
) -> np.ndarray:
    """
    Write mock landmark files for testing and demonstration runs.

    Specimens are noisy, randomly rotated and scaled copies of a helical
    reference curve.

    Args:
        directory: Output directory
        specimen_ids: One file is written per identifier
        n_landmarks: Number of landmarks
        n_dim: Number of dimensions (2 or 3)
        skip_header: Number of header lines to write
        noise: Standard deviation of per-landmark noise
        seed: Random seed

    Returns:
        The written coordinates (n_specimens, n_landmarks, n_dim)
    """
    rng = make_rng(seed)
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    turns = np.linspace(0, 2.5 * 2 * np.pi, n_landmarks)
    reference = np.column_stack([
        np.cos(turns) * (1 - turns / turns[-1] * 0.7),
        np.sin(turns) * (1 - turns / turns[-1] * 0.7),
        turns / turns[-1],
    ])[:, :n_dim]

    coords = []
    for specimen in specimen_ids:
        q, _ = np.linalg.qr(rng.normal(size=(n_dim, n_dim)))
        config = reference + rng.normal(0, noise, size=reference.shape)
        config = rng.uniform(2.0, 5.0) * config @ q + rng.normal(0, 10, size=n_dim)
        coords.append(config)

        lines = [f"# mock specimen {specimen}"] * skip_header
        lines += [
            " ".join([str(i + 1)] + [f"{v:.6f}" for v in row])
            for i, row in enumerate(config)
        ]
        (directory / f"{specimen}.txt").write_text("\n".join(lines) + "\n")

    logger.info(f"Created mock landmarks: {len(specimen_ids)} specimens in {directory}")

    return np.stack(coords)
