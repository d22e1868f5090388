"""
Generalized Procrustes superimposition of 3D landmark configurations.

Removes translation, scale and rotation differences between specimens.
Sliding semilandmarks are moved along their curve tangents so that they
minimise Procrustes distance to the consensus shape.
"""

import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Optional, Sequence
import logging

from .errors import AlignmentFailureError
from .utils import validate_array

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcrustesResult:
    """Aligned coordinates and consensus of a superimposition."""
    coords: np.ndarray
    mean_shape: np.ndarray
    centroid_sizes: np.ndarray
    n_iter: int


def center(config: np.ndarray) -> np.ndarray:
    """Translate a configuration so its centroid is at the origin."""
    return config - config.mean(axis=0)


def centroid_size(config: np.ndarray) -> float:
    """Square root of summed squared distances to the centroid."""
    return float(np.sqrt(np.sum(center(config) ** 2)))


def scale(config: np.ndarray) -> np.ndarray:
    """Scale a centred configuration to unit centroid size."""
    size = centroid_size(config)
    if size == 0:
        raise AlignmentFailureError("Configuration has zero centroid size")
    return config / size


def rotate_to(config: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """
    Rotate a centred configuration onto a reference (least squares).

    Reflections are excluded so specimens keep their handedness.

    Args:
        config: Centred configuration (n_landmarks, n_dim)
        reference: Centred reference (n_landmarks, n_dim)

    Returns:
        Rotated configuration
    """
    u, _, vt = np.linalg.svd(config.T @ reference)
    if np.linalg.det(u @ vt) < 0:
        u[:, -1] *= -1
    return config @ (u @ vt)


def procrustes_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance between two aligned configurations."""
    return float(np.sqrt(np.sum((a - b) ** 2)))


def validate_sliders(sliders: np.ndarray, n_landmarks: int) -> np.ndarray:
    """
    Check a (before, slider, after) table against the landmark count.

    Args:
        sliders: 0-based index triplets (n_sliders, 3)
        n_landmarks: Number of landmarks per configuration

    Returns:
        Integer copy of the table
    """
    sliders = np.asarray(sliders)
    if sliders.ndim != 2 or sliders.shape[1] != 3:
        raise AlignmentFailureError(
            f"Sliders must be an (n, 3) table, got shape {sliders.shape}"
        )
    sliders = sliders.astype(int)
    if np.any(sliders < 0) or np.any(sliders >= n_landmarks):
        raise AlignmentFailureError(
            f"Sliders reference landmarks outside 0..{n_landmarks - 1}"
        )
    if np.any(sliders[:, 0] == sliders[:, 2]):
        raise AlignmentFailureError("A slider's before and after landmarks coincide")
    return sliders


def slide_semilandmarks(
    config: np.ndarray,
    reference: np.ndarray,
    sliders: np.ndarray
) -> np.ndarray:
    """
    Slide semilandmarks along the reference's tangents towards it.

    The tangent of each slider is the direction from its ``before`` to its
    ``after`` neighbour on the reference, so it stays fixed while every
    specimen of an iteration slides. The slider moves by the projection of
    its displacement from the reference onto that tangent.

    Args:
        config: Aligned configuration (n_landmarks, n_dim)
        reference: Consensus configuration (n_landmarks, n_dim)
        sliders: 0-based (before, slider, after) triplets

    Returns:
        Configuration with slid semilandmarks
    """
    before, slider, after = sliders[:, 0], sliders[:, 1], sliders[:, 2]
    tangents = reference[after] - reference[before]
    norms = np.linalg.norm(tangents, axis=1, keepdims=True)
    if np.any(norms == 0):
        raise AlignmentFailureError("Degenerate curve: coincident slider neighbours")
    tangents = tangents / norms

    shift = np.sum((reference[slider] - config[slider]) * tangents, axis=1)
    slid = config.copy()
    slid[slider] = config[slider] + shift[:, None] * tangents
    return slid


def procrustes_sum_of_squares(coords: np.ndarray, mean: np.ndarray) -> float:
    """Summed squared Procrustes distance of every specimen to the consensus."""
    return float(sum(procrustes_distance(x, mean) ** 2 for x in coords))


def generalized_procrustes(
    landmarks: np.ndarray,
    sliders: Optional[np.ndarray] = None,
    max_iter: int = 100,
    tol: float = 1e-7
) -> ProcrustesResult:
    """
    Run iterative Generalized Procrustes Analysis.

    Each iteration rotates every specimen onto the consensus, optionally
    slides semilandmarks against that consensus, and rebuilds the
    consensus. Iteration stops once the Procrustes sum of squares changes
    by less than ``tol``. With sliders the consensus can creep along its
    curves while the sum of squares stays put.

    Args:
        landmarks: Raw coordinates (n_specimens, n_landmarks, n_dim)
        sliders: Optional 0-based (before, slider, after) triplets
        max_iter: Maximum number of iterations
        tol: Convergence threshold on the change in Procrustes sum of squares

    Returns:
        ProcrustesResult with aligned coordinates and consensus
    """
    validate_array(landmarks, expected_ndim=3, name="landmarks")

    if not np.all(np.isfinite(landmarks)):
        raise AlignmentFailureError("Landmark array contains non-finite coordinates")

    n_specimens, n_landmarks, n_dim = landmarks.shape
    if n_specimens < 2:
        raise AlignmentFailureError("Superimposition needs at least two specimens")

    if sliders is not None and len(sliders) > 0:
        sliders = validate_sliders(sliders, n_landmarks)
    else:
        sliders = None

    sizes = np.array([centroid_size(x) for x in landmarks])
    zero = np.flatnonzero(sizes == 0)
    if len(zero) > 0:
        raise AlignmentFailureError(f"Specimen {int(zero[0])} has zero centroid size")

    coords = np.stack([scale(center(x)) for x in landmarks.astype(float)])
    mean = coords[0]
    previous_ss = np.inf

    for iteration in range(1, max_iter + 1):
        coords = np.stack([rotate_to(x, mean) for x in coords])

        if sliders is not None:
            coords = np.stack([
                scale(center(slide_semilandmarks(x, mean, sliders)))
                for x in coords
            ])
            coords = np.stack([rotate_to(x, mean) for x in coords])

        mean = scale(center(coords.mean(axis=0)))
        ss = procrustes_sum_of_squares(coords, mean)
        change = abs(previous_ss - ss)
        previous_ss = ss

        logger.debug(f"GPA iteration {iteration}: Procrustes SS {ss:.6e} (change {change:.3e})")

        if change < tol:
            logger.info(
                f"GPA converged after {iteration} iterations "
                f"({n_specimens} specimens, {0 if sliders is None else len(sliders)} sliders)"
            )
            return ProcrustesResult(
                coords=coords,
                mean_shape=mean,
                centroid_sizes=sizes,
                n_iter=iteration
            )

    raise AlignmentFailureError(
        f"Procrustes superimposition did not converge in {max_iter} iterations"
    )


def to_shape_matrix(
    coords: np.ndarray,
    specimen_ids: Sequence[str]
) -> pd.DataFrame:
    """
    Flatten aligned coordinates to one row per specimen.

    Columns run landmark-major: x1, y1, z1, x2, ...

    Args:
        coords: Aligned coordinates (n_specimens, n_landmarks, n_dim)
        specimen_ids: Row identifiers

    Returns:
        DataFrame (n_specimens, n_landmarks * n_dim)
    """
    n_specimens, n_landmarks, n_dim = coords.shape
    if len(specimen_ids) != n_specimens:
        raise ValueError(
            f"{len(specimen_ids)} identifiers for {n_specimens} specimens"
        )
    axes = "xyz" if n_dim <= 3 else [f"d{i + 1}_" for i in range(n_dim)]
    columns = [f"{axes[d]}{i + 1}" for i in range(n_landmarks) for d in range(n_dim)]
    return pd.DataFrame(
        coords.reshape(n_specimens, n_landmarks * n_dim),
        index=pd.Index(list(specimen_ids), name="id"),
        columns=columns
    )
